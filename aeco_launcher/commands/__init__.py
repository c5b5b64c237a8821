"""CLI command implementations for aeco_launcher.

This module contains all command-line interface implementations:
- run: Update the installation and launch the game
- manifest: Build and inspect patch manifests
"""

from aeco_launcher.commands.launcher import run
from aeco_launcher.commands.manifest import manifest_group

__all__ = ["manifest_group", "run"]
