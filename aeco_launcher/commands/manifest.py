"""Manifest commands for preparing and inspecting patch lists."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from aeco_launcher.core.errors import ParseError
from aeco_launcher.core.manifest import (
    ArchiveNode,
    DirectoryNode,
    FileNode,
    build_manifest,
    count_leaf_files,
    dump_manifest,
    parse_manifest,
)


def _walk(
    node: FileNode | DirectoryNode | ArchiveNode, prefix: str = ""
) -> Iterator[tuple[str, str, str]]:
    """Yield (path, kind, digest) for every leaf below ``node``."""
    if isinstance(node, FileNode):
        yield prefix + node.name, "file", node.digest
    elif isinstance(node, ArchiveNode):
        for entry in node.files:
            yield f"{prefix}{node.name}.archive/{entry.name}", "archive entry", entry.digest
    else:
        child_prefix = f"{prefix}{node.name}/" if node.name else prefix
        for child in node.children:
            yield from _walk(child, child_prefix)


@click.group(name="manifest")
@click.pass_context
def manifest_group(ctx: click.Context) -> None:
    """Build and inspect patch manifests."""
    pass


@manifest_group.command(name="build")
@click.argument("source", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file (default: stdout)",
)
@click.pass_context
def build(ctx: click.Context, source: Path, output: Path | None) -> None:
    """Build a manifest from a server patch directory.

    SOURCE holds one sub-directory per platform ("all", "linux-x86_64", ...).
    Directories named NAME.archive are described as archive NAME.
    """
    console: Console = ctx.obj["console"]

    root = build_manifest(source)
    data = dump_manifest(root)

    if output is None:
        click.echo(data.decode("utf-8"))
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    console.print(f"[green]✓[/green] Wrote manifest with {count_leaf_files(root)} files to {output}")


@manifest_group.command(name="show")
@click.argument("manifest_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def show(ctx: click.Context, manifest_file: Path) -> None:
    """Display the files a manifest tracks."""
    console: Console = ctx.obj["console"]

    try:
        root = parse_manifest(manifest_file.read_bytes())
    except ParseError as e:
        raise click.ClickException(str(e)) from e

    table = Table(title=f"{manifest_file.name} ({count_leaf_files(root)} files)")
    table.add_column("Path", style="cyan")
    table.add_column("Kind", style="yellow")
    table.add_column("Digest", style="white")

    for path, kind, digest in _walk(root):
        table.add_row(path, kind, digest[:16])

    console.print(table)
