"""Patch manifest model.

The manifest (``meta/patchlist.json``) describes every file the server
expects to find in an installation as a tree of tagged nodes::

    {"type": "directory", "name": "", "children": [
        {"type": "directory", "name": "all", "children": [
            {"type": "file", "name": "eco.exe", "digest": "9f86d0..."},
            {"type": "archive", "name": "data", "files": [
                {"name": "map.bin", "digest": "60303a..."}
            ]}
        ]}
    ]}

Top level directories name platforms: ``all`` plus one per host platform
identifier (see :func:`aeco_launcher.core.utils.get_platform`).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

import structlog
from pydantic import AfterValidator, BaseModel, Field, TypeAdapter, ValidationError

from aeco_launcher.core.errors import ParseError
from aeco_launcher.core.utils import compute_digest, hash_file, validate_hash_string

logger = structlog.get_logger()

ARCHIVE_DIR_SUFFIX = ".archive"


def _check_digest(v: str) -> str:
    if not validate_hash_string(v):
        raise ValueError(f"Invalid digest: {v!r}")
    return v.lower()


Digest = Annotated[str, AfterValidator(_check_digest)]


class ArchiveEntry(BaseModel):
    """A file expected inside an archive."""
    name: str = Field(..., description="Entry name inside the archive")
    digest: Digest = Field(..., description="Hex content digest")


class FileNode(BaseModel):
    """A single tracked file."""
    type: Literal["file"] = "file"
    name: str = Field(..., description="File name")
    digest: Digest = Field(..., description="Hex content digest")


class ArchiveNode(BaseModel):
    """A packed archive container and the entries expected inside it."""
    type: Literal["archive"] = "archive"
    name: str = Field(..., description="Archive name without extension")
    files: list[ArchiveEntry] = Field(default_factory=list, description="Expected entries")


class DirectoryNode(BaseModel):
    """A directory subtree."""
    type: Literal["directory"] = "directory"
    name: str = Field(..., description="Directory name")
    children: list[ManifestNode] = Field(default_factory=list, description="Child nodes")


ManifestNode = Annotated[FileNode | DirectoryNode | ArchiveNode, Field(discriminator="type")]

DirectoryNode.model_rebuild()

_node_adapter: TypeAdapter[FileNode | DirectoryNode | ArchiveNode] = TypeAdapter(ManifestNode)


def parse_manifest(data: bytes | bytearray) -> FileNode | DirectoryNode | ArchiveNode:
    """Parse a manifest document.

    Args:
        data: JSON manifest bytes

    Returns:
        Root manifest node

    Raises:
        ParseError: If the document is not valid JSON or violates the schema
    """
    try:
        return _node_adapter.validate_json(data)
    except ValidationError as e:
        logger.debug("manifest_parse_failed", errors=e.error_count())
        raise ParseError(f"Malformed manifest: {e.error_count()} validation error(s)") from e


def dump_manifest(node: FileNode | DirectoryNode | ArchiveNode) -> bytes:
    """Serialize a manifest node to its JSON wire format."""
    return _node_adapter.dump_json(node, indent=2)


def count_leaf_files(node: FileNode | DirectoryNode | ArchiveNode) -> int:
    """Count the files a traversal of this node will check.

    Files count once; archives count once per declared entry.
    """
    if isinstance(node, FileNode):
        return 1
    if isinstance(node, ArchiveNode):
        return len(node.files)
    return sum(count_leaf_files(child) for child in node.children)


def find_child_directory(
    node: FileNode | DirectoryNode | ArchiveNode, name: str
) -> DirectoryNode | None:
    """Find a direct child directory by exact name.

    Args:
        node: Node to search
        name: Directory name, e.g. a platform identifier

    Returns:
        The first matching child directory, or None
    """
    if not isinstance(node, DirectoryNode):
        return None
    for child in node.children:
        if isinstance(child, DirectoryNode) and child.name == name:
            return child
    return None


def build_manifest(path: Path, name: str = "") -> DirectoryNode:
    """Build a manifest from a patch directory laid out as on the server.

    Sub-directories named ``<name>.archive`` become archive nodes whose
    entries are the files directly inside them. Other directories recurse,
    other files become file nodes. Children are sorted by name so the
    output is stable.

    Args:
        path: Directory to describe
        name: Name for the returned root node

    Returns:
        Directory node describing ``path``
    """
    children: list[FileNode | DirectoryNode | ArchiveNode] = []

    for entry in sorted(path.iterdir(), key=lambda p: p.name):
        if entry.is_dir() and entry.name.endswith(ARCHIVE_DIR_SUFFIX):
            files = [
                ArchiveEntry(name=f.name, digest=compute_digest(f.read_bytes()))
                for f in sorted(entry.iterdir(), key=lambda p: p.name)
                if f.is_file()
            ]
            archive_name = entry.name[: -len(ARCHIVE_DIR_SUFFIX)]
            children.append(ArchiveNode(name=archive_name, files=files))
        elif entry.is_dir():
            children.append(build_manifest(entry, entry.name))
        elif entry.is_file():
            children.append(FileNode(name=entry.name, digest=hash_file(entry)))

    node = DirectoryNode(name=name, children=children)
    logger.debug("manifest_directory_built", path=str(path), children=len(children))
    return node
