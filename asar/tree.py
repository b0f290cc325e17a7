from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .constants import U32_MAX
from .errors import InvalidJson, PathConflict
from .pathutil import is_valid_name, join_path, norm_path, split_path


@dataclass
class IntegrityMetadata:
    """Whole-file and per-block digests, lowercase hex."""

    algorithm: str
    hash: str
    block_size: int
    blocks: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "hash": self.hash,
            "blockSize": self.block_size,
            "blocks": list(self.blocks),
        }

    @classmethod
    def from_json(cls, obj: Any, path: str = "") -> "IntegrityMetadata":
        if not isinstance(obj, dict):
            raise InvalidJson(f"{_where(path)}: integrity must be an object")
        algorithm = obj.get("algorithm")
        if not isinstance(algorithm, str):
            raise InvalidJson(f"{_where(path)}: integrity algorithm must be a string")
        block_size = obj.get("blockSize")
        if not _is_uint(block_size) or block_size == 0 or block_size > U32_MAX:
            raise InvalidJson(f"{_where(path)}: integrity blockSize must be a positive integer")
        blocks = obj.get("blocks")
        if not isinstance(blocks, list):
            raise InvalidJson(f"{_where(path)}: integrity blocks must be a list")
        return cls(
            algorithm=algorithm,
            hash=_hex(obj.get("hash"), path),
            block_size=block_size,
            blocks=[_hex(b, path) for b in blocks],
        )


@dataclass
class FileNode:
    size: int = 0
    # Relative to the start of the data blob; meaningless when unpacked
    offset: int = 0
    executable: bool = False
    unpacked: bool = False
    integrity: Optional[IntegrityMetadata] = None


@dataclass
class LinkNode:
    link: str


@dataclass
class DirectoryNode:
    # Insertion order is significant: it fixes JSON key order and data layout
    files: Dict[str, "Node"] = field(default_factory=dict)

    def resolve(self, path: str) -> Optional["Node"]:
        """Return the node at ``path`` or None; the empty path is this directory."""
        node: Node = self
        for name in split_path(path):
            if not isinstance(node, DirectoryNode):
                return None
            child = node.files.get(name)
            if child is None:
                return None
            node = child
        return node

    def insert(self, path: str, node: "Node") -> None:
        """Place ``node`` at ``path``, creating intermediate directories.

        Raises PathConflict when an ancestor is not a directory or when the
        terminal name is already taken. Nothing is created on failure.
        """
        parts = split_path(path)
        if not parts:
            raise PathConflict("", "Cannot replace the archive root")
        parent = self._walk_to_parent(parts, path)
        name = parts[-1]
        if parent is not None and name in parent.files:
            raise PathConflict(norm_path(path))
        parent = self.ensure_directory("/".join(parts[:-1]))
        parent.files[name] = node

    def ensure_directory(self, path: str) -> "DirectoryNode":
        """Return the directory at ``path``, creating missing components."""
        parts = split_path(path)
        self._walk_to_parent(parts + [""], path)
        node = self
        for name in parts:
            child = node.files.get(name)
            if child is None:
                child = DirectoryNode()
                node.files[name] = child
            node = child  # type: ignore[assignment]
        return node

    def _walk_to_parent(self, parts: List[str], path: str) -> Optional["DirectoryNode"]:
        # Validates every ancestor of the terminal component. Returns the
        # existing parent directory, or None if some ancestor is missing.
        node = self
        walked = ""
        for name in parts[:-1]:
            walked = join_path(walked, name)
            child = node.files.get(name)
            if child is None:
                return None
            if not isinstance(child, DirectoryNode):
                raise PathConflict(norm_path(path), f"Ancestor {walked!r} of {norm_path(path)!r} is not a directory")
            node = child
        return node

    def iter_entries(self, prefix: str = "") -> Iterator[Tuple[str, "Node"]]:
        """Yield ``(path, node)`` for every descendant, depth-first in insertion order."""
        for name, child in self.files.items():
            child_path = join_path(prefix, name)
            yield child_path, child
            if isinstance(child, DirectoryNode):
                yield from child.iter_entries(child_path)

    def iter_files(self, prefix: str = "") -> Iterator[Tuple[str, FileNode]]:
        for path, node in self.iter_entries(prefix):
            if isinstance(node, FileNode):
                yield path, node


Node = Union[DirectoryNode, FileNode, LinkNode]


def node_to_json(node: Node) -> Dict[str, Any]:
    """Map a node onto the wire schema, omitting false/absent optional fields."""
    if isinstance(node, DirectoryNode):
        return {"files": {name: node_to_json(child) for name, child in node.files.items()}}
    if isinstance(node, LinkNode):
        return {"link": node.link}
    out: Dict[str, Any] = {"size": node.size}
    if not node.unpacked:
        out["offset"] = str(node.offset)
    if node.executable:
        out["executable"] = True
    if node.unpacked:
        out["unpacked"] = True
    if node.integrity is not None:
        out["integrity"] = node.integrity.to_json()
    return out


def node_from_json(obj: Any, path: str = "") -> Node:
    if not isinstance(obj, dict):
        raise InvalidJson(f"{_where(path)}: node must be an object")
    if "files" in obj:
        files = obj["files"]
        if not isinstance(files, dict):
            raise InvalidJson(f"{_where(path)}: 'files' must be an object")
        d = DirectoryNode()
        for name, child in files.items():
            if not is_valid_name(name):
                raise InvalidJson(f"{_where(path)}: invalid entry name {name!r}")
            d.files[name] = node_from_json(child, join_path(path, name))
        return d
    if "link" in obj:
        if not isinstance(obj["link"], str):
            raise InvalidJson(f"{_where(path)}: 'link' must be a string")
        return LinkNode(link=obj["link"])
    executable = obj.get("executable", False)
    unpacked = obj.get("unpacked", False)
    if not isinstance(executable, bool) or not isinstance(unpacked, bool):
        raise InvalidJson(f"{_where(path)}: 'executable' and 'unpacked' must be booleans")
    # Unpacked entries may omit size; their bytes live outside the archive
    size = obj.get("size", 0 if unpacked else None)
    if not _is_uint(size):
        raise InvalidJson(f"{_where(path)}: 'size' must be a non-negative integer")
    offset = 0
    if not unpacked:
        offset = _parse_offset(obj.get("offset"), path)
    integrity = None
    if obj.get("integrity") is not None:
        integrity = IntegrityMetadata.from_json(obj["integrity"], path)
    return FileNode(size=size, offset=offset, executable=executable, unpacked=unpacked, integrity=integrity)


def root_from_json(obj: Any) -> DirectoryNode:
    root = node_from_json(obj)
    if not isinstance(root, DirectoryNode):
        raise InvalidJson("Header root must be a directory")
    return root


def _parse_offset(value: Any, path: str) -> int:
    if _is_uint(value):
        return value
    if isinstance(value, str) and value.isdigit() and value.isascii():
        return int(value)
    raise InvalidJson(f"{_where(path)}: 'offset' must be a decimal string")


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _hex(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise InvalidJson(f"{_where(path)}: integrity digests must be hex strings")
    try:
        bytes.fromhex(value)
    except ValueError:
        raise InvalidJson(f"{_where(path)}: invalid hex digest {value!r}") from None
    return value.lower()


def _where(path: str) -> str:
    return path or "<root>"
