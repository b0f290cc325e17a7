from __future__ import annotations

import io
import json
from typing import BinaryIO, Dict, Optional

from .constants import INTEGRITY_BLOCK_SIZE
from .envelope import encode_header
from .errors import PathConflict
from .integrity import SHA256_PROVIDER, IntegrityProvider
from .pathutil import norm_path
from .tree import DirectoryNode, FileNode, LinkNode, node_to_json


class ArchiveWriter:
    """Builds a fresh asar archive in memory.

    Entries are accumulated with ``write_*`` calls; ``finalize`` assigns data
    offsets in depth-first insertion order, then emits the envelope, the JSON
    header and every packed file's bytes. A writer finalizes exactly once.
    """

    def __init__(
        self,
        integrity: Optional[IntegrityProvider] = SHA256_PROVIDER,
        block_size: int = INTEGRITY_BLOCK_SIZE,
    ):
        self.integrity = integrity
        self.block_size = block_size
        self.root = DirectoryNode()
        self._contents: Dict[str, bytes] = {}
        self._finalized = False

    def write_file(self, path: str, content, executable: bool = False) -> None:
        """Add a packed file; intermediate directories are created implicitly."""
        self._check_open()
        path = self._file_path(path)
        content = bytes(content)
        self.root.insert(path, self._file_node(content, executable, unpacked=False))
        self._contents[path] = content

    def write_unpacked_file(self, path: str, content, executable: bool = False) -> None:
        """Record a file whose bytes live outside the archive.

        Only metadata (size, flags, integrity) is kept; the caller is
        responsible for placing the content in the companion directory.
        """
        self._check_open()
        path = self._file_path(path)
        self.root.insert(path, self._file_node(bytes(content), executable, unpacked=True))

    def write_dir(self, path: str) -> None:
        self._check_open()
        self.root.ensure_directory(path)

    def write_symlink(self, path: str, target: str) -> None:
        self._check_open()
        path = self._file_path(path)
        self.root.insert(path, LinkNode(link=str(target).replace("\\", "/")))

    def add_from_reader(self, reader) -> None:
        """Copy every entry of an open :class:`~asar.reader.ArchiveReader`."""
        self._check_open()
        for path, node in reader.header.iter_entries():
            if isinstance(node, DirectoryNode):
                if not node.files:
                    self.write_dir(path)
            elif isinstance(node, LinkNode):
                self.write_symlink(path, node.link)
            elif node.unpacked:
                self.root.insert(
                    path,
                    FileNode(size=node.size, unpacked=True, executable=node.executable, integrity=node.integrity),
                )
            else:
                self.write_file(path, reader.files()[path].data(), executable=node.executable)

    def finalize(self, sink: BinaryIO) -> int:
        """Write the archive to ``sink`` and return the number of bytes written.

        The writer is consumed even if writing fails.
        """
        self._check_open()
        self._finalized = True
        order = self._assign_offsets()
        header_json = json.dumps(node_to_json(self.root), separators=(",", ":"), ensure_ascii=False)
        envelope = encode_header(header_json)
        sink.write(envelope)
        written = len(envelope)
        for path in order:
            content = self._contents[path]
            sink.write(content)
            written += len(content)
        flush = getattr(sink, "flush", None)
        if flush is not None:
            flush()
        self._contents = {}
        return written

    def finalize_to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.finalize(buf)
        return buf.getvalue()

    # internals
    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("Writer already finalized")

    def _file_path(self, path: str) -> str:
        path = norm_path(path)
        if not path:
            raise PathConflict("", "Cannot replace the archive root")
        return path

    def _file_node(self, content: bytes, executable: bool, unpacked: bool) -> FileNode:
        integrity = None
        if self.integrity is not None:
            integrity = self.integrity.compute(content, self.block_size)
        return FileNode(size=len(content), executable=bool(executable), unpacked=unpacked, integrity=integrity)

    def _assign_offsets(self):
        offset = 0
        order = []
        for path, node in self.root.iter_files():
            if node.unpacked:
                continue
            node.offset = offset
            offset += node.size
            order.append(path)
        return order
