from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .envelope import decode_header
from .errors import InvalidJson, MalformedHeader, NotPacked, UnsupportedAlgorithm
from .integrity import IntegrityProvider, default_providers, get_provider
from .pathutil import norm_path
from .tree import DirectoryNode, IntegrityMetadata, LinkNode, root_from_json


@dataclass(frozen=True)
class AsarFile:
    """A file entry of an open archive.

    ``data()`` is a zero-copy view into the archive buffer and is only valid
    while the owning reader's buffer is alive.
    """

    path: str
    size: int
    offset: int
    executable: bool
    unpacked: bool
    integrity: Optional[IntegrityMetadata]
    _blob: memoryview = field(repr=False, compare=False)

    def data(self) -> memoryview:
        if self.unpacked:
            raise NotPacked(self.path)
        return self._blob[self.offset : self.offset + self.size]

    def verify(self, provider: Optional[IntegrityProvider] = None) -> None:
        """Check ``data()`` against the recorded integrity metadata, if any."""
        if self.integrity is None or self.unpacked:
            return
        provider = provider or get_provider(self.integrity.algorithm)
        if provider is None:
            raise UnsupportedAlgorithm(self.path, self.integrity.algorithm)
        provider.verify(self.data(), self.integrity, self.path)


class ArchiveReader:
    """Parses an asar archive held in memory and serves lookups from it.

    The buffer is parsed once; afterwards every lookup is a read over the
    immutable header tree and buffer. With ``check_integrity`` every packed
    file carrying integrity metadata is verified up front and the first
    mismatch rejects the whole archive.
    """

    def __init__(
        self,
        data,
        *,
        check_integrity: bool = False,
        providers: Optional[Dict[str, IntegrityProvider]] = None,
    ):
        self._buffer = memoryview(data).cast("B")
        self.check_integrity = check_integrity
        self.providers = providers if providers is not None else default_providers()
        json_bytes, self.data_offset = decode_header(self._buffer)
        self.header = _parse_header_json(json_bytes)
        self._blob = self._buffer[self.data_offset :]
        self._files: Dict[str, AsarFile] = {}
        self._directories: Dict[str, Tuple[str, ...]] = {}
        self._symlinks: Dict[str, str] = {}
        self._index()
        if check_integrity:
            self._verify_all()

    @classmethod
    def from_path(cls, path: str, **kwargs) -> "ArchiveReader":
        with open(path, "rb") as fh:
            data = fh.read()
        return cls(data, **kwargs)

    def files(self) -> Mapping[str, AsarFile]:
        """Read-only mapping of normalized path to file view, in tree order."""
        return MappingProxyType(self._files)

    def get(self, path: str) -> Optional[AsarFile]:
        try:
            return self._files.get(norm_path(path))
        except ValueError:
            return None

    def directories(self) -> Mapping[str, Tuple[str, ...]]:
        return MappingProxyType(self._directories)

    def read_dir(self, path: str) -> Optional[List[str]]:
        try:
            children = self._directories.get(norm_path(path))
        except ValueError:
            return None
        return None if children is None else list(children)

    def symlinks(self) -> Mapping[str, str]:
        return MappingProxyType(self._symlinks)

    @property
    def blob_size(self) -> int:
        return len(self._blob)

    # internals
    def _index(self) -> None:
        blob_len = len(self._blob)
        ranges = []
        dirs: Dict[str, List[str]] = {"": []}
        for path, node in self.header.iter_entries():
            parent = path.rpartition("/")[0]
            dirs[parent].append(path)
            if isinstance(node, DirectoryNode):
                dirs[path] = []
            elif isinstance(node, LinkNode):
                self._symlinks[path] = node.link
            else:
                if not node.unpacked:
                    if node.offset + node.size > blob_len:
                        raise MalformedHeader(
                            f"File {path!r} runs past end of data blob "
                            f"(offset={node.offset}, size={node.size}, blob={blob_len})"
                        )
                    if node.size:
                        ranges.append((node.offset, node.size, path))
                self._files[path] = AsarFile(
                    path=path,
                    size=node.size,
                    offset=node.offset,
                    executable=node.executable,
                    unpacked=node.unpacked,
                    integrity=node.integrity,
                    _blob=self._blob,
                )
        self._directories = {p: tuple(children) for p, children in dirs.items()}
        ranges.sort()
        for (off_a, size_a, path_a), (off_b, _size_b, path_b) in zip(ranges, ranges[1:]):
            if off_a + size_a > off_b:
                raise MalformedHeader(f"Files {path_a!r} and {path_b!r} overlap in data blob")

    def _verify_all(self) -> None:
        for path, f in self._files.items():
            if f.unpacked or f.integrity is None:
                continue
            provider = get_provider(f.integrity.algorithm, self.providers)
            if provider is None:
                raise UnsupportedAlgorithm(path, f.integrity.algorithm)
            provider.verify(f.data(), f.integrity, path)


def open_archive(data, **kwargs) -> ArchiveReader:
    """Parse ``data`` (bytes-like) into an :class:`ArchiveReader`."""
    return ArchiveReader(data, **kwargs)


def _parse_header_json(json_bytes: bytes) -> DirectoryNode:
    try:
        obj = json.loads(json_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidJson(f"Header is not valid JSON: {exc}") from exc
    return root_from_json(obj)
