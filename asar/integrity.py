"""Chunked content integrity compatible with Electron's asar tooling.

Every file gets a digest of its whole content plus one digest per fixed-size
block (4 MiB). Block ``i`` covers ``[i * block_size, min((i + 1) * block_size, size))``;
empty content has exactly one block, the digest of no bytes.

Hashing goes through an :class:`IntegrityProvider` so the reader and writer
never depend on a concrete digest implementation. The stock provider is
SHA-256 backed by PyCryptodomex.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Tuple

from Cryptodome.Hash import SHA256

from .constants import HASH_ALGORITHM_SHA256, INTEGRITY_BLOCK_SIZE
from .errors import BlockHashMismatch, UnsupportedAlgorithm, WholeHashMismatch
from .tree import IntegrityMetadata


def iter_blocks(content, block_size: int) -> Iterator[Tuple[int, memoryview]]:
    """Yield ``(index, block)`` views over ``content`` without copying."""
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    view = memoryview(content)
    if len(view) == 0:
        yield 0, view
        return
    for i, start in enumerate(range(0, len(view), block_size)):
        yield i, view[start : start + block_size]


def block_count(size: int, block_size: int) -> int:
    return max(1, -(-size // block_size))


class IntegrityProvider:
    """Digest backend used by the integrity engine.

    Subclasses set ``algorithm`` (the name recorded in the header) and
    implement :meth:`digest`.
    """

    algorithm = ""

    def digest(self, data) -> str:
        raise NotImplementedError

    def compute(self, content, block_size: int = INTEGRITY_BLOCK_SIZE) -> IntegrityMetadata:
        blocks = [self.digest(block) for _i, block in iter_blocks(content, block_size)]
        return IntegrityMetadata(
            algorithm=self.algorithm,
            hash=self.digest(content),
            block_size=block_size,
            blocks=blocks,
        )

    def verify(self, content, metadata: IntegrityMetadata, path: str = "") -> None:
        """Raise an IntegrityError subclass if ``content`` does not match ``metadata``.

        Blocks are checked first so a localized corruption is reported with
        the index of the block containing it; the whole-content digest is
        checked last.
        """
        if metadata.algorithm != self.algorithm:
            raise UnsupportedAlgorithm(path, metadata.algorithm)
        stored = list(metadata.blocks)
        size = len(memoryview(content))
        expected_count = block_count(size, metadata.block_size)
        # Electron's streaming hasher appends a digest of the empty tail when
        # the size is an exact multiple of the block size.
        if (
            len(stored) == expected_count + 1
            and size > 0
            and size % metadata.block_size == 0
            and stored[-1] == self.digest(b"")
        ):
            stored.pop()
        for index, block in iter_blocks(content, metadata.block_size):
            actual = self.digest(block)
            expected = stored[index] if index < len(stored) else None
            if actual != expected:
                raise BlockHashMismatch(path, index, expected, actual)
        if len(stored) > expected_count:
            raise BlockHashMismatch(path, expected_count, stored[expected_count], None)
        whole = self.digest(content)
        if whole != metadata.hash:
            raise WholeHashMismatch(path, metadata.hash, whole)


class Sha256Provider(IntegrityProvider):
    algorithm = HASH_ALGORITHM_SHA256

    def digest(self, data) -> str:
        return SHA256.new(data=data).hexdigest()


SHA256_PROVIDER = Sha256Provider()

_PROVIDERS: Dict[str, IntegrityProvider] = {
    SHA256_PROVIDER.algorithm: SHA256_PROVIDER,
}


def default_providers() -> Dict[str, IntegrityProvider]:
    return dict(_PROVIDERS)


def get_provider(algorithm: str, providers: Optional[Dict[str, IntegrityProvider]] = None) -> Optional[IntegrityProvider]:
    return (providers if providers is not None else _PROVIDERS).get(algorithm)


def compute(content, block_size: int = INTEGRITY_BLOCK_SIZE) -> IntegrityMetadata:
    """Integrity metadata for ``content`` using the default SHA-256 provider."""
    return SHA256_PROVIDER.compute(content, block_size)


def verify(content, metadata: IntegrityMetadata, path: str = "") -> None:
    provider = get_provider(metadata.algorithm)
    if provider is None:
        raise UnsupportedAlgorithm(path, metadata.algorithm)
    provider.verify(content, metadata, path)
