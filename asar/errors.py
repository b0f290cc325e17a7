from __future__ import annotations

from typing import Optional


class AsarError(Exception):
    """Base class for asar-specific errors."""


# Envelope / header
class MalformedHeader(AsarError):
    pass


class InvalidJson(AsarError):
    pass


# Tree construction
class PathConflict(AsarError):
    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(message or f"Path conflicts with an existing entry: {path}")
        self.path = path


class NotPacked(AsarError):
    def __init__(self, path: str):
        super().__init__(f"File is unpacked; its contents are not stored in the archive: {path}")
        self.path = path


# Integrity
class IntegrityError(AsarError):
    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path


class WholeHashMismatch(IntegrityError):
    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(path, f"Integrity hash mismatch for {path or '<content>'}")
        self.expected = expected
        self.actual = actual


class BlockHashMismatch(IntegrityError):
    def __init__(self, path: str, index: int, expected: Optional[str], actual: Optional[str]):
        super().__init__(path, f"Integrity block {index} mismatch for {path or '<content>'}")
        self.index = index
        self.expected = expected
        self.actual = actual


class UnsupportedAlgorithm(IntegrityError):
    def __init__(self, path: str, algorithm: str):
        super().__init__(path, f"Unsupported integrity algorithm {algorithm!r} for {path or '<content>'}")
        self.algorithm = algorithm
