"""
asar: reader and writer for Electron's asar archive format.

An asar archive is a length-prefixed JSON header describing a directory tree
(names, sizes, offsets, executable bits, integrity digests) followed by the
concatenated bytes of every packed file.

- Envelope codec for the 16-byte pickle-style prefix and padded JSON header
- Shared Directory/File/Link tree model with ordered, reproducible output
- Zero-copy reader over an in-memory buffer, optional integrity-on-read gate
- Writer with deterministic depth-first offset assignment
- Chunked SHA-256 integrity (4 MiB blocks) behind a provider interface
"""

__version__ = "0.3.0"

__all__ = [
    "constants",
    "envelope",
    "tree",
    "integrity",
    "reader",
    "writer",
    "errors",
]

# Programmatic API lives in asar.reader (ArchiveReader/open_archive) and
# asar.writer (ArchiveWriter); asar.cli wraps them for the command line.
