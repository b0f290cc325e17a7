from __future__ import annotations

import argparse
import os
import random
import sys
from typing import Optional

from asar.reader import ArchiveReader
from asar.errors import AsarError


def _flip_byte(path: str, offset: int, xor_val: int = 0xFF) -> None:
    if offset < 0:
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        f.seek(offset)
        f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
        f.flush()
        os.fsync(f.fileno())


def _file_archive_offset(archive: str, arc_path: str, within: int) -> int:
    r = ArchiveReader.from_path(archive)
    f = r.get(arc_path)
    if f is None:
        raise ValueError(f"No such file in archive: {arc_path}")
    if f.unpacked:
        raise ValueError(f"File is unpacked; nothing to corrupt inside the archive: {arc_path}")
    if within < 0 or within >= f.size:
        raise ValueError(f"--within must be within file size (0..{f.size - 1})")
    return r.data_offset + f.offset + within


def cmd_by_offset(args: argparse.Namespace) -> None:
    _flip_byte(args.archive, args.offset, xor_val=args.xor)
    print(f"Flipped 1 byte at offset {args.offset}")


def cmd_file(args: argparse.Namespace) -> None:
    off = _file_archive_offset(args.archive, args.path, args.within)
    _flip_byte(args.archive, off, xor_val=args.xor)
    print(f"Flipped 1 byte in {args.path} at archive offset {off}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    r = ArchiveReader.from_path(args.archive)
    start = r.data_offset if args.data_only else 0
    size = os.path.getsize(args.archive)
    if start >= size:
        raise ValueError("Archive has no data blob to corrupt")
    flips = 0
    with open(args.archive, "r+b") as f:
        for _ in range(args.count):
            pos = rng.randrange(start, size)
            f.seek(pos)
            b = f.read(1)
            if not b:
                continue
            f.seek(pos)
            f.write(bytes([b[0] ^ (args.xor & 0xFF)]))
            flips += 1
        f.flush()
        os.fsync(f.fileno())
    print(f"Flipped {flips} byte(s) at random offsets")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="asar.corrupt", description="Corrupt asar archives for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute archive offset")
    p_off.add_argument("archive", help="Path to .asar archive")
    p_off.add_argument("--offset", type=int, required=True, help="Absolute byte offset in archive")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_file = sub.add_parser("file", help="Flip a byte inside a packed file")
    p_file.add_argument("archive", help="Path to .asar archive")
    p_file.add_argument("path", help="Archive path of the file to corrupt")
    p_file.add_argument("--within", type=int, default=0, help="Byte offset within the file (default 0)")
    p_file.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_file.set_defaults(func=cmd_file)

    p_rand = sub.add_parser("random", help="Flip N random bytes in the archive")
    p_rand.add_argument("archive", help="Path to .asar archive")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--data-only", action="store_true", help="Only flip bytes inside the data blob")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (AsarError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
