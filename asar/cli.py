from __future__ import annotations

import argparse
import fnmatch
import os
import shutil
import stat
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from asar.constants import UNPACKED_DIR_SUFFIX
from asar.errors import AsarError, IntegrityError
from asar.integrity import SHA256_PROVIDER
from asar.pathutil import norm_path
from asar.reader import ArchiveReader
from asar.writer import ArchiveWriter


def _glob_match(path: str, pattern: Optional[str]) -> bool:
    """Match a normalized archive path against a glob.

    Patterns without a slash also match the basename, so ``*.node`` selects
    native modules anywhere in the tree.
    """
    if not pattern:
        return False
    if fnmatch.fnmatchcase(path, pattern):
        return True
    return "/" not in pattern and fnmatch.fnmatchcase(path.rsplit("/", 1)[-1], pattern)


def _dir_matches(path: str, pattern: Optional[str]) -> bool:
    # True when any ancestor directory of path matches or starts with the pattern
    if not pattern:
        return False
    parts = path.split("/")[:-1]
    for i in range(1, len(parts) + 1):
        parent = "/".join(parts[:i])
        if _glob_match(parent, pattern) or parent.startswith(pattern):
            return True
    return False


def _read_ordering(path: str) -> List[str]:
    """Read an ordering file: one archive path per line, optional ``:weight`` suffix."""
    out: List[str] = []
    with open(path, "r", encoding="utf-8") as fh:
        for line in fh:
            entry = line.strip()
            if not entry:
                continue
            if ":" in entry:
                entry = entry.rsplit(":", 1)[0]
            try:
                out.append(norm_path(entry))
            except ValueError:
                continue
    return out


def _walk_sources(root: Path, *, exclude_hidden: bool) -> Iterable[Tuple[str, str, Path]]:
    """Yield ``(kind, archive_path, fs_path)`` for everything under ``root``.

    ``kind`` is "dir", "file" or "link". Directories are visited in sorted
    order so repeated packs of the same tree are byte-identical.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        filenames.sort()
        base = Path(dirpath)
        rel_base = base.relative_to(root).as_posix()
        rel_base = "" if rel_base == "." else rel_base
        keep_dirs = []
        for d in dirnames:
            if exclude_hidden and d.startswith("."):
                continue
            arc = f"{rel_base}/{d}" if rel_base else d
            if (base / d).is_symlink():
                yield "link", arc, base / d
                continue
            keep_dirs.append(d)
            yield "dir", arc, base / d
        dirnames[:] = keep_dirs
        for f in filenames:
            if exclude_hidden and f.startswith("."):
                continue
            arc = f"{rel_base}/{f}" if rel_base else f
            kind = "link" if (base / f).is_symlink() else "file"
            yield kind, arc, base / f


def _is_executable(fs_path: Path) -> bool:
    if os.name == "nt":
        return False
    return bool(fs_path.stat().st_mode & stat.S_IXUSR)


def cmd_pack(
    src_dir: str,
    output: str,
    *,
    unpack: Optional[str] = None,
    unpack_dir: Optional[str] = None,
    exclude_hidden: bool = False,
    ordering: Optional[str] = None,
    integrity: bool = True,
    quiet: bool = False,
) -> bool:
    """Pack a directory into an asar archive.

    Args:
        src_dir: Directory to pack; its contents become the archive root.
        output: Path of the archive to create.
        unpack: Glob of files to leave outside the archive (copied to ``OUTPUT.unpacked``).
        unpack_dir: Glob (or literal prefix) of directories whose files are left unpacked.
        exclude_hidden: Skip files and directories whose name starts with a dot.
        ordering: Text file listing archive paths to place first in the data blob.
        integrity: Record SHA-256 integrity metadata for each file.
    """
    root = Path(src_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Not a directory: {src_dir}")
    root_real = root.resolve()
    writer = ArchiveWriter(integrity=SHA256_PROVIDER if integrity else None)
    unpacked_root = Path(output + UNPACKED_DIR_SUFFIX)

    entries = list(_walk_sources(root, exclude_hidden=exclude_hidden))
    if ordering:
        rank = {p: i for i, p in enumerate(_read_ordering(ordering))}
        ordered = sorted((e for e in entries if e[1] in rank), key=lambda e: rank[e[1]])
        entries = ordered + [e for e in entries if e[1] not in rank]

    n_files = 0
    n_unpacked = 0
    for kind, arc_path, fs_path in entries:
        if kind == "dir":
            writer.write_dir(arc_path)
            continue
        if kind == "link":
            target = fs_path.resolve()
            try:
                rel_target = target.relative_to(root_real).as_posix()
            except ValueError:
                raise AsarError(f"Symlink {arc_path} points outside {src_dir}: {target}") from None
            writer.write_symlink(arc_path, rel_target)
            continue
        content = fs_path.read_bytes()
        executable = _is_executable(fs_path)
        if _glob_match(arc_path, unpack) or _dir_matches(arc_path, unpack_dir):
            writer.write_unpacked_file(arc_path, content, executable=executable)
            dst = unpacked_root / arc_path
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(fs_path, dst)
            n_unpacked += 1
            if not quiet:
                print(f"  unpacked: {arc_path}")
            continue
        writer.write_file(arc_path, content, executable=executable)
        n_files += 1
        if not quiet:
            print(f"    packed: {arc_path}")

    with open(output, "wb") as fh:
        written = writer.finalize(fh)
        os.fsync(fh.fileno())
    print(f"Done: {n_files} packed, {n_unpacked} unpacked; {written} bytes written to {output}")
    return True


def cmd_list(archive: str, *, details: bool = False) -> bool:
    """List the files of an archive, one ``/path`` per line."""
    r = ArchiveReader.from_path(archive)
    for path, f in r.files().items():
        if not details:
            print(f"/{path}")
            continue
        flags = "".join(["x" if f.executable else "-", "u" if f.unpacked else "-", "i" if f.integrity else "-"])
        print(f"{flags}\t{f.size}\t/{path}")
    if details:
        for path, target in r.symlinks().items():
            print(f"link\t-> {target}\t/{path}")
    return True


def _safe_join(dest: Path, arc_path: str) -> Path:
    out = (dest / arc_path).resolve()
    if out != dest and dest not in out.parents:
        raise AsarError(f"Archive path escapes destination: {arc_path}")
    return out


def cmd_extract(archive: str, dest: str, *, check_integrity: bool = False, quiet: bool = False) -> bool:
    """Extract every file of an archive under ``dest``."""
    r = ArchiveReader.from_path(archive, check_integrity=check_integrity)
    dest_root = Path(dest).resolve()
    dest_root.mkdir(parents=True, exist_ok=True)
    unpacked_root = Path(archive + UNPACKED_DIR_SUFFIX)
    for path in r.directories():
        if path:
            _safe_join(dest_root, path).mkdir(parents=True, exist_ok=True)
    extracted = 0
    for path, f in r.files().items():
        out = _safe_join(dest_root, path)
        out.parent.mkdir(parents=True, exist_ok=True)
        if f.unpacked:
            src = unpacked_root / path
            if not src.is_file():
                print(f"Warning: unpacked file missing from {unpacked_root}: {path}", file=sys.stderr)
                continue
            shutil.copy2(src, out)
        else:
            with open(out, "wb") as wf:
                wf.write(f.data())
        if f.executable and os.name != "nt":
            mode = out.stat().st_mode
            os.chmod(out, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        extracted += 1
        if not quiet:
            print(f"  extracting: {path}")
    for path, target in r.symlinks().items():
        out = _safe_join(dest_root, path)
        out.parent.mkdir(parents=True, exist_ok=True)
        link_target = os.path.relpath(dest_root / target, out.parent)
        try:
            if out.is_symlink() or out.exists():
                out.unlink()
            os.symlink(link_target, out)
        except (OSError, NotImplementedError) as exc:
            print(f"Warning: failed to create symlink {path}: {exc}", file=sys.stderr)
    if not quiet:
        print(f"Done: {extracted} files extracted to {dest}")
    return True


def cmd_extract_file(archive: str, filename: str, *, outdir: str = ".") -> bool:
    """Extract a single file into ``outdir`` under its base name."""
    r = ArchiveReader.from_path(archive)
    arc_path = norm_path(filename)
    f = r.get(arc_path)
    if f is None:
        raise AsarError(f"File not found in archive: {arc_path}")
    out = Path(outdir) / arc_path.rsplit("/", 1)[-1]
    with open(out, "wb") as wf:
        wf.write(f.data())
    print(f"Extracted {arc_path} to {out}")
    return True


def cmd_verify(archive: str) -> bool:
    """Verify every packed file against its integrity metadata.

    Prints:
        "OK" on success, "FAIL: <reason>" on an integrity mismatch.
    """
    try:
        r = ArchiveReader.from_path(archive, check_integrity=True)
    except IntegrityError as exc:
        print(f"FAIL: {exc}")
        return False
    missing = sum(1 for f in r.files().values() if f.integrity is None and not f.unpacked)
    if missing:
        print(f"Warning: {missing} file(s) carry no integrity metadata", file=sys.stderr)
    print("OK")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="asar",
        description="Read and write Electron asar archives",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Create asar archive")
    ap_pack.add_argument("dir", help="The directory to pack")
    ap_pack.add_argument("output", help="The output asar archive")
    ap_pack.add_argument("--unpack", help="Do not pack files matching glob <expression>")
    ap_pack.add_argument(
        "--unpack-dir",
        help="Do not pack dirs matching glob <expression> or starting with literal <expression>",
    )
    ap_pack.add_argument("--exclude-hidden", action="store_true", help="Exclude hidden files")
    ap_pack.add_argument("--ordering", help="Path to a text file for ordering contents")
    ap_pack.add_argument("--no-integrity", action="store_true", help="Do not record integrity hashes")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List files of asar archive")
    ap_list.add_argument("archive", help="The asar archive to list")
    ap_list.add_argument("--details", action="store_true", help="Show size and flags (x=executable, u=unpacked, i=integrity)")

    ap_extract = sub.add_parser("extract", help="Extract an asar archive")
    ap_extract.add_argument("archive", help="Archive to extract")
    ap_extract.add_argument("destination", help="The directory to extract to")
    ap_extract.add_argument("--check-integrity", action="store_true", help="Reject the archive on any integrity mismatch")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_extract_file = sub.add_parser("extract-file", help="Extract one file from an asar archive")
    ap_extract_file.add_argument("archive", help="Archive to extract")
    ap_extract_file.add_argument("filename", help="The file to extract from the archive")
    ap_extract_file.add_argument("--outdir", default=".", help="Output directory")

    ap_verify = sub.add_parser("verify", help="Verify archive integrity")
    ap_verify.add_argument("archive", help="Archive path")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "pack":
            cmd_pack(
                args.dir,
                args.output,
                unpack=args.unpack,
                unpack_dir=args.unpack_dir,
                exclude_hidden=args.exclude_hidden,
                ordering=args.ordering,
                integrity=not args.no_integrity,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(args.archive, details=args.details)
        elif args.cmd == "extract":
            cmd_extract(args.archive, args.destination, check_integrity=args.check_integrity, quiet=args.quiet)
        elif args.cmd == "extract-file":
            cmd_extract_file(args.archive, args.filename, outdir=args.outdir)
        elif args.cmd == "verify":
            ok = cmd_verify(args.archive)
            sys.exit(0 if ok else 1)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (AsarError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
