from __future__ import annotations

from typing import List


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments

    The empty string denotes the archive root.
    """
    p = str(p).replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def split_path(p: str) -> List[str]:
    """Return the normalized components of ``p`` ([] for the root)."""
    p = norm_path(p)
    return p.split("/") if p else []


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def is_valid_name(name: str) -> bool:
    """True when ``name`` can be a single directory entry name."""
    if name in ("", ".", ".."):
        return False
    return "/" not in name and "\\" not in name
