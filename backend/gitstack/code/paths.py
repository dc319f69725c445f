"""Repository path normalization (no traversal, no control characters)."""

import unicodedata
from typing import List

from gitstack.errors import ValidationError

PLACEHOLDER_NAME = ".gitkeep"


def _is_safe_path_char(c: str) -> bool:
    """True if char is allowed in a path segment (no separators, no control chars)."""
    if c in "/\\":
        return False
    if ord(c) < 32 or ord(c) == 127:
        return False
    return not unicodedata.category(c).startswith("C")


def _check_segment(segment: str, path: str) -> str:
    if segment in ("", ".", ".."):
        raise ValidationError(f"Invalid path segment {segment!r} in {path!r}")
    if not all(_is_safe_path_char(c) for c in segment):
        raise ValidationError(f"Unsafe path segment: {segment!r}")
    return segment


def normalize_base_path(path: str) -> str:
    """Strip leading/trailing slashes from a tree listing prefix. Empty means root."""
    return (path or "").replace("\\", "/").strip("/")


def normalize_path(path: str) -> str:
    """
    Normalize a file or folder path inside a snapshot: forward slashes, no surrounding
    slashes, every segment non-empty and free of '.', '..' and control characters.
    Raises ValidationError for anything else.
    """
    cleaned = normalize_base_path(path)
    if not cleaned:
        raise ValidationError("Path is required")
    return "/".join(_check_segment(part, path) for part in cleaned.split("/"))


def folder_prefix(path: str) -> str:
    """Prefix that matches only descendants of folder path (trailing slash included)."""
    return normalize_path(path) + "/"


def placeholder_path(folder: str) -> str:
    """Path of the zero-byte file that makes an empty folder visible."""
    return f"{normalize_path(folder)}/{PLACEHOLDER_NAME}"


def parent_paths(path: str) -> List[str]:
    """Folder paths above path, outermost first ('a/b/c' -> ['a', 'a/b'])."""
    parts = path.split("/")
    return ["/".join(parts[:i]) for i in range(1, len(parts))]
