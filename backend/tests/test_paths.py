"""Tests for repository path normalization."""

import pytest

from gitstack.code.paths import folder_prefix, normalize_base_path, normalize_path, placeholder_path
from gitstack.errors import ValidationError


def test_normalize_path_strips_slashes() -> None:
    """Leading and trailing slashes are removed; backslashes become slashes."""
    assert normalize_path("/docs/readme.md/") == "docs/readme.md"
    assert normalize_path("docs\\guide.md") == "docs/guide.md"


def test_normalize_path_accepts_unicode_and_spaces() -> None:
    assert normalize_path("Dokumente/Übersicht (1).txt") == "Dokumente/Übersicht (1).txt"


def test_normalize_path_rejects_traversal() -> None:
    with pytest.raises(ValidationError):
        normalize_path("../etc/passwd")
    with pytest.raises(ValidationError):
        normalize_path("a/./b")


def test_normalize_path_rejects_empty_segment_and_empty_path() -> None:
    with pytest.raises(ValidationError):
        normalize_path("a//b")
    with pytest.raises(ValidationError, match="required"):
        normalize_path("///")


def test_normalize_path_rejects_control_chars() -> None:
    with pytest.raises(ValidationError, match="Unsafe path segment"):
        normalize_path("dir/file\x00name.txt")


def test_normalize_base_path_allows_root() -> None:
    assert normalize_base_path("") == ""
    assert normalize_base_path("/") == ""
    assert normalize_base_path("/a/b/") == "a/b"


def test_folder_prefix_has_trailing_slash() -> None:
    """Prefix for a/b must not match a/bc."""
    prefix = folder_prefix("a/b/")
    assert prefix == "a/b/"
    assert "a/b/c/d.txt".startswith(prefix)
    assert not "a/bc/e.txt".startswith(prefix)


def test_placeholder_path() -> None:
    assert placeholder_path("/docs/") == "docs/.gitkeep"
