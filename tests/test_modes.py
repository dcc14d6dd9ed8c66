"""Tests for link modes and their identity checks."""

from __future__ import annotations

import os

import pytest

from monoinject.exceptions import InvalidConfigurationError
from monoinject.linker.modes import LinkMode, is_linked, link_file


@pytest.fixture
def src(tmp_path):
    path = tmp_path / "src.txt"
    path.write_text("original")
    return path


class TestParse:
    def test_known(self):
        assert LinkMode.parse("hard-link") is LinkMode.HARD_LINK
        assert LinkMode.parse("sym-link") is LinkMode.SYM_LINK
        assert LinkMode.parse("copy") is LinkMode.COPY

    def test_unknown(self):
        with pytest.raises(InvalidConfigurationError, match="hard-link, sym-link, copy"):
            LinkMode.parse("junction")


class TestHardLink:
    def test_link_shares_inode(self, src, tmp_path):
        dest = tmp_path / "dest.txt"
        link_file(src, dest, LinkMode.HARD_LINK)
        assert os.stat(src).st_ino == os.stat(dest).st_ino
        assert is_linked(src, dest, LinkMode.HARD_LINK)

    def test_equal_copy_is_not_linked(self, src, tmp_path):
        dest = tmp_path / "dest.txt"
        dest.write_text("original")
        assert not is_linked(src, dest, LinkMode.HARD_LINK)


class TestSymLink:
    def test_link_resolves_to_source(self, src, tmp_path):
        dest = tmp_path / "dest.txt"
        link_file(src, dest, LinkMode.SYM_LINK)
        assert dest.is_symlink()
        assert is_linked(src, dest, LinkMode.SYM_LINK)

    def test_regular_file_is_not_linked(self, src, tmp_path):
        dest = tmp_path / "dest.txt"
        dest.write_text("original")
        assert not is_linked(src, dest, LinkMode.SYM_LINK)


class TestCopy:
    def test_copy_is_byte_equal(self, src, tmp_path):
        dest = tmp_path / "dest.txt"
        link_file(src, dest, LinkMode.COPY)
        assert not dest.is_symlink()
        assert os.stat(src).st_ino != os.stat(dest).st_ino
        assert is_linked(src, dest, LinkMode.COPY)

    def test_edited_copy_is_not_linked(self, src, tmp_path):
        dest = tmp_path / "dest.txt"
        link_file(src, dest, LinkMode.COPY)
        dest.write_text("edited")
        assert not is_linked(src, dest, LinkMode.COPY)
