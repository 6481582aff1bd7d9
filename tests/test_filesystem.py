"""Tests for filesystem utilities."""

import os
from pathlib import Path

import pytest

from folio.database.models import ParsedFilename
from folio.scanner.filesystem import (
    ScanRootError,
    normalize_extensions,
    parse_filename,
    walk_files,
)
from folio.scanner.hashing import sha256_file


class TestParseFilename:
    """Tests for parse_filename function."""

    def test_simple_extension(self):
        result = parse_filename("Dune.EPUB")
        assert result == ParsedFilename(full="Dune.EPUB", base="Dune", extension="epub")

    def test_double_extension(self):
        result = parse_filename("archive.tar.gz")
        assert result == ParsedFilename(full="archive.tar.gz", base="archive.tar", extension="gz")

    def test_no_extension(self):
        result = parse_filename("README")
        assert result == ParsedFilename(full="README", base="README", extension=None)

    def test_dotfile_no_extension(self):
        result = parse_filename(".hidden")
        assert result == ParsedFilename(full=".hidden", base=".hidden", extension=None)

    def test_trailing_dot(self):
        result = parse_filename("book.")
        assert result == ParsedFilename(full="book.", base="book", extension=None)

    def test_empty_string(self):
        result = parse_filename("")
        assert result == ParsedFilename(full="", base="", extension=None)

    def test_multiple_dots(self):
        result = parse_filename("vol.1.part.2.pdf")
        assert result == ParsedFilename(full="vol.1.part.2.pdf", base="vol.1.part.2", extension="pdf")


class TestNormalizeExtensions:
    """Tests for normalize_extensions function."""

    def test_strips_dots_and_lowercases(self):
        assert normalize_extensions([".EPUB", "pdf", "Mobi"]) == {"epub", "pdf", "mobi"}

    def test_drops_empty_values(self):
        assert normalize_extensions(["", ".", "epub"]) == {"epub"}


class TestWalkFiles:
    """Tests for walk_files function."""

    def test_walks_empty_directory(self, tmp_path: Path):
        assert list(walk_files(tmp_path, ["epub"])) == []

    def test_filters_by_extension(self, tmp_path: Path):
        (tmp_path / "book.epub").write_text("a")
        (tmp_path / "paper.PDF").write_text("b")
        (tmp_path / "notes.txt").write_text("c")

        names = [f.parsed_filename.full for f in walk_files(tmp_path, [".epub", "pdf"])]
        assert names == ["book.epub", "paper.PDF"]

    def test_depth_first_sorted_order(self, tmp_path: Path):
        (tmp_path / "b").mkdir()
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "inner").mkdir()
        (tmp_path / "z.epub").write_text("z")
        (tmp_path / "b" / "b.epub").write_text("b")
        (tmp_path / "a" / "a.epub").write_text("a")
        (tmp_path / "a" / "inner" / "deep.epub").write_text("d")

        paths = [f.path.relative_to(tmp_path).as_posix() for f in walk_files(tmp_path, ["epub"])]
        assert paths == ["z.epub", "a/a.epub", "a/inner/deep.epub", "b/b.epub"]

    def test_skips_symlinks(self, tmp_path: Path):
        real_file = tmp_path / "real.epub"
        real_file.write_text("real")
        (tmp_path / "link.epub").symlink_to(real_file)
        (tmp_path / "linked_dir").symlink_to(tmp_path, target_is_directory=True)

        names = [f.parsed_filename.full for f in walk_files(tmp_path, ["epub"])]
        assert names == ["real.epub"]

    def test_records_size_and_mtime(self, tmp_path: Path):
        book = tmp_path / "book.epub"
        book.write_bytes(b"12345")
        os.utime(book, ns=(1_700_000_000_123_456_789, 1_700_000_000_123_456_789))

        (info,) = walk_files(tmp_path, ["epub"])
        assert info.size == 5
        assert info.modified_at == 1_700_000_000_123

    def test_missing_root_raises(self, tmp_path: Path):
        with pytest.raises(ScanRootError):
            list(walk_files(tmp_path / "nope", ["epub"]))

    def test_file_root_raises(self, tmp_path: Path):
        book = tmp_path / "book.epub"
        book.write_text("a")
        with pytest.raises(ScanRootError):
            list(walk_files(book, ["epub"]))

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores directory permissions")
    def test_unreadable_subdirectory_reported(self, tmp_path: Path):
        locked = tmp_path / "locked"
        locked.mkdir()
        (locked / "hidden.epub").write_text("x")
        (tmp_path / "open.epub").write_text("y")
        locked.chmod(0)
        errors = []
        try:
            names = [
                f.parsed_filename.full
                for f in walk_files(tmp_path, ["epub"], lambda d, e: errors.append(d))
            ]
        finally:
            locked.chmod(0o755)

        assert names == ["open.epub"]
        assert errors == [locked]


class TestSha256File:
    """Tests for sha256_file function."""

    def test_known_digest(self, tmp_path: Path):
        path = tmp_path / "abc.bin"
        path.write_bytes(b"abc")
        assert sha256_file(path) == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_small_chunks_same_digest(self, tmp_path: Path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"x" * 10_000)
        assert sha256_file(path, chunk_size=7) == sha256_file(path)
