"""Tests for download destination resolution."""

import pytest

from cloudconvert.errors import InvalidState
from cloudconvert.utils.storage import LocalStorage


class TestLocalStorage:
    """Test where downloaded files are placed."""

    def test_default_base_path(self, monkeypatch, tmp_path):
        """Test that the default location is the user's Documents folder."""
        monkeypatch.setenv("HOME", str(tmp_path))
        storage = LocalStorage()

        assert storage.base_path == tmp_path / "Documents"

    def test_explicit_file_path(self, tmp_path):
        """Test that a file path is used as given."""
        storage = LocalStorage(base_path=tmp_path / "docs")
        target = tmp_path / "result.pdf"

        destination = storage.resolve_destination(target, "server.pdf", tmp_path / "tmp")

        assert destination == str(target)

    def test_existing_file_is_removed(self, tmp_path):
        """Test that a pre-existing file at the destination is deleted."""
        storage = LocalStorage(base_path=tmp_path / "docs")
        target = tmp_path / "result.pdf"
        target.write_bytes(b"old")

        storage.resolve_destination(target, "server.pdf", tmp_path / "tmp")

        assert not target.exists()

    def test_directory_gets_suggested_filename(self, tmp_path):
        """Test that a directory path is joined with the server's filename."""
        storage = LocalStorage(base_path=tmp_path / "docs")
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        (out_dir / "server.pdf").write_bytes(b"old")

        destination = storage.resolve_destination(out_dir, "server.pdf", tmp_path / "tmp")

        assert destination == str(out_dir / "server.pdf")
        assert not (out_dir / "server.pdf").exists()

    def test_directory_without_filename(self, tmp_path):
        """Test that a directory cannot be used when the server sent no filename."""
        storage = LocalStorage(base_path=tmp_path / "docs")

        with pytest.raises(InvalidState):
            storage.resolve_destination(tmp_path, None, tmp_path / "tmp")

    def test_default_directory(self, tmp_path):
        """Test that no path means base_path plus the suggested filename."""
        storage = LocalStorage(base_path=tmp_path / "docs")

        destination = storage.resolve_destination(None, "server.pdf", tmp_path / "tmp")

        assert destination == str(tmp_path / "docs" / "server.pdf")
        assert (tmp_path / "docs").is_dir()

    def test_temporary_location_is_kept(self, tmp_path):
        """Test that without path and filename the temporary file stays."""
        storage = LocalStorage(base_path=tmp_path / "docs")
        temporary = tmp_path / "cloudconvert-123"

        assert storage.resolve_destination(None, None, temporary) == str(temporary)

    def test_remove_existing(self, tmp_path):
        """Test removing files and ignoring missing ones."""
        storage = LocalStorage(base_path=tmp_path)
        target = tmp_path / "a.txt"
        target.write_text("x")

        assert storage.remove_existing(target) is True
        assert storage.remove_existing(target) is False
