"""Tests for the typed process snapshot."""

from cloudconvert.models import ProcessSnapshot


class TestProcessSnapshot:
    """Test decoding of process status documents."""

    def test_full_document(self):
        """Test that all known fields are decoded."""
        snapshot = ProcessSnapshot.from_json({
            "url": "//host.cloudconvert.com/process/abc",
            "id": "abc",
            "step": "finished",
            "percent": 100,
            "message": "Conversion finished!",
            "upload": {"url": "//host.cloudconvert.com/upload/~abc"},
            "output": {"url": "//host.cloudconvert.com/download/~abc", "filename": "file.pdf"},
        })

        assert snapshot.url == "//host.cloudconvert.com/process/abc"
        assert snapshot.id == "abc"
        assert snapshot.percent == 100.0
        assert snapshot.upload_url == "//host.cloudconvert.com/upload/~abc"
        assert snapshot.output_url == "//host.cloudconvert.com/download/~abc"
        assert snapshot.output_filename == "file.pdf"
        assert snapshot.is_finished
        assert not snapshot.is_error

    def test_missing_fields_are_none(self):
        """Test that absent fields decode to None."""
        snapshot = ProcessSnapshot.from_json({"step": "convert"})

        assert snapshot.url is None
        assert snapshot.percent is None
        assert snapshot.output_url is None
        assert not snapshot.is_finished

    def test_wrong_types_are_none(self):
        """Test that unexpected types never raise."""
        snapshot = ProcessSnapshot.from_json({
            "url": 12,
            "percent": {"value": 1},
            "message": ["a"],
            "output": "not-a-dict",
            "upload": {"url": None},
        })

        assert snapshot.url is None
        assert snapshot.percent is None
        assert snapshot.message is None
        assert snapshot.output_url is None
        assert snapshot.upload_url is None

    def test_non_mapping_document(self):
        """Test that a list or None gives an empty snapshot."""
        assert ProcessSnapshot.from_json(None) == ProcessSnapshot()
        assert ProcessSnapshot.from_json([1, 2]) == ProcessSnapshot()

    def test_raw_access(self):
        """Test that unknown keys stay reachable."""
        snapshot = ProcessSnapshot.from_json({"minutes": 3})

        assert snapshot.get("minutes") == 3
        assert snapshot.get("missing", "default") == "default"
