"""
Unit tests for the sincedb offset store
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from logship.core.exceptions import SinceDBError
from logship.inputs.docker.sincedb import SinceDB, START_END


class TestSinceDBLoad:
    """Test cases for loading positions"""

    def test_missing_file_starts_empty(self, tmp_path):
        db = SinceDB(tmp_path / "sincedb")
        assert len(db) == 0
        assert db.get("abc") is None
        assert not db.dirty

    def test_loads_existing_positions(self, tmp_path):
        path = tmp_path / "sincedb"
        path.write_text(json.dumps({
            "abc": {"position": 42, "updated_at": "2024-01-01T00:00:00+00:00"},
            "def": {"position": 7},
        }))

        db = SinceDB(path)
        assert db.get("abc") == 42
        assert db.get("def") == 7
        assert "abc" in db

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "sincedb"
        path.write_text("{not json")

        db = SinceDB(path)
        assert len(db) == 0

    def test_malformed_entries_are_skipped(self, tmp_path):
        path = tmp_path / "sincedb"
        path.write_text(json.dumps({
            "good": {"position": 5},
            "bad": {"offset": 5},
            "worse": "nope",
        }))

        db = SinceDB(path)
        assert db.get("good") == 5
        assert "bad" not in db
        assert "worse" not in db

    def test_non_mapping_content_starts_empty(self, tmp_path):
        path = tmp_path / "sincedb"
        path.write_text("[1, 2, 3]")
        assert len(SinceDB(path)) == 0


class TestSinceDBPositions:
    """Test cases for reading and updating positions"""

    def test_get_or_create_from_beginning(self, sincedb):
        assert sincedb.get_or_create("abc") == 0
        assert sincedb.get("abc") == 0
        assert sincedb.dirty

    def test_get_or_create_from_end(self, tmp_path):
        db = SinceDB(tmp_path / "sincedb", start_position=START_END)
        with patch("logship.inputs.docker.sincedb.time.time_ns", return_value=123456789):
            assert db.get_or_create("abc") == 123456789

    def test_get_or_create_keeps_existing(self, sincedb):
        sincedb.set("abc", 99)
        assert sincedb.get_or_create("abc") == 99

    def test_set_overwrites(self, sincedb):
        sincedb.set("abc", 1)
        sincedb.set("abc", 2)
        assert sincedb.get("abc") == 2

    def test_remove(self, sincedb):
        sincedb.set("abc", 1)
        sincedb.flush()
        sincedb.remove("abc")
        assert sincedb.get("abc") is None
        assert sincedb.dirty

    def test_remove_unknown_is_noop(self, sincedb):
        sincedb.remove("missing")
        assert not sincedb.dirty


class TestSinceDBFlush:
    """Test cases for persisting positions"""

    def test_flush_round_trip(self, tmp_path):
        path = tmp_path / "sincedb"
        db = SinceDB(path)
        db.set("abc", 1_700_000_000_123_456_789)

        assert db.flush() is True
        assert not db.dirty

        data = json.loads(path.read_text())
        assert data["abc"]["position"] == 1_700_000_000_123_456_789
        assert data["abc"]["updated_at"]
        assert SinceDB(path).get("abc") == 1_700_000_000_123_456_789

    def test_flush_skips_when_clean(self, tmp_path):
        path = tmp_path / "sincedb"
        db = SinceDB(path)
        assert db.flush() is False
        assert not path.exists()

    def test_flush_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "sincedb"
        db = SinceDB(path)
        db.set("abc", 1)
        db.flush()
        assert not (tmp_path / "sincedb.tmp").exists()

    def test_flush_creates_parent_directory(self, tmp_path):
        path = tmp_path / "state" / "docker" / "sincedb"
        db = SinceDB(path)
        db.set("abc", 1)
        db.flush()
        assert path.exists()

    def test_flush_failure_keeps_store_dirty(self, sincedb):
        sincedb.set("abc", 1)
        with patch.object(Path, "replace", side_effect=OSError("disk full")):
            with pytest.raises(SinceDBError) as exc_info:
                sincedb.flush()
        assert "disk full" in exc_info.value.message
        assert sincedb.dirty

        # Next flush retries
        assert sincedb.flush() is True

    def test_close_logs_instead_of_raising(self, sincedb):
        sincedb.set("abc", 1)
        with patch.object(Path, "replace", side_effect=OSError("disk full")):
            sincedb.close()
        assert sincedb.dirty
