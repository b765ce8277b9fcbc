"""
Config and error-policy tests.
"""

import logging
from pathlib import Path

import pytest

from indexsync.config import RoutingMode, SyncConfig
from indexsync.errors import ExtractionError, StoreError, handle_error
from indexsync.models import LoopState, Observation, WatcherStatus


class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_paths_resolved_and_created(self, temp_dir):
        config = SyncConfig(
            db_path=temp_dir / "state" / "vectors.db",
            fulltext_path=temp_dir / "state" / "fulltext.db",
        )
        assert config.db_path == temp_dir / "state" / "vectors.db"
        assert config.db_path.parent.is_dir()

    def test_overlap_must_be_smaller(self, temp_dir):
        with pytest.raises(ValueError):
            SyncConfig(db_path=temp_dir / "v.db", fulltext_path=temp_dir / "f.db",
                       chunk_size=100, chunk_overlap=100)

    def test_extensions_lowercased(self, temp_dir):
        config = SyncConfig(db_path=temp_dir / "v.db", fulltext_path=temp_dir / "f.db",
                            text_extensions={".TXT"})
        assert config.is_supported_extension(Path("notes.txt"))
        assert not config.is_supported_extension(Path("notes.md"))

    def test_from_env(self, temp_dir, monkeypatch):
        monkeypatch.setenv("INDEXSYNC_DB_PATH", str(temp_dir / "env" / "vectors.db"))
        monkeypatch.setenv("INDEXSYNC_FULLTEXT_PATH", str(temp_dir / "env" / "fulltext.db"))
        monkeypatch.setenv("INDEXSYNC_ROUTING", "per_language")
        monkeypatch.setenv("INDEXSYNC_CHUNK_SIZE", "500")
        monkeypatch.setenv("INDEXSYNC_CHUNK_OVERLAP", "50")
        monkeypatch.setenv("INDEXSYNC_ORDERED_FULLTEXT", "1")

        config = SyncConfig.from_env()

        assert config.db_path == temp_dir / "env" / "vectors.db"
        assert config.routing == RoutingMode.PER_LANGUAGE
        assert (config.chunk_size, config.chunk_overlap) == (500, 50)
        assert config.ordered_fulltext
        assert not config.use_onnx

    def test_defaults(self, test_config):
        assert test_config.routing == RoutingMode.MULTILINGUAL
        assert test_config.hidden_prefix == "."
        assert ".pdf" in test_config.text_extensions
        assert ".docx" in test_config.text_extensions


class TestHandleError:
    """Tests for the error policy table."""

    def test_extraction_error_message(self, caplog):
        error = ExtractionError(Path("/docs/a.pdf"), "bad xref table")
        with caplog.at_level(logging.ERROR):
            message = handle_error(error, Path("/docs/a.pdf"), "extract")
        assert message == "Error indexing /docs/a.pdf: Text extraction failed: bad xref table"
        assert "[extract]" in caplog.text

    def test_store_error_policy(self):
        message = handle_error(StoreError("disk full"), Path("/docs/a.txt"))
        assert message == "Index write failed for /docs/a.txt: disk full"

    def test_permission_error_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            message = handle_error(PermissionError("denied"), Path("/docs/secret.txt"))
        assert message == "Permission denied: /docs/secret.txt"
        assert caplog.records[-1].levelno == logging.WARNING

    def test_unknown_error(self):
        message = handle_error(KeyError("x"))
        assert message.startswith("Unexpected error: <unknown>")


class TestSerialization:
    """Tests for the UI-facing dictionaries."""

    def test_observation_to_dict(self):
        observation = Observation("created", "/docs/a.txt", True, "Successfully indexed /docs/a.txt", 1700000000)
        assert observation.to_dict() == {
            "event_type": "created",
            "file_path": "/docs/a.txt",
            "timestamp": 1700000000,
            "success": True,
            "message": "Successfully indexed /docs/a.txt",
        }

    def test_observation_timestamp_is_epoch_seconds(self):
        observation = Observation("deleted", "/docs/a.txt", True, "ok")
        assert isinstance(observation.timestamp, int)
        assert observation.timestamp > 1_600_000_000

    def test_status_to_dict(self):
        status = WatcherStatus(True, "/docs", LoopState.RUNNING, 3, 1700000000)
        assert status.to_dict()["state"] == "running"
        assert status.to_dict()["events_processed"] == 3
