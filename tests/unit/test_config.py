"""Unit tests for configuration and errors."""

import pytest
from pydantic import ValidationError

from tracelens.common.config import (
    DependencySettings,
    IngestionSettings,
    Settings,
    StorageSettings,
)
from tracelens.common.exceptions import (
    DependencyJobError,
    KeyspaceNotFoundError,
    SpanIngestionError,
    TraceLensError,
)


@pytest.mark.unit
class TestSettings:
    """Test cases for settings loading."""

    def test_defaults(self):
        settings = Settings()

        assert settings.storage.keyspace == "zipkin"
        assert settings.ingestion.chunk_size == 100
        assert settings.ingestion.drain_timeout_seconds is None
        assert settings.dependencies.unknown_service_name == "unknown"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("STORAGE_KEYSPACE", "traces")
        monkeypatch.setenv("STORAGE_CONTACT_POINTS", "db1:5432,db2:5433")
        monkeypatch.setenv("INGESTION_CHUNK_SIZE", "50")

        assert StorageSettings().keyspace == "traces"
        assert StorageSettings().contact_point_list == ["db1:5432", "db2:5433"]
        assert IngestionSettings().chunk_size == 50

    def test_chunk_size_bounds(self):
        with pytest.raises(ValidationError):
            IngestionSettings(chunk_size=0)

    def test_drain_timeout_positive(self):
        with pytest.raises(ValidationError):
            IngestionSettings(drain_timeout_seconds=0)

    def test_unknown_name_lowercased(self):
        assert DependencySettings(unknown_service_name=" Unknown ").unknown_service_name == "unknown"

    def test_password_hidden(self):
        settings = StorageSettings(password="s3cret")
        assert "s3cret" not in repr(settings)
        assert settings.password.get_secret_value() == "s3cret"


@pytest.mark.unit
class TestExceptions:
    """Test cases for the error hierarchy."""

    def test_to_dict(self):
        cause = ConnectionError("refused")
        error = SpanIngestionError("Writing chunk 2 failed", details={"chunk": 2}, cause=cause)

        result = error.to_dict()

        assert result["error"] == "INGESTION_ERROR"
        assert result["message"] == "Writing chunk 2 failed"
        assert result["details"] == {"chunk": 2}
        assert "refused" in result["cause"]

    def test_default_message(self):
        error = KeyspaceNotFoundError()

        assert str(error) == "Keyspace does not exist"
        assert isinstance(error, DependencyJobError)
        assert isinstance(error, TraceLensError)
        assert error.to_dict()["phase"] == "check"
