"""
Unit tests for Pydantic models and the storage error taxonomy.
"""

import json
import pytest
from pydantic import ValidationError

from hybridstore.models.files import (
    FileUpload,
    ProviderName,
    StoredFile,
    SyncOutcome,
    SyncStatus,
    TargetResult,
    normalize_path,
)
from hybridstore.models.health import SyncSummary
from hybridstore.models.migration import MigrationStatus
from hybridstore.models.responses import ErrorResponse, MigrateRequest, SuccessResponse
from hybridstore.api.errors import error_response, status_for
from hybridstore.storage.errors import (
    AlreadyInProgressError,
    AuthenticationFailedError,
    BackendTimeoutError,
    ErrorKind,
    NotFoundError,
    PartialFailureError,
    PreconditionFailedError,
    SizeOrTypeRejectedError,
    UnhealthyError,
    UnreachableError,
)


class TestPaths:
    """Test cases for logical path normalization."""

    def test_normalize(self):
        assert normalize_path("/transactions/1/receipt.pdf") == "transactions/1/receipt.pdf"
        assert normalize_path("transactions\\1\\receipt.pdf") == "transactions/1/receipt.pdf"
        assert normalize_path("a//./b.txt") == "a/b.txt"

    @pytest.mark.parametrize("path", ["", "/", "../secret.txt", "a/../../b"])
    def test_rejects_invalid(self, path):
        with pytest.raises(ValueError):
            normalize_path(path)

    def test_upload_validation(self):
        """Test that uploads normalize their path and report their size."""
        upload = FileUpload(path="/scans/a.png", content=b"12345", mime_type="image/png")
        assert upload.path == "scans/a.png"
        assert upload.size_bytes == 5

        with pytest.raises(ValidationError):
            FileUpload(path="../a.png", content=b"x")


class TestFileModels:
    """Test cases for stored-file and sync models."""

    def test_stored_file(self):
        stored = StoredFile(path="a.pdf", provider="cloud-a", size_bytes=10)
        assert stored.provider == ProviderName.CLOUD_A
        assert stored.mime_type == "application/octet-stream"
        assert stored.uploaded_at.tzinfo is not None

        with pytest.raises(ValidationError):
            StoredFile(path="a.pdf", provider="cloud-z", size_bytes=10)
        with pytest.raises(ValidationError):
            StoredFile(path="a.pdf", provider="local", size_bytes=-1)

    def test_sync_outcome_breakdown(self):
        outcome = SyncOutcome(
            path="a.pdf",
            status=SyncStatus.PARTIAL_FAILURE,
            results={
                ProviderName.CLOUD_A: TargetResult(provider="cloud-a", success=False, error_kind="unreachable"),
                ProviderName.CLOUD_B: TargetResult(provider="cloud-b", success=True, url="https://x/a.pdf"),
            },
        )
        assert outcome.succeeded == [ProviderName.CLOUD_B]
        assert outcome.failed == [ProviderName.CLOUD_A]

        data = json.loads(outcome.model_dump_json())
        assert data["status"] == "partial_failure"
        assert set(data["results"]) == {"cloud-a", "cloud-b"}

    def test_migration_status_defaults(self):
        status = MigrationStatus()
        assert status.in_progress is False
        assert status.processed_files == 0
        assert status.errors == []
        assert status.last_migration is None

    def test_sync_summary(self):
        summary = SyncSummary(
            tables={"accounts": 2, "transactions": 5},
            failed_tables={},
            started_at="2024-03-15T14:30:22Z",
            finished_at="2024-03-15T14:30:23Z",
        )
        assert summary.total_rows == 7
        assert summary.complete is True

    def test_migrate_request(self):
        with pytest.raises(ValidationError):
            MigrateRequest(source="local", destination="dropbox")


class TestErrors:
    """Test cases for the error taxonomy and its HTTP rendering."""

    def test_kinds(self):
        assert UnreachableError("x").kind == ErrorKind.UNREACHABLE
        assert BackendTimeoutError("x").kind == ErrorKind.UNREACHABLE
        assert AuthenticationFailedError("x").kind == ErrorKind.UNHEALTHY
        assert PartialFailureError("x", completed=["a"]).completed == ["a"]

    def test_str_and_dict(self):
        error = PreconditionFailedError("Target is down", backend="backup", code="target_unavailable")
        assert str(error) == "[backup] Target is down"
        assert error.to_dict() == {
            "kind": "precondition_failed",
            "backend": "backup",
            "code": "target_unavailable",
            "message": "Target is down",
        }

    @pytest.mark.parametrize("error,status", [
        (UnreachableError("x"), 503),
        (UnhealthyError("x"), 503),
        (AlreadyInProgressError("x"), 409),
        (PreconditionFailedError("x"), 412),
        (SizeOrTypeRejectedError("x", code="size_exceeded"), 413),
        (SizeOrTypeRejectedError("x", code="type_rejected"), 415),
        (PartialFailureError("x"), 207),
        (NotFoundError("x"), 404),
    ])
    def test_status_codes(self, error, status):
        assert status_for(error) == status

    def test_error_response(self):
        response = error_response(NotFoundError("No file is registered at a.pdf", code="unknown_file"))
        assert isinstance(response, ErrorResponse)
        assert response.success is False
        assert response.error == "not_found"
        assert response.details[0].code == "unknown_file"

    def test_success_response(self):
        response = SuccessResponse(message="Deleted a.pdf", data={"path": "a.pdf"})
        assert response.success is True
