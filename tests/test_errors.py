"""Tests for the error taxonomy and unique-violation detection."""

from sqlalchemy.exc import IntegrityError

from otj_portal.errors import InvalidInput, PermissionDenied, StorageFailure, is_unique_constraint_error


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("driver error")
        self.pgcode = pgcode


def test_pgcode_unique_violation():
    exc = IntegrityError("INSERT ...", {}, _PgError("23505"))
    assert is_unique_constraint_error(exc) is True


def test_pgcode_other_integrity_error():
    """A not-null violation (23502) is not treated as a duplicate."""
    exc = IntegrityError("INSERT ...", {}, _PgError("23502"))
    assert is_unique_constraint_error(exc) is False


def test_sqlite_message_fallback():
    orig = Exception("UNIQUE constraint failed: weekly_otj_record.learner_id")
    exc = IntegrityError("INSERT ...", {}, orig)
    assert is_unique_constraint_error(exc) is True


def test_non_integrity_error():
    assert is_unique_constraint_error(ValueError("unique constraint failed")) is False


def test_error_payloads():
    assert InvalidInput("total_hours", "Bad").to_dict() == {
        "error": "InvalidInput",
        "message": "Bad",
        "field": "total_hours",
    }
    assert PermissionDenied("No").status_code == 403
    assert StorageFailure("Down").status_code == 503
