"""Error taxonomy for weekly OTJ tracking.

Absence of a weekly record is *not* an error: lookups return ``None``.  The
exceptions below cover bad input, permission problems, id-addressed records
that do not exist, and failures of the persistence layer.
"""

from sqlalchemy.exc import IntegrityError


class OtjError(Exception):
    """Base class for all domain errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message}


class InvalidInput(OtjError):
    """A submitted value was rejected before reaching the calculator.

    ``field`` names the offending input so the caller can re-prompt for it.
    """

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class PermissionDenied(OtjError):
    status_code = 403


class RecordNotFound(OtjError):
    """Raised only when a record is addressed by its primary key."""

    status_code = 404


class StorageFailure(OtjError):
    """The database could not complete a read or write.

    The original exception is kept on ``__cause__`` (``raise ... from exc``).
    """

    status_code = 503


def is_unique_constraint_error(exc: Exception) -> bool:
    """Return True if *exc* is a unique-constraint violation.

    Detection strategy (most-to-least reliable):
    1. SQLAlchemy IntegrityError + SQLSTATE/PGCODE '23505' (PostgreSQL unique
       violation) via the underlying driver's ``orig`` attribute.
    2. Message-based fallback covering SQLite ('unique constraint failed') and
       any driver that doesn't expose a structured error code.
    """
    if not isinstance(exc, IntegrityError):
        return False
    orig = getattr(exc, "orig", None)
    if orig is not None:
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code is not None:
            return code == "23505"
    msg = str(exc).lower()
    return any(kw in msg for kw in ("unique constraint failed", "unique violation", "duplicate key value"))
