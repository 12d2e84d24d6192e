"""
Error kinds raised by the CV services and their HTTP mapping.

Services raise these; routes convert them with to_http_exception so the admin UI
can tell "nothing changed" failures apart from a committed upload.
"""
from fastapi import HTTPException, status
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as SATimeoutError


class CVError(Exception):
    """Base class for CV subsystem errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CVError):
    """Referenced user or version does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class InvalidOperationError(CVError):
    """Request is well-formed but not allowed in the current state."""

    status_code = status.HTTP_400_BAD_REQUEST


class LastVersionError(InvalidOperationError):
    """Deleting the only remaining version of a user."""

    status_code = status.HTTP_409_CONFLICT


class StorageError(CVError):
    """Object store put/get/delete failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class PersistenceError(CVError):
    """Metadata store operation failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class TransientNetworkError(CVError):
    """Timed out talking to the object store or the database."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT


def to_http_exception(exc: CVError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": type(exc).__name__, "message": exc.message},
    )


# Driver messages for lock waits and busy databases that gave up after their timeout
_TRANSIENT_DB_MESSAGES = (
    "timeout",
    "timed out",
    "database is locked",
    "database table is locked",
    "lock wait",
)
# Postgres lock_not_available and query_canceled (lock_timeout / statement_timeout)
_TRANSIENT_SQLSTATES = ("55P03", "57014")


def _is_transient_db_error(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _TRANSIENT_DB_MESSAGES)


def from_db_error(exc: SQLAlchemyError) -> CVError:
    """Classify a SQLAlchemy failure. Timeouts, lock waits and lost connections are transient."""
    if isinstance(exc, SATimeoutError):
        return TransientNetworkError(f"Database pool timed out: {exc}")
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransientNetworkError(f"Database connection lost: {exc}")
    if isinstance(exc, OperationalError) and _is_transient_db_error(exc):
        return TransientNetworkError(f"Database timed out: {exc}")
    return PersistenceError(f"Database operation failed: {exc}")
