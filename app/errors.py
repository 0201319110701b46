"""
Error taxonomy for the portfolio backend.

Each error carries the HTTP status the route layer answers with. The
exception handler in main.py turns any PortfolioError into
``{"success": false, "message": ...}``.
"""

from typing import Any, Mapping, Optional


class PortfolioError(Exception):
    """Base class for errors surfaced to the route layer."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(PortfolioError):
    """Missing or malformed request fields."""

    status_code = 400
    public_message = "Invalid request"


class AuthError(PortfolioError):
    """Bad credentials or missing session. Message stays generic."""

    status_code = 401
    public_message = "Unauthorized"


class NotFoundError(PortfolioError):
    """Operation targets a row that does not exist."""

    status_code = 404
    public_message = "Not found"


class StorageError(PortfolioError):
    """
    Connection, query or schema failure.

    Keeps the failing statement and its parameters for diagnostics; they are
    logged but never sent to the client.
    """

    status_code = 500
    public_message = "Database error"

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.statement = statement
        self.params = dict(params) if params else {}


class StorageBusyError(StorageError):
    """The database stayed locked by another writer past the busy timeout."""
