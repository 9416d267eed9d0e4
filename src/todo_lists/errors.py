from __future__ import annotations

from typing import Optional


# PUBLIC_INTERFACE
class TodoListError(Exception):
    """
    Base class of the closed set of errors the todo-list core may raise.

    Subclasses carry a stable `code` used by the HTTP boundary and a
    client-facing `message`. `detail` holds internal context for logs only.
    """

    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class InvalidPayloadError(TodoListError):
    """Client-supplied data failed validation. Never touches storage."""

    code = "INVALID_PAYLOAD"


class NotFoundError(TodoListError):
    """No record exists for the given id."""

    code = "DATA_NOT_FOUND"

    def __init__(self, message: str = "todo list not found", detail: Optional[str] = None) -> None:
        super().__init__(message, detail)


class StorageError(TodoListError):
    """Backing store failure: connectivity, constraint violation, lock timeout, commit failure."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str = "internal server error", detail: Optional[str] = None) -> None:
        super().__init__(message, detail)


class CancelledError(TodoListError):
    """The operation was abandoned because the caller cancelled it or its deadline passed."""

    code = "REQUEST_CANCELLED"

    def __init__(self, message: str = "request cancelled", detail: Optional[str] = None) -> None:
        super().__init__(message, detail)
