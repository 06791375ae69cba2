# stampchat/core/errors.py

from __future__ import annotations


class ChatError(Exception):
    """Base class for every error raised by the synchronization core."""


class ValidationError(ChatError):
    """
    User input failed a precondition.

    Raised before any store call is made, so the operation has no side
    effects. `field` names the offending input, `reason` is a short
    machine-readable code.
    """

    def __init__(self, field: str, reason: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.reason = reason
        self.message = message


class NotFoundError(ChatError):
    """An update or delete targeted a document that does not exist."""

    def __init__(self, path: str, doc_id: str) -> None:
        super().__init__(f"{path}/{doc_id} not found")
        self.path = path
        self.doc_id = doc_id


class StorageError(ChatError):
    """The document store could not be reached or rejected the call."""


class PartialDeleteError(StorageError):
    """
    A cascading delete stopped after removing some children.

    The parent document may be left with orphaned (or already removed)
    children; `deleted` counts what was removed per collection.
    """

    def __init__(self, room_id: str, deleted: dict, cause: Exception) -> None:
        super().__init__(f"Delete of room {room_id!r} stopped midway: {cause}")
        self.room_id = room_id
        self.deleted = deleted
        self.cause = cause
