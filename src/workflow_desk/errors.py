"""Exception types shared across the desk."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for errors raised by workflow-desk."""


class StorageError(WorkflowError):
    """Raised when a value cannot be written to (or read from) the key-value store."""


class NotFoundError(WorkflowError):
    """Raised when a required template or instance does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
