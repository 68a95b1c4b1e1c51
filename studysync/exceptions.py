"""Exception classes for studysync."""

from __future__ import annotations

from typing import Optional


class StudySyncError(Exception):
    """Base class for application-specific errors."""

    def __init__(self, message: str = "An application error occurred.") -> None:
        self.message = message
        super().__init__(self.message)


class InvalidExamError(StudySyncError):
    """An exam declaration is missing required fields or carries bad values."""

    def __init__(self, message: str = "Invalid exam data.") -> None:
        super().__init__(message)


class ResourceNotFoundError(StudySyncError):
    def __init__(self, resource_type: str = "Resource", identifier: Optional[str] = None, message: Optional[str] = None) -> None:
        if message is None:
            message = resource_type
            if identifier:
                message += f" with identifier '{identifier}'"
            message += " not found."
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(message)


class ExamNotFoundError(ResourceNotFoundError):
    def __init__(self, exam_id: str) -> None:
        super().__init__(resource_type="Exam", identifier=exam_id)


class SnapshotError(StudySyncError):
    """A persisted document could not be read or written."""

    def __init__(self, message: str = "Snapshot storage failed.", original_exception: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.original_exception = original_exception


class NotificationError(StudySyncError):
    """Mail transport is not configured or refused the message."""

    def __init__(self, message: str = "Notification system error.", original_exception: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.original_exception = original_exception
