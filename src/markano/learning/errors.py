"""Domain errors for the learning flow, mapped to HTTP status codes by the error handler."""

from __future__ import annotations


class LearningError(Exception):
    """Base error carrying a client-safe detail message."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(LearningError):
    """Required identifiers are missing."""

    status_code = 400


class NotFoundError(LearningError):
    """Lesson or course does not exist."""

    status_code = 404


class PersistenceError(LearningError):
    """A database step failed; the cause is logged, never returned."""

    status_code = 500
