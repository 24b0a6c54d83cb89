"""Exception hierarchy for queuestack.

Every engine failure is a :class:`QueueStackError` subclass carrying a
``context`` dict so callers can render the offending path, id, or candidate
list without parsing the message.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class QueueStackError(Exception):
    """Base exception for all queuestack errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ---------------------------------------------------------------------------
# Identifier generation
# ---------------------------------------------------------------------------


class InvalidPatternError(QueueStackError):
    """An id pattern contains an unknown ``%`` token."""

    def __init__(self, pattern: str, token: str) -> None:
        super().__init__(
            f"Invalid id pattern {pattern!r}: unknown token '%{token}'",
            {"pattern": pattern, "token": token},
        )
        self.pattern = pattern
        self.token = token


class IdExhaustedError(QueueStackError):
    """Every generated candidate collided with an existing id."""

    def __init__(self, pattern: str, attempts: int) -> None:
        super().__init__(
            f"Could not generate a unique id from {pattern!r} after {attempts} attempts",
            {"pattern": pattern, "attempts": attempts},
        )
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Metadata codec
# ---------------------------------------------------------------------------


class ParseError(QueueStackError):
    """Base class for item file decoding failures."""


class MalformedFrontmatterError(ParseError):
    pass


class MissingFieldError(ParseError):
    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: {field}", {"field": field})
        self.field = field


class UnknownFieldError(ParseError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(
            f"Unknown metadata field(s): {', '.join(fields)}",
            {"fields": fields},
        )
        self.fields = fields


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class NotFoundError(QueueStackError):
    def __init__(self, reference: str, what: str = "item") -> None:
        super().__init__(f"No {what} found matching '{reference}'", {"reference": reference})
        self.reference = reference


class AmbiguousIdError(QueueStackError):
    """More than one record matches a partial reference."""

    def __init__(self, reference: str, candidates: list[Path]) -> None:
        names = "\n  ".join(p.stem for p in candidates)
        super().__init__(
            f"Multiple items match '{reference}':\n  {names}",
            {"reference": reference, "candidates": candidates},
        )
        self.reference = reference
        self.candidates = candidates


# ---------------------------------------------------------------------------
# Mutation
# ---------------------------------------------------------------------------


class AlreadyExistsError(QueueStackError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Path already exists: {path}", {"path": path})
        self.path = path


class IndexOutOfRangeError(QueueStackError):
    def __init__(self, index: int, count: int) -> None:
        super().__init__(
            f"Invalid attachment index: {index}. Item has {count} attachment(s).",
            {"index": index, "count": count},
        )
        self.index = index
        self.count = count


class InvalidStateError(QueueStackError):
    """The record's lifecycle state does not allow the requested operation."""


class InvalidCategoryError(QueueStackError):
    """A category names a reserved directory or nests deeper than the walk reaches."""

    def __init__(self, category: str, reason: str) -> None:
        super().__init__(f"Invalid category '{category}': {reason}", {"category": category})
        self.category = category


class NoAuthorError(QueueStackError):
    def __init__(self) -> None:
        super().__init__(
            "No author configured: set user_name or enable use_git_user with a git user.name"
        )


class IoFailureError(QueueStackError):
    """Wraps an :class:`OSError` with the path that was being touched."""

    def __init__(self, path: Path, cause: BaseException, action: str = "access") -> None:
        super().__init__(f"Failed to {action} {path}: {cause}", {"path": path, "action": action})
        self.path = path
        self.cause = cause
