"""
Governance Error Taxonomy

The persistence layer reports failures as free text. Everything that reaches
the transport passes through :func:`classify`, which maps a reason onto a
closed set of outcomes; the HTTP status is derived from the outcome only.
"""

from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any


class Outcome(StrEnum):
    """Failure categories exposed to callers."""

    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID = "invalid"


STATUS_CODES: dict[Outcome, int] = {
    Outcome.UNAUTHENTICATED: 401,
    Outcome.UNAUTHORIZED: 403,
    Outcome.NOT_FOUND: 404,
    Outcome.CONFLICT: 409,
    Outcome.INVALID: 400,
}

# Ordered, first match wins.
_RULES: tuple[tuple[tuple[str, ...], Outcome], ...] = (
    (("not authorized", "must be an active board member"), Outcome.UNAUTHORIZED),
    (("not found", "no minutes", "no motion"), Outcome.NOT_FOUND),
    (("already approved", "already finalized", "already exists"), Outcome.CONFLICT),
)


def classify(reason: str) -> Outcome:
    """
    Map a raw failure reason to an outcome.

    Case-insensitive substring match against the ordered rule list;
    anything unrecognised is INVALID.
    """
    normalized = reason.lower()
    for needles, outcome in _RULES:
        if any(needle in normalized for needle in needles):
            return outcome
    return Outcome.INVALID


class GovernanceError(Exception):
    """A failure with a caller-facing message and a derived outcome."""

    def __init__(self, message: str, outcome: Outcome):
        super().__init__(message)
        self.message = message
        self.outcome = outcome

    @classmethod
    def from_reason(cls, reason: str) -> "GovernanceError":
        return cls(reason, classify(reason))

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.outcome]


class StoreError(Exception):
    """Free-text failure raised by a persistence query or procedure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationCheckError(Exception):
    """A capability check failed to produce a definite answer."""


def describe_validation_errors(errors: Sequence[Mapping[str, Any]]) -> str:
    """Single caller-facing message for a list of pydantic validation errors."""
    if any(error.get("type") == "json_invalid" for error in errors):
        return "Invalid JSON"
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(
        str(part) for part in first.get("loc", ()) if part not in ("body", "path", "query")
    )
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
