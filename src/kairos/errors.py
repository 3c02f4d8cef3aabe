"""Error taxonomy shared by the engines and the storage layer."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kairos.models.contract import ConstraintBlocker


class ErrorKind(StrEnum):
    NO_CANDIDATES = "no_candidates"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    INFRASTRUCTURE = "infrastructure"


class PlannerError(Exception):
    """Base error carrying an :class:`ErrorKind`, collected blockers and policy messages."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        blockers: list[ConstraintBlocker] | None = None,
        policy_messages: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.blockers = blockers or []
        self.policy_messages = policy_messages or []

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class NotFoundError(PlannerError):
    """A referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND


class ValidationFailed(PlannerError, ValueError):
    """A request or entity violates an input rule."""

    kind = ErrorKind.VALIDATION


class NoCandidatesError(PlannerError):
    """Recommend found nothing eligible after gating."""

    kind = ErrorKind.NO_CANDIDATES


class StorageError(PlannerError):
    """The backing store failed."""

    kind = ErrorKind.INFRASTRUCTURE


_BY_KIND: dict[ErrorKind, type[PlannerError]] = {
    ErrorKind.NO_CANDIDATES: NoCandidatesError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.VALIDATION: ValidationFailed,
    ErrorKind.INFRASTRUCTURE: StorageError,
}


def error_for(kind: ErrorKind) -> type[PlannerError]:
    """Map an error kind to its exception class."""
    return _BY_KIND[kind]
