"""Tagged result type returned by engine operations.

Callers pattern-match on ``Ok``/``Err`` or call ``unwrap()`` to get the value
and let the matching :class:`~kairos.errors.PlannerError` propagate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from kairos.errors import ErrorKind, PlannerError, error_for
from kairos.models.contract import ConstraintBlocker

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    blockers: list[ConstraintBlocker] = field(default_factory=list)
    policy_messages: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.to_exception()

    def to_exception(self) -> PlannerError:
        return error_for(self.kind)(
            self.message,
            blockers=list(self.blockers),
            policy_messages=list(self.policy_messages),
        )

    @classmethod
    def from_exception(cls, exc: PlannerError) -> Err:
        return cls(
            kind=exc.kind,
            message=exc.message,
            blockers=list(exc.blockers),
            policy_messages=list(exc.policy_messages),
        )


Result = Ok[T] | Err
