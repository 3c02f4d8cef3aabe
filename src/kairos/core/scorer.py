"""Candidate scoring for WhatNow.

A score is the sum of independent factors. Each factor that fires leaves an
itemized :class:`RecommendationReason` so the total can be explained.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from kairos.config import Config
from kairos.models.contract import Mode, ReasonCode, RecommendationReason, RiskLevel
from kairos.models.profile import UserProfile
from kairos.models.work_item import WorkItem, WorkItemStatus


@dataclass(frozen=True)
class ScoringWeights:
    risk_critical: float = 60.0
    risk_at_risk: float = 30.0
    deadline_pressure: float = 0.4
    behind_pace: float = 0.1
    behind_pace_cap: float = 20.0
    momentum: float = 15.0
    spacing: float = 0.5
    critical_focus: float = 50.0

    @classmethod
    def from_config(cls, config: Config, profile: UserProfile | None = None) -> ScoringWeights:
        """Workspace weights with any per-profile overrides applied."""
        weights = cls(
            risk_critical=config.weight_risk_critical,
            risk_at_risk=config.weight_risk_at_risk,
            deadline_pressure=config.weight_deadline_pressure,
            behind_pace=config.weight_behind_pace,
            behind_pace_cap=config.behind_pace_cap,
            momentum=config.weight_momentum,
            spacing=config.weight_spacing,
            critical_focus=config.weight_critical_focus,
        )
        if profile is None:
            return weights
        overrides = {
            "deadline_pressure": profile.weight_deadline_pressure,
            "behind_pace": profile.weight_behind_pace,
            "spacing": profile.weight_spacing,
            "momentum": profile.weight_momentum,
        }
        return cls(
            **{
                **weights.__dict__,
                **{k: v for k, v in overrides.items() if v is not None},
            }
        )


@dataclass
class ScoringInput:
    item: WorkItem
    project_id: str
    project_name: str
    project_risk: RiskLevel
    slack_min_per_day: float
    today: date
    mode: Mode = Mode.NORMAL
    due_date: date | None = None
    type_priority: float = 0.0
    last_session_days_ago: int | None = None
    weights: ScoringWeights = field(default_factory=ScoringWeights)


@dataclass
class ScoredCandidate:
    input: ScoringInput
    score: float
    reasons: list[RecommendationReason]

    @property
    def item(self) -> WorkItem:
        return self.input.item

    @property
    def project_id(self) -> str:
        return self.input.project_id

    @property
    def due_date(self) -> date | None:
        return self.input.due_date


Factor = Callable[[ScoringInput], RecommendationReason | None]


def _reason(code: ReasonCode, message: str, delta: float) -> RecommendationReason:
    return RecommendationReason(code=code, message=message, weight_delta=round(delta, 4))


def deadline_pressure(days_until: int) -> float:
    """Raw pressure for a due date ``days_until`` days away."""
    if days_until <= 0:
        return 100.0
    if days_until <= 3:
        return 80.0 / days_until
    if days_until <= 7:
        return 40.0 / days_until
    if days_until <= 14:
        return 20.0 / days_until
    return 10.0 / days_until


def _deadline_message(days_until: int) -> str:
    if days_until < 0:
        return f"Past due by {-days_until} day(s)"
    if days_until == 0:
        return "Due today"
    if days_until == 1:
        return "Due tomorrow"
    if days_until <= 7:
        return f"Due in {days_until} days"
    return "Upcoming deadline"


def score_risk(data: ScoringInput) -> RecommendationReason | None:
    if data.project_risk is RiskLevel.CRITICAL:
        return _reason(ReasonCode.RISK_CRITICAL, "Project is critical", data.weights.risk_critical)
    if data.project_risk is RiskLevel.AT_RISK:
        return _reason(ReasonCode.RISK_AT_RISK, "Project is at risk", data.weights.risk_at_risk)
    return None


def score_deadline(data: ScoringInput) -> RecommendationReason | None:
    if data.due_date is None:
        return None
    days_until = (data.due_date - data.today).days
    delta = deadline_pressure(days_until) * data.weights.deadline_pressure
    return _reason(ReasonCode.DEADLINE_PRESSURE, _deadline_message(days_until), delta)


def score_behind_pace(data: ScoringInput) -> RecommendationReason | None:
    if data.slack_min_per_day >= 0:
        return None
    delta = min(data.weights.behind_pace_cap, -data.slack_min_per_day * data.weights.behind_pace)
    if delta <= 0:
        return None
    return _reason(
        ReasonCode.BEHIND_PACE,
        f"Behind pace by {-data.slack_min_per_day:.0f} min/day",
        delta,
    )


def score_type(data: ScoringInput) -> RecommendationReason | None:
    if not data.type_priority:
        return None
    return _reason(
        ReasonCode.TYPE_PRIORITY,
        f"Item type '{data.item.type}' is prioritized",
        data.type_priority,
    )


def score_momentum(data: ScoringInput) -> RecommendationReason | None:
    if data.item.status is not WorkItemStatus.IN_PROGRESS:
        return None
    return _reason(ReasonCode.MOMENTUM, "Already in progress, keep momentum", data.weights.momentum)


def score_spacing(data: ScoringInput) -> RecommendationReason | None:
    days_ago = data.last_session_days_ago
    if days_ago is None:
        return None
    if days_ago <= 0:
        return _reason(
            ReasonCode.SPACING_BLOCKED,
            "Already worked on this project today",
            -10.0 * data.weights.spacing,
        )
    if days_ago <= 3:
        return _reason(
            ReasonCode.SPACING_OK, "Good spacing since last session", 5.0 * data.weights.spacing
        )
    return _reason(
        ReasonCode.SPACING_OK, "Haven't worked on this recently", 3.0 * data.weights.spacing
    )


def score_critical_focus(data: ScoringInput) -> RecommendationReason | None:
    if data.mode is Mode.CRITICAL and data.project_risk is RiskLevel.CRITICAL:
        return _reason(
            ReasonCode.CRITICAL_FOCUS,
            "Critical mode: focusing on critical work",
            data.weights.critical_focus,
        )
    return None


FACTORS: tuple[Factor, ...] = (
    score_risk,
    score_deadline,
    score_behind_pace,
    score_type,
    score_momentum,
    score_spacing,
    score_critical_focus,
)


def score_work_item(data: ScoringInput) -> ScoredCandidate:
    """Score one eligible item. The score equals the sum of its reasons."""
    reasons = [r for r in (factor(data) for factor in FACTORS) if r is not None]
    return ScoredCandidate(
        input=data,
        score=round(sum(r.weight_delta for r in reasons), 4),
        reasons=reasons,
    )


def sort_key(candidate: ScoredCandidate) -> tuple:
    """Descending score, then due date (none last), then seq, then item ID."""
    due = candidate.due_date
    return (
        -candidate.score,
        due is None,
        due or date.max,
        candidate.item.seq,
        candidate.item.id,
    )


def sort_candidates(candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(candidates, key=sort_key)
