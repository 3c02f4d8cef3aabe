"""Deadline risk classification.

Everything here is a pure function of its inputs: the status, recommend and
replan engines all feed the same snapshot shapes through ``assess_project``
so a project is classified identically wherever it is looked at.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from kairos.config import Config
from kairos.models.contract import Mode, RiskLevel, RiskSummary, risk_priority
from kairos.models.project import Project
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import WorkItem, WorkItemStatus


@dataclass(frozen=True)
class RiskPolicy:
    """Classification thresholds (minutes per day / days)."""

    infeasible_daily_min: float = 480.0
    near_deadline_days: int = 3

    @classmethod
    def from_config(cls, config: Config) -> RiskPolicy:
        return cls(
            infeasible_daily_min=config.infeasible_daily_min,
            near_deadline_days=config.near_deadline_days,
        )


@dataclass(frozen=True)
class RiskInput:
    today: date
    deadline: date | None
    planned_min: int
    logged_min: int
    recent_daily_min: float = 0.0
    start_date: date | None = None
    buffer_pct: float = 0.0


@dataclass(frozen=True)
class RiskResult:
    level: RiskLevel
    days_left: int | None
    remaining_min: int
    required_daily_min: float
    recent_daily_min: float
    slack_min_per_day: float
    progress_time_pct: float


def progress_time_pct(start: date | None, deadline: date | None, today: date) -> float:
    """Share of the start→deadline window already elapsed, in [0, 100]."""
    if start is None or deadline is None:
        return 0.0
    total = (deadline - start).days
    if total <= 0:
        return 100.0 if today >= deadline else 0.0
    elapsed = (today - start).days
    return min(100.0, max(0.0, elapsed / total * 100))


def compute_risk(data: RiskInput, policy: RiskPolicy | None = None) -> RiskResult:
    """Classify one project's deadline risk.

    Rules, first match wins:
      critical  past due with work left, or required pace above the
                infeasible threshold
      at_risk   negative slack in whole minutes per day, or the deadline is
                near and the recent pace would not finish in time
      on_track  otherwise (and always when there is no deadline)
    """
    policy = policy or RiskPolicy()
    remaining = int(max(0, data.planned_min - data.logged_min) * (1 + data.buffer_pct))
    recent = data.recent_daily_min
    time_pct = progress_time_pct(data.start_date, data.deadline, data.today)

    if data.deadline is None:
        return RiskResult(
            level=RiskLevel.ON_TRACK,
            days_left=None,
            remaining_min=remaining,
            required_daily_min=0.0,
            recent_daily_min=recent,
            slack_min_per_day=recent,
            progress_time_pct=time_pct,
        )

    days_left = (data.deadline - data.today).days

    if days_left < 0:
        # All remaining work is due immediately
        required = float(remaining)
    else:
        required = remaining / max(days_left, 1)
    slack = recent - required

    if remaining == 0:
        level = RiskLevel.ON_TRACK
    elif days_left < 0 or required > policy.infeasible_daily_min:
        level = RiskLevel.CRITICAL
    elif round(slack) < 0:
        # Sub-minute deficits are below the resolution of logged sessions
        level = RiskLevel.AT_RISK
    elif days_left <= policy.near_deadline_days and remaining > recent * max(days_left, 1):
        level = RiskLevel.AT_RISK
    else:
        level = RiskLevel.ON_TRACK

    return RiskResult(
        level=level,
        days_left=days_left,
        remaining_min=remaining,
        required_daily_min=required,
        recent_daily_min=recent,
        slack_min_per_day=slack,
        progress_time_pct=time_pct,
    )


# --- Project aggregation ---


@dataclass(frozen=True)
class ProjectMetrics:
    planned_min_total: int
    logged_min_total: int
    open_planned_min: int
    open_logged_min: int
    done_count: int
    total_count: int
    deadline: date | None

    @property
    def structural_pct(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.done_count / self.total_count * 100


def aggregate_project(project: Project, items: Iterable[WorkItem]) -> ProjectMetrics:
    """Totals over a project's items. Archived items are ignored entirely."""
    planned = logged = open_planned = open_logged = done = total = 0
    latest_due: date | None = None
    for item in items:
        if item.status is WorkItemStatus.ARCHIVED:
            continue
        total += 1
        planned += item.planned_min
        logged += item.logged_min
        if item.is_terminal:
            done += 1
            continue
        open_planned += item.planned_min
        open_logged += item.logged_min
        if item.due_date and (latest_due is None or item.due_date > latest_due):
            latest_due = item.due_date

    return ProjectMetrics(
        planned_min_total=planned,
        logged_min_total=logged,
        open_planned_min=open_planned,
        open_logged_min=open_logged,
        done_count=done,
        total_count=total,
        deadline=project.target_date or latest_due,
    )


def recent_daily_pace(
    sessions: Iterable[WorkSessionLog], item_ids: set[str], lookback_days: int
) -> float:
    """Average minutes per day logged against ``item_ids`` in the window."""
    minutes = sum(s.minutes for s in sessions if s.work_item_id in item_ids)
    return minutes / max(lookback_days, 1)


@dataclass(frozen=True)
class ProjectAssessment:
    project: Project
    metrics: ProjectMetrics
    risk: RiskResult

    @property
    def level(self) -> RiskLevel:
        return self.risk.level

    def to_summary(self) -> RiskSummary:
        return RiskSummary(
            project_id=self.project.id,
            project_name=self.project.name,
            risk_level=self.risk.level,
            due_date=self.metrics.deadline,
            days_left=self.risk.days_left,
            planned_min_total=self.metrics.planned_min_total,
            logged_min_total=self.metrics.logged_min_total,
            remaining_min_total=self.risk.remaining_min,
            required_daily_min=self.risk.required_daily_min,
            recent_daily_min=self.risk.recent_daily_min,
            slack_min_per_day=self.risk.slack_min_per_day,
            progress_time_pct=self.risk.progress_time_pct,
        )


def assess_project(
    project: Project,
    items: list[WorkItem],
    recent_sessions: Iterable[WorkSessionLog],
    *,
    today: date,
    lookback_days: int,
    buffer_pct: float = 0.0,
    policy: RiskPolicy | None = None,
) -> ProjectAssessment:
    metrics = aggregate_project(project, items)
    recent = recent_daily_pace(recent_sessions, {i.id for i in items}, lookback_days)
    risk = compute_risk(
        RiskInput(
            today=today,
            deadline=metrics.deadline,
            planned_min=metrics.open_planned_min,
            logged_min=metrics.open_logged_min,
            recent_daily_min=recent,
            start_date=project.start_date,
            buffer_pct=buffer_pct,
        ),
        policy,
    )
    return ProjectAssessment(project=project, metrics=metrics, risk=risk)


def determine_mode(levels: Iterable[RiskLevel]) -> Mode:
    """Critical if any qualifying project is critical."""
    return Mode.CRITICAL if any(lvl is RiskLevel.CRITICAL for lvl in levels) else Mode.NORMAL


def rank_by_risk(assessments: Iterable[ProjectAssessment]) -> list[ProjectAssessment]:
    """Most urgent first: risk level, then most negative slack, then name."""
    return sorted(
        assessments,
        key=lambda a: (risk_priority(a.level), a.risk.slack_min_per_day, a.project.name),
    )
