"""Request and response shapes of the planning engines.

These are field-stable: formatters and the explanation layer consume them
verbatim, so fields are only ever added.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class RiskLevel(StrEnum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    CRITICAL = "critical"


class Mode(StrEnum):
    NORMAL = "normal"
    CRITICAL = "critical"


class ReplanTrigger(StrEnum):
    MANUAL = "manual"
    DEADLINE_UPDATED = "deadline_updated"
    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"
    SESSION_LOGGED = "session_logged"
    TEMPLATE_INIT = "template_init"


class ReasonCode(StrEnum):
    RISK_CRITICAL = "RISK_CRITICAL"
    RISK_AT_RISK = "RISK_AT_RISK"
    DEADLINE_PRESSURE = "DEADLINE_PRESSURE"
    BEHIND_PACE = "BEHIND_PACE"
    TYPE_PRIORITY = "TYPE_PRIORITY"
    MOMENTUM = "MOMENTUM"
    SPACING_OK = "SPACING_OK"
    SPACING_BLOCKED = "SPACING_BLOCKED"
    CRITICAL_FOCUS = "CRITICAL_FOCUS"
    BOUNDS_APPLIED = "BOUNDS_APPLIED"


class BlockerCode(StrEnum):
    PROJECT_INACTIVE = "PROJECT_INACTIVE"
    DEPENDENCY = "DEPENDENCY"
    NOT_BEFORE = "NOT_BEFORE"
    WORK_COMPLETE = "WORK_COMPLETE"
    NOT_IN_CRITICAL_SCOPE = "NOT_IN_CRITICAL_SCOPE"
    SESSION_MIN_EXCEEDS_AVAILABLE = "SESSION_MIN_EXCEEDS_AVAILABLE"
    INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"


def risk_priority(level: RiskLevel) -> int:
    """Sort priority for a risk level (lower = more urgent)."""
    return {RiskLevel.CRITICAL: 0, RiskLevel.AT_RISK: 1}.get(level, 2)


# --- Shared pieces ---


class RecommendationReason(BaseModel):
    code: ReasonCode
    message: str
    weight_delta: float = 0.0


class ConstraintBlocker(BaseModel):
    entity_type: str = "work_item"
    entity_id: str
    code: BlockerCode
    message: str


class WorkSlice(BaseModel):
    work_item_id: str
    work_item_seq: int
    project_id: str
    node_id: str
    title: str
    allocated_min: int
    min_session_min: int
    max_session_min: int
    default_session_min: int
    splittable: bool
    due_date: date | None = None
    risk_level: RiskLevel
    score: float
    reasons: list[RecommendationReason] = Field(default_factory=list)


class RiskSummary(BaseModel):
    project_id: str
    project_name: str
    risk_level: RiskLevel
    due_date: date | None = None
    days_left: int | None = None
    planned_min_total: int = 0
    logged_min_total: int = 0
    remaining_min_total: int = 0
    required_daily_min: float = 0.0
    recent_daily_min: float = 0.0
    slack_min_per_day: float = 0.0
    progress_time_pct: float = 0.0


# --- WhatNow ---


class WhatNowRequest(BaseModel):
    available_min: int
    project_scope: list[str] = Field(default_factory=list)
    max_slices: int = 0
    dry_run: bool = False
    enforce_variation: bool = False
    now: datetime | None = None


class WhatNowResponse(BaseModel):
    generated_at: datetime
    mode: Mode
    requested_min: int
    allocated_min: int
    unallocated_min: int
    policy_messages: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[WorkSlice] = Field(default_factory=list)
    blockers: list[ConstraintBlocker] = Field(default_factory=list)
    top_risk_projects: list[RiskSummary] = Field(default_factory=list)


# --- Status ---


class StatusRequest(BaseModel):
    project_scope: list[str] = Field(default_factory=list)
    recalc: bool = False
    include_archived: bool = False
    include_blockers: bool = False
    now: datetime | None = None


class ProjectStatusView(BaseModel):
    project_id: str
    project_name: str
    status: str
    risk_level: RiskLevel
    due_date: date | None = None
    days_left: int | None = None
    progress_time_pct: float = 0.0
    progress_structural_pct: float = 0.0
    planned_min_total: int = 0
    logged_min_total: int = 0
    remaining_min_total: int = 0
    required_daily_min: float = 0.0
    recent_daily_min: float = 0.0
    slack_min_per_day: float = 0.0
    safe_for_secondary_work: bool = False
    notes: list[str] = Field(default_factory=list)


class GlobalStatusSummary(BaseModel):
    generated_at: datetime
    counts_total: int = 0
    counts_on_track: int = 0
    counts_at_risk: int = 0
    counts_critical: int = 0
    mode: Mode = Mode.NORMAL
    policy_message: str = ""


class StatusResponse(BaseModel):
    summary: GlobalStatusSummary
    projects: list[ProjectStatusView] = Field(default_factory=list)
    blockers: list[ConstraintBlocker] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# --- Replan ---


class ReplanRequest(BaseModel):
    trigger: ReplanTrigger = ReplanTrigger.MANUAL
    strategy: str = "rebalance"
    project_scope: list[str] = Field(default_factory=list)
    include_archived: bool = False
    explain: bool = True
    dry_run: bool = False
    now: datetime | None = None


class ProjectReplanDelta(BaseModel):
    project_id: str
    project_name: str
    risk_before: RiskLevel
    risk_after: RiskLevel
    required_daily_min_before: float
    required_daily_min_after: float
    remaining_min_before: int
    remaining_min_after: int
    changed_items_count: int
    notes: list[str] = Field(default_factory=list)


class ReplanExplanation(BaseModel):
    critical_projects: list[str] = Field(default_factory=list)
    rules_applied: list[str] = Field(default_factory=list)


class ReplanResponse(BaseModel):
    generated_at: datetime
    trigger: ReplanTrigger
    strategy: str
    recomputed_projects: int
    global_mode_after: Mode
    deltas: list[ProjectReplanDelta] = Field(default_factory=list)
    explanation: ReplanExplanation | None = None
    warnings: list[str] = Field(default_factory=list)
