"""Per-user planning tunables."""

from __future__ import annotations

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Read-only tunables for pace computation and scoring.

    ``None`` overrides fall back to the workspace :class:`~kairos.config.Config`.
    """

    id: str = "default"
    lookback_days: int = Field(default=7, gt=0)
    buffer_pct: float = Field(default=0.0, ge=0.0)
    smoothing_alpha: float | None = Field(default=None, ge=0.0, le=1.0)
    default_max_slices: int = Field(default=3, gt=0)
    weight_deadline_pressure: float | None = None
    weight_behind_pace: float | None = None
    weight_spacing: float | None = None
    weight_momentum: float | None = None

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")
