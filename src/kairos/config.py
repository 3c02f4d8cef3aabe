"""Kairos configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from kairos.errors import ValidationFailed

ENV_PREFIX = "KAIROS_"

# Default item type priorities (bonus points added to a candidate's score)
DEFAULT_TYPE_PRIORITIES: dict[str, float] = {
    "exam": 8.0,
    "assessment": 8.0,
    "assignment": 6.0,
    "project": 5.0,
    "practice": 3.0,
    "reading": 2.0,
    "review": 2.0,
}


def _coerce(current: Any, value: Any) -> Any:
    """Convert a raw YAML or env value to the type of the current setting."""
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(current, Path):
        return Path(value).expanduser()
    if isinstance(current, dict):
        merged = dict(current)
        merged.update({str(k).lower(): float(v) for k, v in (value or {}).items()})
        return merged
    return type(current)(value)


@dataclass
class Config:
    """Kairos configuration.

    Every scheduling policy constant lives here so it can be overridden from
    ``config.yaml`` or a ``KAIROS_<SETTING>`` environment variable instead of
    being baked into the engines.
    """

    workspace_path: Path = field(default_factory=lambda: Path.home() / ".kairos")
    log_level: str = "INFO"
    wal_mode: bool = True

    # Risk classification
    infeasible_daily_min: float = 480.0
    near_deadline_days: int = 3
    default_lookback_days: int = 7

    # Re-estimation
    smoothing_alpha: float = 0.7

    # Recommendation
    default_max_slices: int = 3
    top_risk_count: int = 5

    # Scoring weights
    weight_risk_critical: float = 60.0
    weight_risk_at_risk: float = 30.0
    weight_deadline_pressure: float = 0.4
    weight_behind_pace: float = 0.1
    behind_pace_cap: float = 20.0
    weight_momentum: float = 15.0
    weight_spacing: float = 0.5
    weight_critical_focus: float = 50.0
    type_priorities: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TYPE_PRIORITIES)
    )

    @classmethod
    def load(cls, workspace_path: Path | None = None) -> Config:
        """Build config from defaults, then ``config.yaml``, then the environment.

        The workspace itself comes from ``KAIROS_WORKSPACE`` when set, else
        ``workspace_path``, since it decides where the YAML file lives.

        Raises:
            ValidationFailed: A setting cannot be converted or is out of range.
        """
        config = cls()
        env_path = os.environ.get(f"{ENV_PREFIX}WORKSPACE")
        if env_path:
            config.workspace_path = Path(env_path)
        elif workspace_path:
            config.workspace_path = workspace_path

        config_file = config.workspace_path / "config.yaml"
        if config_file.exists():
            with open(config_file) as f:
                config.apply(yaml.safe_load(f) or {})

        config.apply(
            {
                f.name: os.environ[f"{ENV_PREFIX}{f.name.upper()}"]
                for f in fields(cls)
                if f.name != "workspace_path" and f"{ENV_PREFIX}{f.name.upper()}" in os.environ
            }
        )
        config.validate()
        return config

    def apply(self, overrides: dict[str, Any]) -> None:
        """Set known settings from ``overrides``; unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                continue
            try:
                setattr(self, key, _coerce(getattr(self, key), value))
            except (AttributeError, TypeError, ValueError) as e:
                raise ValidationFailed(f"Invalid value for {key}: {value!r}") from e

    def validate(self) -> None:
        if not 0 < self.smoothing_alpha <= 1:
            raise ValidationFailed("smoothing_alpha must be in (0, 1]")
        for name in ("default_max_slices", "top_risk_count", "default_lookback_days"):
            if getattr(self, name) < 1:
                raise ValidationFailed(f"{name} must be at least 1")
        if self.infeasible_daily_min <= 0:
            raise ValidationFailed("infeasible_daily_min must be positive")
        if self.near_deadline_days < 0:
            raise ValidationFailed("near_deadline_days cannot be negative")

    @property
    def db_path(self) -> Path:
        return self.workspace_path / "kairos.db"

    def type_priority(self, item_type: str) -> float:
        """Get the score bonus for a work item type (0 for unknown types)."""
        return self.type_priorities.get(item_type.lower(), 0.0)

    def save(self) -> None:
        """Write every setting except the workspace path to ``config.yaml``."""
        self.workspace_path.mkdir(parents=True, exist_ok=True)
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "workspace_path"}
        with open(self.workspace_path / "config.yaml", "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
