"""Risk threshold configuration and its degraded-mode loader."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class RiskConfigError(ValueError):
    """Raised when threshold configuration contains invalid data."""


class RiskThresholds(BaseModel):
    """Thresholds consumed by the risk scorer.

    Field names are snake_case; the camelCase names used by the settings
    screen (``attendanceCritical``, ``passCriteria``, ...) are accepted on input.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    attendance_critical: float = Field(
        default=75.0,
        ge=0.0,
        le=100.0,
        validation_alias=AliasChoices("attendance_critical", "attendanceCritical"),
    )
    attendance_warning: float = Field(
        default=85.0,
        ge=0.0,
        le=100.0,
        validation_alias=AliasChoices("attendance_warning", "attendanceWarning"),
    )
    pass_mark: float = Field(
        default=60.0,
        ge=0.0,
        le=100.0,
        validation_alias=AliasChoices("pass_mark", "passCriteria", "pass_criteria"),
    )
    failing_high: int = Field(
        default=2,
        ge=1,
        le=20,
        validation_alias=AliasChoices("failing_high", "failingHigh"),
    )
    failing_medium: int = Field(
        default=1,
        ge=1,
        le=20,
        validation_alias=AliasChoices("failing_medium", "failingMedium"),
    )
    overdue_days_high: int = Field(
        default=30,
        ge=1,
        le=365,
        validation_alias=AliasChoices("overdue_days_high", "overdueDays", "overdue_days"),
    )

    @model_validator(mode="after")
    def _tiers_are_ordered(self) -> RiskThresholds:
        if self.attendance_critical > self.attendance_warning:
            raise ValueError("attendance_critical must not exceed attendance_warning")
        if self.failing_medium > self.failing_high:
            raise ValueError("failing_medium must not exceed failing_high")
        return self


DEFAULT_THRESHOLDS = RiskThresholds()

ConfigSource = Union[None, RiskThresholds, Mapping[str, Any], Callable[[], Any]]
"""Anything the scorer accepts as configuration: nothing, a snapshot, or a reload hook."""


def load_thresholds(source: ConfigSource) -> RiskThresholds:
    """Build thresholds from ``source`` and raise :class:`RiskConfigError` on bad data.

    Callables are invoked once per call so that every computation sees the
    latest stored values. Keys with ``None`` values fall back to their defaults.
    """

    if callable(source) and not isinstance(source, RiskThresholds):
        source = source()
    if source is None:
        return DEFAULT_THRESHOLDS
    if isinstance(source, RiskThresholds):
        return source
    if not isinstance(source, Mapping):
        raise RiskConfigError(
            f"Risk configuration must be a mapping, got {type(source).__name__}"
        )

    cleaned = {key: value for key, value in source.items() if value is not None}
    try:
        return RiskThresholds.model_validate(cleaned)
    except ValidationError as exc:
        raise RiskConfigError(f"Invalid risk configuration: {exc}") from exc


def resolve_thresholds(source: ConfigSource) -> RiskThresholds:
    """Like :func:`load_thresholds` but never raises; falls back to the defaults."""

    try:
        return load_thresholds(source)
    except Exception as exc:
        logger.warning("Risk configuration unavailable, using defaults: %s", exc)
        return DEFAULT_THRESHOLDS


def _field_for_key(key: str) -> str | None:
    for name, info in RiskThresholds.model_fields.items():
        alias = info.validation_alias
        choices = alias.choices if isinstance(alias, AliasChoices) else [name]
        if key in choices:
            return name
    return None


def update_thresholds(base: RiskThresholds, updates: Mapping[str, Any]) -> RiskThresholds:
    """Overlay ``updates`` (snake_case or camelCase keys) onto ``base``.

    Unknown keys are ignored; invalid values raise :class:`RiskConfigError`.
    """

    merged = base.model_dump()
    for key, value in updates.items():
        name = _field_for_key(key)
        if name is not None and value is not None:
            merged[name] = value
    return load_thresholds(merged)
