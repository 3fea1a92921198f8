"""
Credit Timeline - Anomaly Config Resolution

Rule parameters are resolved once per analysis run, lowest to highest
precedence:
1. Built-in defaults (the field defaults below)
2. Persisted app_settings rows keyed `anomaly.<rule>.<param>`
3. Caller-supplied overrides

Invalid values at any layer raise AnomalyConfigError. Nothing falls back to
a default silently.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.orm import Session

from ...errors import AnomalyConfigError
from ...models.db_models import AppSettingDB
from ...models.timeline import RuleId

SETTINGS_PREFIX = "anomaly."


class RuleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class NewTradelineConfig(RuleConfig):
    # Opened this many days before the import counts as an expected new account
    expected_window_days: int = Field(default=90, ge=0)


class BalanceChangeConfig(RuleConfig):
    pct_threshold: float = Field(default=25.0, ge=0)
    abs_threshold: float = Field(default=100.0, ge=0)
    # "all": both thresholds must be exceeded; "any": either one is enough
    mode: Literal["all", "any"] = "all"


class PaymentStatusDegradationConfig(RuleConfig):
    min_rank_delta: int = Field(default=1, ge=1)


class StatusChangeConfig(RuleConfig):
    score_threshold: int = Field(default=50, ge=0)
    track_scores: bool = True


class HardSearchConfig(RuleConfig):
    window_days: int = Field(default=30, gt=0)
    # Flag when the count inside the window exceeds this
    threshold: int = Field(default=2, ge=0)
    high_threshold: int = Field(default=4, ge=0)

    @model_validator(mode="after")
    def _check_high_threshold(self) -> "HardSearchConfig":
        if self.high_threshold < self.threshold:
            raise ValueError(
                f"high_threshold ({self.high_threshold}) must be >= threshold ({self.threshold})"
            )
        return self


class CrossSourceDiscrepancyConfig(RuleConfig):
    balance_pct_threshold: float = Field(default=10.0, ge=0)
    limit_pct_threshold: float = Field(default=10.0, ge=0)
    # Absolute differences at or below this are never material
    abs_tolerance: float = Field(default=0.0, ge=0)
    # Observations further apart than this are different reporting periods
    period_days: int = Field(default=31, ge=0)


class AnomalyConfig(BaseModel):
    """Resolved parameters for every rule, one section per RuleId."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    new_tradeline: NewTradelineConfig = Field(default_factory=NewTradelineConfig)
    balance_change: BalanceChangeConfig = Field(default_factory=BalanceChangeConfig)
    payment_status_degradation: PaymentStatusDegradationConfig = Field(
        default_factory=PaymentStatusDegradationConfig
    )
    status_change: StatusChangeConfig = Field(default_factory=StatusChangeConfig)
    hard_search: HardSearchConfig = Field(default_factory=HardSearchConfig)
    cross_source_discrepancy: CrossSourceDiscrepancyConfig = Field(
        default_factory=CrossSourceDiscrepancyConfig
    )

    def for_rule(self, rule_id: str) -> RuleConfig:
        return getattr(self, RuleId(rule_id).value)


DEFAULT_ANOMALY_CONFIG = AnomalyConfig()


# =============================================================================
# RESOLUTION
# =============================================================================

def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_anomaly_config(
    overrides: Optional[Mapping[str, Any]] = None,
    settings: Optional[Mapping[str, Any]] = None,
) -> AnomalyConfig:
    """
    Merge defaults, persisted settings and caller overrides into one config.

    Args:
        overrides: e.g. {"hard_search": {"window_days": 14, "threshold": 2}}
        settings: same shape, usually from load_settings_overrides()

    Raises:
        AnomalyConfigError: a layer is not an object, or a value is out of range
    """
    merged: Dict[str, Any] = {}
    for layer_name, layer in (("settings", settings), ("overrides", overrides)):
        if layer is None:
            continue
        if not isinstance(layer, Mapping):
            raise AnomalyConfigError([
                f"{layer_name}: expected an object, got {type(layer).__name__}"
            ])
        merged = _deep_merge(merged, layer)

    if not merged:
        return DEFAULT_ANOMALY_CONFIG

    try:
        return AnomalyConfig.model_validate(merged)
    except ValidationError as exc:
        issues = [
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise AnomalyConfigError(issues) from exc


def settings_to_overrides(rows: Iterable[Tuple[str, str]]) -> Dict[str, Dict[str, str]]:
    """
    Convert `anomaly.<rule>.<param>` key/value pairs into the override shape.

    Keys outside the `anomaly.` namespace are ignored. Values stay as text;
    pydantic coerces them when the config is validated.
    """
    nested: Dict[str, Dict[str, str]] = {}
    bad_keys = []
    for key, value in rows:
        if not key.startswith(SETTINGS_PREFIX):
            continue
        parts = key[len(SETTINGS_PREFIX):].split(".")
        if len(parts) != 2 or not all(parts):
            bad_keys.append(f"{key}: expected anomaly.<rule>.<param>")
            continue
        rule, param = parts
        nested.setdefault(rule, {})[param] = value

    if bad_keys:
        raise AnomalyConfigError(bad_keys)
    return nested


def load_settings_overrides(db: Session) -> Dict[str, Dict[str, str]]:
    rows = db.query(AppSettingDB).filter(AppSettingDB.key.like(f"{SETTINGS_PREFIX}%")).all()
    return settings_to_overrides((row.key, row.value) for row in rows)
