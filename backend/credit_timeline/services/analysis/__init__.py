"""
Credit Timeline - Analysis Service

Anomaly detection over a subject's persisted timeline.
"""
from .config import (
    AnomalyConfig, RuleConfig, NewTradelineConfig, BalanceChangeConfig,
    PaymentStatusDegradationConfig, StatusChangeConfig, HardSearchConfig,
    CrossSourceDiscrepancyConfig, DEFAULT_ANOMALY_CONFIG,
    load_anomaly_config, load_settings_overrides, settings_to_overrides,
)
from .context_builder import build_analysis_context
from .engine import run_rules
from .registry import DEFAULT_RULES, get_rule
from .service import analyze_subject

__all__ = [
    "AnomalyConfig", "RuleConfig", "NewTradelineConfig", "BalanceChangeConfig",
    "PaymentStatusDegradationConfig", "StatusChangeConfig", "HardSearchConfig",
    "CrossSourceDiscrepancyConfig", "DEFAULT_ANOMALY_CONFIG",
    "load_anomaly_config", "load_settings_overrides", "settings_to_overrides",
    "build_analysis_context",
    "run_rules",
    "DEFAULT_RULES", "get_rule",
    "analyze_subject",
]
