"""
Credit Timeline - Anomaly Rules

The closed set of rule evaluators, one per RuleId.
"""
from .base import AnomalyRule
from .new_tradeline import NewTradelineRule
from .balance_change import BalanceChangeRule
from .payment_status import PaymentStatusDegradationRule, payment_status_rank
from .status_change import StatusChangeRule, classify_status
from .hard_search import HardSearchRule
from .cross_source import CrossSourceDiscrepancyRule

__all__ = [
    "AnomalyRule",
    "NewTradelineRule",
    "BalanceChangeRule",
    "PaymentStatusDegradationRule",
    "StatusChangeRule",
    "HardSearchRule",
    "CrossSourceDiscrepancyRule",
    "payment_status_rank",
    "classify_status",
]
