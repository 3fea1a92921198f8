"""
Credit Timeline - Rule Registry

Registration order is fixed. The engine iterates in this order; output order
is decided by sort_insights(), not by the registry.
"""
from typing import Sequence, Tuple

from ...models.timeline import RuleId
from .rules import (
    AnomalyRule, NewTradelineRule, BalanceChangeRule, PaymentStatusDegradationRule,
    StatusChangeRule, HardSearchRule, CrossSourceDiscrepancyRule,
)

DEFAULT_RULES: Tuple[AnomalyRule, ...] = (
    NewTradelineRule(),
    BalanceChangeRule(),
    PaymentStatusDegradationRule(),
    StatusChangeRule(),
    HardSearchRule(),
    CrossSourceDiscrepancyRule(),
)


def check_registry(rules: Sequence[AnomalyRule]) -> None:
    """Every RuleId registered exactly once, in RuleId declaration order."""
    registered = [rule.rule_id for rule in rules]
    expected = list(RuleId)
    if registered != expected:
        missing = [r.value for r in expected if r not in registered]
        raise RuntimeError(
            f"Rule registry out of sync with RuleId: registered={[r.value for r in registered]} "
            f"missing={missing}"
        )


check_registry(DEFAULT_RULES)


def get_rule(rule_id: str) -> AnomalyRule:
    wanted = RuleId(rule_id)
    for rule in DEFAULT_RULES:
        if rule.rule_id is wanted:
            return rule
    raise KeyError(rule_id)
