"""
Credit Timeline - Balance Change Detection

Compares the reported balance of one account, from one source system,
between consecutive imports. A change is flagged when it exceeds the
percentage threshold, the absolute threshold, or both (config `mode`).
"""
from __future__ import annotations
from typing import List

from ....models.timeline import AnalysisContext, Insight, RuleId, Severity
from ..config import BalanceChangeConfig
from .base import AnomalyRule, iso, pct_change


def exceeds_thresholds(abs_delta: float, pct: float, config: BalanceChangeConfig) -> bool:
    over_pct = pct > config.pct_threshold
    over_abs = abs_delta > config.abs_threshold
    if config.mode == "any":
        return over_pct or over_abs
    return over_pct and over_abs


def severity_for_pct(pct: float) -> Severity:
    if pct >= 100:
        return Severity.HIGH
    if pct >= 50:
        return Severity.MEDIUM
    return Severity.LOW


class BalanceChangeRule(AnomalyRule):
    rule_id = RuleId.BALANCE_CHANGE
    name = "Balance Change Detection"

    def evaluate(self, context: AnalysisContext, config: BalanceChangeConfig) -> List[Insight]:
        insights = []

        for (key, source_system), history in context.tradeline_histories().items():
            with_balance = [o for o in history if o.balance is not None]

            for prev, curr in zip(with_balance, with_balance[1:]):
                abs_delta = abs(curr.balance - prev.balance)
                if abs_delta == 0:
                    continue
                pct = pct_change(prev.balance, curr.balance)
                if not exceeds_thresholds(abs_delta, pct, config):
                    continue

                direction = "increase" if curr.balance > prev.balance else "decrease"
                insights.append(self.insight(
                    severity=severity_for_pct(pct),
                    message=(
                        f"Balance {direction} of {pct:.0f}% on {curr.furnisher_name or curr.tradeline_id} "
                        f"({source_system}): {prev.balance:,.2f} → {curr.balance:,.2f}"
                    ),
                    evidence={
                        "account_key": key,
                        "source_system": source_system,
                        "direction": direction,
                        "balance_old": prev.balance,
                        "balance_new": curr.balance,
                        "absolute_change": abs_delta,
                        "pct_change": round(pct, 2),
                        "previous_import_id": prev.import_id,
                        "as_of_dates": [iso(prev.as_of_date), iso(curr.as_of_date)],
                    },
                    observed_at=curr.imported_at,
                    import_id=curr.import_id,
                    entity_ids=tuple(i for i in (
                        prev.tradeline_id, curr.tradeline_id, prev.snapshot_id, curr.snapshot_id
                    ) if i),
                ))

        return insights
