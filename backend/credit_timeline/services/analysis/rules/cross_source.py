"""
Credit Timeline - Cross-Source Discrepancy

Detects when the same account is reported differently by different source
systems (credit reference agencies) in the same reporting period.

For each account identity, the latest observation per source is compared
pairwise. Pairs imported more than `period_days` apart describe different
periods and are not compared.
"""
from __future__ import annotations
from collections import defaultdict
from datetime import timedelta
from itertools import combinations
from typing import Dict, List, Optional

from ....models.timeline import AnalysisContext, Insight, RuleId, Severity, TradelineObservation
from ..config import CrossSourceDiscrepancyConfig
from .base import AnomalyRule
from .payment_status import normalize_payment_status, payment_status_rank
from .status_change import normalize_account_status

# Percentage differences above this are at least medium
MEDIUM_PCT_DIFFERENCE = 25.0


def pct_difference(a: float, b: float) -> float:
    """Difference relative to the larger magnitude; never divides by < 1."""
    return abs(a - b) / max(abs(a), abs(b), 1.0) * 100


def latest_per_source(observations: List[TradelineObservation]) -> Dict[str, TradelineObservation]:
    latest: Dict[str, TradelineObservation] = {}
    for obs in sorted(observations, key=lambda t: (t.imported_at, t.import_id, t.tradeline_id)):
        latest[obs.source_system] = obs
    return latest


class CrossSourceDiscrepancyRule(AnomalyRule):
    rule_id = RuleId.CROSS_SOURCE_DISCREPANCY
    name = "Cross-Source Discrepancy Detection"

    def evaluate(self, context: AnalysisContext, config: CrossSourceDiscrepancyConfig) -> List[Insight]:
        by_account: Dict[str, List[TradelineObservation]] = defaultdict(list)
        for obs in context.matchable_tradelines:
            by_account[obs.account_key].append(obs)

        insights = []
        for key in sorted(by_account):
            latest = latest_per_source(by_account[key])
            if len(latest) < 2:
                continue

            discrepancies = []
            severity = Severity.LOW
            for source_a, source_b in combinations(sorted(latest), 2):
                a, b = latest[source_a], latest[source_b]
                if abs(a.imported_at - b.imported_at) > timedelta(days=config.period_days):
                    continue

                for field, value_a, value_b, threshold in (
                    ("balance", a.balance, b.balance, config.balance_pct_threshold),
                    ("credit_limit", a.credit_limit, b.credit_limit, config.limit_pct_threshold),
                ):
                    found = self._numeric_discrepancy(field, a, value_a, b, value_b, threshold, config)
                    if found:
                        discrepancies.append(found)
                        if found["pct_difference"] > MEDIUM_PCT_DIFFERENCE:
                            severity = severity.bump(Severity.MEDIUM)

                status_a = normalize_account_status(a.account_status)
                status_b = normalize_account_status(b.account_status)
                if a.account_status and b.account_status and status_a != status_b:
                    discrepancies.append(self._status_discrepancy("account_status", a, a.account_status, b, b.account_status))
                    severity = severity.bump(Severity.HIGH)

                if self._payment_status_differs(a.payment_status, b.payment_status):
                    discrepancies.append(self._status_discrepancy("payment_status", a, a.payment_status, b, b.payment_status))
                    severity = severity.bump(Severity.MEDIUM)

            if not discrepancies:
                continue

            observations = [latest[s] for s in sorted(latest)]
            newest = max(observations, key=lambda t: (t.imported_at, t.import_id))
            fields = sorted({d["field"] for d in discrepancies})
            insights.append(self.insight(
                severity=severity,
                message=(
                    f"Cross-source discrepancy for {newest.furnisher_name or key}: "
                    f"{', '.join(fields)} differ across {', '.join(sorted(latest))}"
                ),
                evidence={
                    "account_key": key,
                    "source_systems": sorted(latest),
                    "discrepancies": discrepancies,
                },
                observed_at=newest.imported_at,
                import_id=newest.import_id,
                entity_ids=tuple(o.tradeline_id for o in observations),
            ))

        return insights

    @staticmethod
    def _numeric_discrepancy(
        field: str,
        a: TradelineObservation,
        value_a: Optional[float],
        b: TradelineObservation,
        value_b: Optional[float],
        pct_threshold: float,
        config: CrossSourceDiscrepancyConfig,
    ) -> Optional[dict]:
        if value_a is None or value_b is None:
            return None
        abs_diff = abs(value_a - value_b)
        if abs_diff == 0 or abs_diff <= config.abs_tolerance:
            return None
        pct = pct_difference(value_a, value_b)
        if pct < pct_threshold:
            return None
        return {
            "field": field,
            "source_a": a.source_system,
            "value_a": value_a,
            "source_b": b.source_system,
            "value_b": value_b,
            "absolute_difference": abs_diff,
            "pct_difference": round(pct, 2),
        }

    @staticmethod
    def _status_discrepancy(field, a, value_a, b, value_b) -> dict:
        return {
            "field": field,
            "source_a": a.source_system,
            "value_a": value_a,
            "source_b": b.source_system,
            "value_b": value_b,
        }

    @staticmethod
    def _payment_status_differs(status_a: Optional[str], status_b: Optional[str]) -> bool:
        if not status_a or not status_b:
            return False
        rank_a, rank_b = payment_status_rank(status_a), payment_status_rank(status_b)
        if rank_a is not None and rank_b is not None:
            return rank_a != rank_b
        return normalize_payment_status(status_a) != normalize_payment_status(status_b)
