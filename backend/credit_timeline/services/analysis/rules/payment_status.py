"""
Credit Timeline - Payment Status Degradation

Places each reported payment status on a fixed ordinal scale and flags a move
to a strictly worse position between consecutive imports of the same account
from the same source. Improvements and unrecognised statuses never flag.

Scale (higher is worse):
    0  current / up to date
    1  30 days late (arrangement)
    2  60 days late (in arrears)
    3  90 days late
    4  120+ days late
    5  collections
    6  charge-off (default, written off, repossession)
"""
from __future__ import annotations
from typing import Dict, List, Optional

from ....models.timeline import AnalysisContext, Insight, RuleId, Severity
from ..config import PaymentStatusDegradationConfig
from .base import AnomalyRule, iso

PAYMENT_STATUS_RANK: Dict[str, int] = {
    # Current
    "current": 0,
    "up-to-date": 0,
    "ok": 0,
    "paid-as-agreed": 0,
    "no-update": 0,
    "inactive": 0,
    # Late buckets
    "30-days-late": 1,
    "30-day-late": 1,
    "late-30": 1,
    "arrangement": 1,
    "60-days-late": 2,
    "60-day-late": 2,
    "late-60": 2,
    "in-arrears": 2,
    "90-days-late": 3,
    "90-day-late": 3,
    "late-90": 3,
    "120-days-late": 4,
    "120-day-late": 4,
    "late-120": 4,
    "150-days-late": 4,
    "180-days-late": 4,
    # Derogatory
    "collections": 5,
    "collection": 5,
    "in-collections": 5,
    "charge-off": 6,
    "charged-off": 6,
    "chargeoff": 6,
    "default": 6,
    "written-off": 6,
    "repossession": 6,
}

COLLECTIONS_RANK = 5


def normalize_payment_status(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    normalized = status.strip().lower().replace("_", "-").replace(" ", "-")
    return normalized or None


def payment_status_rank(status: Optional[str]) -> Optional[int]:
    """Ordinal position, or None for an unknown / missing status."""
    normalized = normalize_payment_status(status)
    if normalized is None:
        return None
    return PAYMENT_STATUS_RANK.get(normalized)


def degradation_severity(new_rank: int, rank_delta: int) -> Severity:
    if new_rank >= COLLECTIONS_RANK:
        return Severity.HIGH
    if rank_delta >= 2:
        return Severity.MEDIUM
    return Severity.LOW


class PaymentStatusDegradationRule(AnomalyRule):
    rule_id = RuleId.PAYMENT_STATUS_DEGRADATION
    name = "Payment Status Degradation"

    def evaluate(self, context: AnalysisContext, config: PaymentStatusDegradationConfig) -> List[Insight]:
        insights = []

        for (key, source_system), history in context.tradeline_histories().items():
            ranked = [
                (obs, payment_status_rank(obs.payment_status))
                for obs in history
            ]
            ranked = [(obs, rank) for obs, rank in ranked if rank is not None]

            for (prev, prev_rank), (curr, curr_rank) in zip(ranked, ranked[1:]):
                rank_delta = curr_rank - prev_rank
                if rank_delta < config.min_rank_delta:
                    continue

                insights.append(self.insight(
                    severity=degradation_severity(curr_rank, rank_delta),
                    message=(
                        f"Payment status degraded from \"{prev.payment_status}\" to "
                        f"\"{curr.payment_status}\" on {curr.furnisher_name or curr.tradeline_id} "
                        f"({source_system})"
                    ),
                    evidence={
                        "account_key": key,
                        "source_system": source_system,
                        "previous_status": prev.payment_status,
                        "current_status": curr.payment_status,
                        "previous_rank": prev_rank,
                        "current_rank": curr_rank,
                        "rank_delta": rank_delta,
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
