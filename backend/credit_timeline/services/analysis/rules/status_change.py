"""
Credit Timeline - Status Change Detection

Two independent checks:
- Account status transitions between consecutive imports of the same
  account from the same source (independent of payment status).
- Credit score movements: the two most recent scores per source system.
"""
from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from ....models.timeline import AnalysisContext, Insight, RuleId, Severity, ScoreObservation
from ..config import StatusChangeConfig
from .base import AnomalyRule, iso

ACTIVE_STATUSES = {"open", "active", "current", "up-to-date", "no-update", "inactive"}
CLOSED_STATUSES = {"closed", "settled", "transferred", "paid", "satisfied", "paid-closed"}
ADVERSE_STATUSES = {
    "in-arrears", "arrangement", "query", "gone-away", "default", "defaulted",
    "written-off", "charge-off", "charged-off", "repossession", "collections",
    "delinquent", "derogatory",
}


def normalize_account_status(status: Optional[str]) -> str:
    if not status:
        return "unknown"
    return status.strip().lower().replace("_", "-").replace(" ", "-") or "unknown"


def classify_status(status: str) -> str:
    """Band for a normalized account status: active, closed, adverse or unknown."""
    if status in ACTIVE_STATUSES:
        return "active"
    if status in ADVERSE_STATUSES:
        return "adverse"
    if status in CLOSED_STATUSES:
        return "closed"
    return "unknown"


def transition_severity(prev_band: str, curr_band: str):
    """(severity, transition_type) for a band transition."""
    if curr_band == "adverse" and prev_band in ("active", "closed"):
        return Severity.HIGH, f"{prev_band}_to_adverse"
    if prev_band == "closed" and curr_band == "active":
        return Severity.MEDIUM, "reopened"
    if prev_band == "active" and curr_band == "closed":
        return Severity.INFO, "active_to_closed"
    if prev_band == "adverse" and curr_band in ("active", "closed"):
        return Severity.INFO, "recovery"
    return Severity.LOW, f"{prev_band}_to_{curr_band}"


def score_movement_severity(delta: int, threshold: int) -> Severity:
    big_move = abs(delta) >= threshold * 2
    if delta > 0:
        return Severity.LOW if big_move else Severity.INFO
    return Severity.HIGH if big_move else Severity.MEDIUM


class StatusChangeRule(AnomalyRule):
    rule_id = RuleId.STATUS_CHANGE
    name = "Status Change Detection"

    def evaluate(self, context: AnalysisContext, config: StatusChangeConfig) -> List[Insight]:
        insights = self._account_status_changes(context)
        if config.track_scores:
            insights.extend(self._score_movements(context, config))
        return insights

    def _account_status_changes(self, context: AnalysisContext) -> List[Insight]:
        insights = []

        for (key, source_system), history in context.tradeline_histories().items():
            reported = [o for o in history if o.account_status]

            for prev, curr in zip(reported, reported[1:]):
                prev_status = normalize_account_status(prev.account_status)
                curr_status = normalize_account_status(curr.account_status)
                if prev_status == curr_status:
                    continue

                prev_band = classify_status(prev_status)
                curr_band = classify_status(curr_status)
                severity, transition_type = transition_severity(prev_band, curr_band)

                insights.append(self.insight(
                    severity=severity,
                    kind="tradeline_status_change",
                    message=(
                        f"Account status changed on {curr.furnisher_name or curr.tradeline_id} "
                        f"({source_system}): \"{prev.account_status}\" → \"{curr.account_status}\""
                    ),
                    evidence={
                        "account_key": key,
                        "source_system": source_system,
                        "previous_status": prev.account_status,
                        "new_status": curr.account_status,
                        "previous_band": prev_band,
                        "new_band": curr_band,
                        "transition_type": transition_type,
                        "previous_import_id": prev.import_id,
                        "as_of_dates": [iso(prev.as_of_date), iso(curr.as_of_date)],
                    },
                    observed_at=curr.imported_at,
                    import_id=curr.import_id,
                    entity_ids=(prev.tradeline_id, curr.tradeline_id),
                ))

        return insights

    def _score_movements(self, context: AnalysisContext, config: StatusChangeConfig) -> List[Insight]:
        imported_at: Dict[str, datetime] = {imp.import_id: imp.imported_at for imp in context.imports}

        def when(score: ScoreObservation) -> datetime:
            return score.calculated_at or imported_at.get(score.import_id) or datetime.min

        by_source: Dict[str, List[ScoreObservation]] = defaultdict(list)
        for score in context.scores:
            if score.score_value is not None:
                by_source[score.source_system].append(score)

        insights = []
        for source_system in sorted(by_source):
            scores = sorted(by_source[source_system], key=lambda s: (when(s), s.score_id))
            if len(scores) < 2:
                continue

            prev, curr = scores[-2], scores[-1]
            delta = curr.score_value - prev.score_value
            if delta == 0 or abs(delta) < config.score_threshold:
                continue

            direction = "increase" if delta > 0 else "decrease"
            insights.append(self.insight(
                severity=score_movement_severity(delta, config.score_threshold),
                kind="score_movement",
                message=(
                    f"Credit score {direction} of {abs(delta)} points ({source_system}): "
                    f"{prev.score_value} → {curr.score_value}"
                ),
                evidence={
                    "source_system": source_system,
                    "previous_value": prev.score_value,
                    "current_value": curr.score_value,
                    "delta": delta,
                    "direction": direction,
                    "score_name": curr.score_name,
                },
                observed_at=curr.calculated_at or imported_at.get(curr.import_id),
                import_id=curr.import_id,
                entity_ids=(prev.score_id, curr.score_id),
            ))

        return insights
