"""
Credit Timeline - New Tradeline Detection

Flags accounts in the current imports whose identity was never reported by
any prior import. The first import of a subject has no baseline, so every
account in it would be "new"; the rule is skipped.
"""
from __future__ import annotations
from typing import List

from ....models.timeline import AnalysisContext, Insight, RuleId, Severity, TradelineObservation
from ..config import NewTradelineConfig
from .base import AnomalyRule, iso


class NewTradelineRule(AnomalyRule):
    rule_id = RuleId.NEW_TRADELINE
    name = "New Tradeline Detection"

    def evaluate(self, context: AnalysisContext, config: NewTradelineConfig) -> List[Insight]:
        prior_import_ids = context.prior_import_ids
        if not prior_import_ids:
            return []

        known_keys = {t.account_key for t in context.tradelines if t.import_id in prior_import_ids}

        # Several sources may report the same new account; flag it once
        new_by_key = {}
        for obs in sorted(context.current_tradelines, key=lambda t: (t.account_key, t.source_system, t.tradeline_id)):
            if obs.account_key in known_keys:
                continue
            new_by_key.setdefault(obs.account_key, []).append(obs)

        if not new_by_key:
            return []

        classified = [
            (observations, self._classify(observations[0], config))
            for observations in new_by_key.values()
        ]
        unexpected_count = sum(1 for _, c in classified if c == "unexpected")

        insights = []
        for observations, classification in classified:
            first = observations[0]
            if classification == "expected":
                severity = Severity.INFO
                message = (
                    f"New tradeline detected: {first.account_type or 'unknown'} from "
                    f"{first.furnisher_name or 'unknown'} (recently opened)"
                )
            else:
                # Several unexpected accounts at once is a stronger signal
                severity = Severity.MEDIUM if unexpected_count > 1 else Severity.LOW
                message = (
                    f"Unexpected new tradeline: {first.account_type or 'unknown'} from "
                    f"{first.furnisher_name or 'unknown'}"
                )

            insights.append(self.insight(
                severity=severity,
                message=message,
                evidence={
                    "account_key": first.account_key,
                    "tradeline_ids": [o.tradeline_id for o in observations],
                    "source_systems": sorted({o.source_system for o in observations}),
                    "account_type": first.account_type,
                    "furnisher_name": first.furnisher_name,
                    "opened_at": iso(first.opened_at),
                    "classification": classification,
                },
                observed_at=first.imported_at,
                import_id=first.import_id,
                entity_ids=tuple(o.tradeline_id for o in observations),
            ))
        return insights

    @staticmethod
    def _classify(obs: TradelineObservation, config: NewTradelineConfig) -> str:
        if obs.opened_at is None:
            return "unexpected"
        days_open = (obs.imported_at.date() - obs.opened_at).days
        return "expected" if days_open <= config.expected_window_days else "unexpected"
