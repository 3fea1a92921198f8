"""
Credit Timeline - Anomaly Rule Base

Every rule is a pure evaluator over an immutable AnalysisContext:
same context + same config → same insights, no side effects.
"""
from __future__ import annotations
from datetime import date, datetime
from typing import Any, List, Optional

from ....models.timeline import AnalysisContext, Insight, RuleId, Severity
from ..config import RuleConfig


class AnomalyRule:
    """One member of the closed rule set. Subclasses set rule_id and name."""

    rule_id: RuleId
    name: str = ""

    def evaluate(self, context: AnalysisContext, config: RuleConfig) -> List[Insight]:
        raise NotImplementedError

    def insight(
        self,
        severity: Severity,
        message: str,
        evidence: dict,
        observed_at: Optional[datetime] = None,
        import_id: Optional[str] = None,
        entity_ids: tuple = (),
        kind: Optional[str] = None,
    ) -> Insight:
        return Insight(
            rule_id=self.rule_id.value,
            kind=kind or self.rule_id.value,
            severity=severity,
            message=message,
            evidence=evidence,
            observed_at=observed_at,
            import_id=import_id,
            entity_ids=tuple(entity_ids),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.rule_id.value}>"


def iso(value: Any) -> Optional[str]:
    """Evidence values stay JSON-friendly."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def pct_change(old: float, new: float) -> float:
    """Percentage change relative to the old value; a zero base counts as 1."""
    return abs(new - old) / max(abs(old), 1.0) * 100
