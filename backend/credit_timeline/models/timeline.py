"""
Credit Timeline - Analysis Models

Read-only views of a subject's timeline (AnalysisContext) and the derived
output of the anomaly engine (Insight, AnalysisEngineResult).

Insights are derived, never canonical: every field can be regenerated from
the same timeline state and config.
"""
from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


# =============================================================================
# ENUMS
# =============================================================================

class Severity(str, Enum):
    """Ordered: info < low < medium < high."""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)

    def bump(self, candidate: "Severity") -> "Severity":
        """Return the more severe of self and candidate."""
        return candidate if candidate.rank > self.rank else self


SEVERITY_ORDER: Tuple[Severity, ...] = (
    Severity.INFO, Severity.LOW, Severity.MEDIUM, Severity.HIGH,
)


class RuleId(str, Enum):
    """The closed set of anomaly rules, in registration order."""
    NEW_TRADELINE = "new_tradeline"
    BALANCE_CHANGE = "balance_change"
    PAYMENT_STATUS_DEGRADATION = "payment_status_degradation"
    STATUS_CHANGE = "status_change"
    HARD_SEARCH = "hard_search"
    CROSS_SOURCE_DISCREPANCY = "cross_source_discrepancy"


# =============================================================================
# TIMELINE OBSERVATIONS (input to rules)
# =============================================================================

@dataclass(frozen=True)
class ImportRef:
    import_id: str
    file_id: str
    source_system: str
    imported_at: datetime


@dataclass(frozen=True)
class TradelineObservation:
    """
    One tradeline as reported by one import, flattened with its latest snapshot.

    `account_key` is the stable identity used to match the same real-world
    account across imports and source systems.
    """
    tradeline_id: str
    account_key: str
    import_id: str
    source_system: str
    imported_at: datetime
    canonical_id: Optional[str] = None
    furnisher_organisation_id: Optional[str] = None
    furnisher_name: Optional[str] = None
    account_type: Optional[str] = None
    account_number_masked: Optional[str] = None
    opened_at: Optional[date] = None
    account_status: Optional[str] = None
    payment_status: Optional[str] = None
    balance: Optional[float] = None
    credit_limit: Optional[float] = None
    as_of_date: Optional[date] = None
    snapshot_id: Optional[str] = None


@dataclass(frozen=True)
class SearchObservation:
    search_id: str
    searched_at: datetime
    visibility: str
    import_id: str
    source_system: str
    search_type: Optional[str] = None
    organisation_id: Optional[str] = None
    organisation_name: Optional[str] = None


@dataclass(frozen=True)
class ScoreObservation:
    score_id: str
    score_value: int
    import_id: str
    source_system: str
    calculated_at: Optional[datetime] = None
    score_name: Optional[str] = None


@dataclass(frozen=True)
class PublicRecordObservation:
    public_record_id: str
    record_type: str
    import_id: str
    source_system: str
    status: Optional[str] = None
    amount: Optional[float] = None
    recorded_at: Optional[date] = None


@dataclass(frozen=True)
class AnalysisContext:
    """
    The slice of one subject's timeline that rules evaluate.

    All collections are tuples in chronological order. Rules must treat the
    context as read-only.
    """
    subject_id: str
    imports: Tuple[ImportRef, ...] = ()
    current_import_ids: FrozenSet[str] = frozenset()
    tradelines: Tuple[TradelineObservation, ...] = ()
    searches: Tuple[SearchObservation, ...] = ()
    scores: Tuple[ScoreObservation, ...] = ()
    public_records: Tuple[PublicRecordObservation, ...] = ()

    @property
    def prior_import_ids(self) -> FrozenSet[str]:
        return frozenset(
            imp.import_id for imp in self.imports
            if imp.import_id not in self.current_import_ids
        )

    @property
    def as_of(self) -> Optional[datetime]:
        """Timestamp of the most recent import, if any."""
        if not self.imports:
            return None
        return max(imp.imported_at for imp in self.imports)

    @property
    def current_tradelines(self) -> List[TradelineObservation]:
        return [t for t in self.tradelines if t.import_id in self.current_import_ids]

    @property
    def ambiguous_tradeline_ids(self) -> FrozenSet[str]:
        """
        Tradelines that share their account_key with another tradeline from
        the same import. One import never reports the same account twice, so
        these are distinct accounts whose identity could not be told apart.
        """
        by_slot: Dict[Tuple[str, str, str], List[str]] = defaultdict(list)
        for obs in self.tradelines:
            by_slot[(obs.account_key, obs.source_system, obs.import_id)].append(obs.tradeline_id)
        return frozenset(
            tradeline_id
            for ids in by_slot.values() if len(ids) > 1
            for tradeline_id in ids
        )

    @property
    def matchable_tradelines(self) -> List[TradelineObservation]:
        """Tradelines whose account identity is unique within their import."""
        ambiguous = self.ambiguous_tradeline_ids
        return [t for t in self.tradelines if t.tradeline_id not in ambiguous]

    def tradeline_histories(self) -> Dict[Tuple[str, str], List[TradelineObservation]]:
        """
        Group observations by (account_key, source_system), each group
        ordered by import time. Consecutive entries are consecutive imports
        of the same account from the same source, at most one per import;
        ambiguous tradelines are left out.
        """
        histories: Dict[Tuple[str, str], List[TradelineObservation]] = defaultdict(list)
        for obs in sorted(self.matchable_tradelines, key=lambda t: (t.imported_at, t.import_id, t.tradeline_id)):
            histories[(obs.account_key, obs.source_system)].append(obs)
        return dict(sorted(histories.items()))


# =============================================================================
# ENGINE OUTPUT
# =============================================================================

@dataclass(frozen=True)
class Insight:
    """One detected anomaly."""
    rule_id: str
    kind: str
    severity: Severity
    message: str
    evidence: Dict[str, Any] = field(default_factory=dict)
    observed_at: Optional[datetime] = None
    import_id: Optional[str] = None
    entity_ids: Tuple[str, ...] = ()

    def sort_key(self):
        """Severity descending, then most recent first, then stable tie-breaks."""
        timestamp = self.observed_at.timestamp() if self.observed_at else float("-inf")
        return (-self.severity.rank, -timestamp, self.rule_id, self.message)


def sort_insights(insights: List[Insight]) -> List[Insight]:
    return sorted(insights, key=lambda i: i.sort_key())


@dataclass
class AnalysisEngineResult:
    """Owned by the caller; the engine never persists it."""
    subject_id: str
    insights: List[Insight] = field(default_factory=list)
    counts_by_severity: Dict[str, int] = field(default_factory=dict)
    rule_errors: List[Any] = field(default_factory=list)  # RuleEvaluationError
    rules_evaluated: List[str] = field(default_factory=list)

    @property
    def insight_count(self) -> int:
        return len(self.insights)

    def insights_for(self, rule_id: str) -> List[Insight]:
        return [i for i in self.insights if i.rule_id == rule_id]
