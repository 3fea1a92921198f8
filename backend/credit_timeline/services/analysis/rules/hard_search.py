"""
Credit Timeline - Hard Search Detection

Finds the densest rolling window of hard searches on the subject's file and
flags it when the count exceeds the configured threshold.

A search re-reported by a later import from the same source system is one
search: the signature is (source_system, searcher, searched_at). Searches
from different source systems are different credit checks and all count.
"""
from __future__ import annotations
from datetime import timedelta
from typing import Dict, List, Optional, Set, Tuple

from ....models.timeline import AnalysisContext, Insight, RuleId, SearchObservation, Severity
from ..config import HardSearchConfig
from ..matching import organisation_match_name
from .base import AnomalyRule, iso


def unique_hard_searches(context: AnalysisContext) -> List[SearchObservation]:
    """Hard searches in chronological order, one per signature (latest import wins)."""
    imported_at = {imp.import_id: imp.imported_at for imp in context.imports}
    by_signature: Dict[tuple, SearchObservation] = {}

    ordered = sorted(
        (s for s in context.searches if s.visibility == "hard"),
        key=lambda s: (imported_at.get(s.import_id) or s.searched_at, s.search_id),
    )
    for search in ordered:
        searcher = search.organisation_id or organisation_match_name(search.organisation_name)
        by_signature[(search.source_system, searcher, search.searched_at)] = search

    return sorted(by_signature.values(), key=lambda s: (s.searched_at, s.search_id))


def densest_window(
    searches: List[SearchObservation],
    window_days: int,
) -> Tuple[int, int]:
    """
    (start, end) indices, inclusive, of the window holding the most searches.
    Ties go to the most recent window.
    """
    span = timedelta(days=window_days)
    best = (0, 0)
    best_count = 0
    end = 0
    for start in range(len(searches)):
        end = max(end, start)
        while end + 1 < len(searches) and searches[end + 1].searched_at - searches[start].searched_at <= span:
            end += 1
        count = end - start + 1
        if count >= best_count:
            best, best_count = (start, end), count
    return best


class HardSearchRule(AnomalyRule):
    rule_id = RuleId.HARD_SEARCH
    name = "Hard Search Detection"

    def evaluate(self, context: AnalysisContext, config: HardSearchConfig) -> List[Insight]:
        searches = unique_hard_searches(context)
        if not searches:
            return []

        start, end = densest_window(searches, config.window_days)
        in_window = searches[start:end + 1]
        count = len(in_window)
        if count <= config.threshold:
            return []

        known_ids, known_names = self._known_furnishers(context)
        details = [
            {
                "search_id": s.search_id,
                "searched_at": iso(s.searched_at),
                "organisation_name": s.organisation_name,
                "source_system": s.source_system,
                "search_type": s.search_type,
                "known_lender": self._is_known(s, known_ids, known_names),
            }
            for s in in_window
        ]
        unknown_count = sum(1 for d in details if not d["known_lender"])
        classification = "includes_unknown" if unknown_count else "all_known"

        severity = Severity.HIGH if count >= config.high_threshold else Severity.MEDIUM
        window_start = in_window[0].searched_at
        window_end = in_window[-1].searched_at

        return [self.insight(
            severity=severity,
            message=(
                f"{count} hard searches within {config.window_days} days "
                f"({window_start:%Y-%m-%d} to {window_end:%Y-%m-%d}), "
                f"above threshold of {config.threshold} ({classification})"
            ),
            evidence={
                "search_count": count,
                "threshold": config.threshold,
                "window_days": config.window_days,
                "window_start": iso(window_start),
                "window_end": iso(window_end),
                "unknown_lender_count": unknown_count,
                "classification": classification,
                "searches": details,
            },
            observed_at=window_end,
            import_id=in_window[-1].import_id,
            entity_ids=tuple(s.search_id for s in in_window),
        )]

    @staticmethod
    def _known_furnishers(context: AnalysisContext) -> Tuple[Set[str], Set[str]]:
        ids = {t.furnisher_organisation_id for t in context.tradelines if t.furnisher_organisation_id}
        names = {organisation_match_name(t.furnisher_name) for t in context.tradelines}
        names.discard("")
        return ids, names

    @staticmethod
    def _is_known(search: SearchObservation, known_ids: Set[str], known_names: Set[str]) -> bool:
        if search.organisation_id and search.organisation_id in known_ids:
            return True
        name: Optional[str] = organisation_match_name(search.organisation_name)
        return bool(name) and name in known_names
