"""
Credit Timeline - Ingest Quality Warnings

Non-fatal observations about a validated credit file. Returned to the caller
and recorded as generated_insights rows inside the ingestion transaction.
"""
from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List

from ...models.canonical import CreditFile
from ...models.timeline import Severity

CREDIT_BEARING_TYPES = {"credit_card", "mortgage", "secured_loan", "unsecured_loan"}


@dataclass(frozen=True)
class QualityWarning:
    kind: str
    severity: Severity
    summary: str
    entity_ids: List[str] = field(default_factory=list)


def generate_quality_warnings(credit_file: CreditFile) -> List[QualityWarning]:
    warnings: List[QualityWarning] = []

    if not credit_file.tradelines:
        warnings.append(QualityWarning(
            kind="sparse_file",
            severity=Severity.INFO,
            summary="Credit file contains no tradelines",
        ))

    for t in credit_file.tradelines:
        if not t.snapshots:
            warnings.append(QualityWarning(
                kind="missing_snapshots",
                severity=Severity.INFO,
                summary=f"Tradeline {t.tradeline_id} has no snapshots",
                entity_ids=[t.tradeline_id],
            ))

        for s in t.snapshots:
            if s.current_balance is not None and s.current_balance < 0:
                warnings.append(QualityWarning(
                    kind="negative_balance",
                    severity=Severity.LOW,
                    summary=(
                        f"Tradeline {t.tradeline_id} snapshot {s.snapshot_id} "
                        f"has negative balance ({s.current_balance})"
                    ),
                    entity_ids=[t.tradeline_id, s.snapshot_id],
                ))

        if t.account_type in CREDIT_BEARING_TYPES:
            if any(s.credit_limit == 0 for s in t.snapshots):
                warnings.append(QualityWarning(
                    kind="zero_credit_limit",
                    severity=Severity.INFO,
                    summary=f"Tradeline {t.tradeline_id} ({t.account_type}) has zero credit limit",
                    entity_ids=[t.tradeline_id],
                ))

    # Same account type + furnisher within one import looks like a duplicate
    signatures: Dict[tuple, List[str]] = defaultdict(list)
    for t in credit_file.tradelines:
        furnisher = t.furnisher_organisation_id or t.furnisher_name_raw or "unknown"
        signatures[(t.source_import_id, t.account_type or "unknown", furnisher)].append(t.tradeline_id)
    for ids in signatures.values():
        if len(ids) > 1:
            warnings.append(QualityWarning(
                kind="duplicate_looking_tradeline",
                severity=Severity.LOW,
                summary=f"{len(ids)} tradelines share the same account type and furnisher",
                entity_ids=ids,
            ))

    return warnings
