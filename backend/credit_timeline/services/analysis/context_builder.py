"""
Credit Timeline - Analysis Context Builder

Reads one subject's persisted timeline and flattens it into the immutable
AnalysisContext the rules evaluate. Read-only: never writes or commits.
"""
from __future__ import annotations
import logging
from datetime import date
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ...errors import SubjectNotFoundError
from ...models.db_models import (
    SubjectDB, ImportBatchDB, OrganisationDB, TradelineDB, TradelineSnapshotDB,
    SearchRecordDB, CreditScoreDB, PublicRecordDB,
)
from ...models.timeline import (
    AnalysisContext, ImportRef, TradelineObservation, SearchObservation,
    ScoreObservation, PublicRecordObservation,
)
from .matching import account_key

logger = logging.getLogger(__name__)


def _latest_snapshot(snapshots) -> Optional[TradelineSnapshotDB]:
    if not snapshots:
        return None
    return max(snapshots, key=lambda s: (s.as_of_date or date.min, s.id))


def _default_current_import_ids(imports: Iterable[ImportRef]) -> frozenset:
    """Imports of the credit file holding the most recent import."""
    imports = list(imports)
    if not imports:
        return frozenset()
    latest = max(imports, key=lambda i: (i.imported_at, i.import_id))
    return frozenset(i.import_id for i in imports if i.file_id == latest.file_id)


def build_analysis_context(
    db: Session,
    subject_id: str,
    current_import_ids: Optional[Iterable[str]] = None,
) -> AnalysisContext:
    """
    Build the AnalysisContext for one subject.

    Args:
        db: Session to read from
        subject_id: Subject to analyse
        current_import_ids: Imports treated as "latest"; defaults to the
            imports of the most recently imported credit file

    Raises:
        SubjectNotFoundError: no such subject
    """
    if db.get(SubjectDB, subject_id) is None:
        raise SubjectNotFoundError(subject_id)

    import_rows = db.query(ImportBatchDB).filter(ImportBatchDB.subject_id == subject_id).all()
    imports = tuple(sorted(
        (
            ImportRef(
                import_id=row.id,
                file_id=row.file_id,
                source_system=row.source_system,
                imported_at=row.imported_at,
            )
            for row in import_rows
        ),
        key=lambda i: (i.imported_at, i.import_id),
    ))
    imports_by_id: Dict[str, ImportRef] = {i.import_id: i for i in imports}

    if current_import_ids is None:
        current = _default_current_import_ids(imports)
    else:
        current = frozenset(current_import_ids)
        unknown = sorted(current - set(imports_by_id))
        if unknown:
            raise ValueError(f"Imports {unknown} do not belong to subject {subject_id}")

    organisation_names: Dict[str, str] = {
        org.id: org.name
        for org in db.query(OrganisationDB).filter(OrganisationDB.subject_id == subject_id).all()
    }

    # Tradelines, flattened with their latest snapshot
    tradelines = []
    for row in db.query(TradelineDB).filter(TradelineDB.subject_id == subject_id).all():
        imp = imports_by_id[row.source_import_id]
        snapshot = _latest_snapshot(row.snapshots)
        furnisher_name = organisation_names.get(row.furnisher_organisation_id) or row.furnisher_name_raw
        tradelines.append(TradelineObservation(
            tradeline_id=row.id,
            account_key=account_key(
                row.id,
                canonical_id=row.canonical_id,
                furnisher_name=furnisher_name,
                account_number_masked=row.account_number_masked,
                opened_at=row.opened_at,
            ),
            import_id=row.source_import_id,
            source_system=row.source_system,
            imported_at=imp.imported_at,
            canonical_id=row.canonical_id,
            furnisher_organisation_id=row.furnisher_organisation_id,
            furnisher_name=furnisher_name,
            account_type=row.account_type,
            account_number_masked=row.account_number_masked,
            opened_at=row.opened_at,
            account_status=(snapshot.account_status if snapshot and snapshot.account_status else row.status_current),
            payment_status=snapshot.payment_status if snapshot else None,
            balance=snapshot.current_balance if snapshot else None,
            credit_limit=snapshot.credit_limit if snapshot else None,
            as_of_date=snapshot.as_of_date if snapshot else None,
            snapshot_id=snapshot.id if snapshot else None,
        ))
    tradelines.sort(key=lambda t: (t.imported_at, t.import_id, t.tradeline_id))

    searches = sorted(
        (
            SearchObservation(
                search_id=row.id,
                searched_at=row.searched_at,
                visibility=row.visibility,
                import_id=row.source_import_id,
                source_system=row.source_system,
                search_type=row.search_type,
                organisation_id=row.organisation_id,
                organisation_name=organisation_names.get(row.organisation_id) or row.organisation_name_raw,
            )
            for row in db.query(SearchRecordDB).filter(SearchRecordDB.subject_id == subject_id).all()
        ),
        key=lambda s: (s.searched_at, s.search_id),
    )

    scores = sorted(
        (
            ScoreObservation(
                score_id=row.id,
                score_value=row.score_value,
                import_id=row.source_import_id,
                source_system=row.source_system,
                calculated_at=row.calculated_at,
                score_name=row.score_name,
            )
            for row in db.query(CreditScoreDB).filter(CreditScoreDB.subject_id == subject_id).all()
        ),
        key=lambda s: (imports_by_id[s.import_id].imported_at, s.score_id),
    )

    public_records = sorted(
        (
            PublicRecordObservation(
                public_record_id=row.id,
                record_type=row.record_type,
                import_id=row.source_import_id,
                source_system=row.source_system,
                status=row.status,
                amount=row.amount,
                recorded_at=row.recorded_at,
            )
            for row in db.query(PublicRecordDB).filter(PublicRecordDB.subject_id == subject_id).all()
        ),
        key=lambda p: (imports_by_id[p.import_id].imported_at, p.public_record_id),
    )

    logger.debug(
        f"Built analysis context for subject {subject_id}: {len(imports)} imports "
        f"({len(current)} current), {len(tradelines)} tradelines, {len(searches)} searches"
    )

    context = AnalysisContext(
        subject_id=subject_id,
        imports=imports,
        current_import_ids=current,
        tradelines=tuple(tradelines),
        searches=tuple(searches),
        scores=tuple(scores),
        public_records=tuple(public_records),
    )
    ambiguous = context.ambiguous_tradeline_ids
    if ambiguous:
        logger.warning(
            f"Subject {subject_id}: {len(ambiguous)} tradelines share an account identity "
            f"within one import and are excluded from matching: {sorted(ambiguous)}"
        )
    return context
