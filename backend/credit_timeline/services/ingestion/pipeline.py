"""
Credit Timeline - Ingestion Pipeline

raw payload → validate → hash → dedup check → one transaction → IngestResult

Guarantees:
- Validation failures are returned, never raised, and open no transaction.
- A payload already ingested for the same subject (same content hash) is an
  idempotent success: nothing is written, the prior entity counts are returned.
- Inserts are all-or-nothing. Storage failures roll back and propagate as
  StorageError; they are never retried here.
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .context import IngestContext
from .inserters import (
    insert_subject, insert_credit_file, insert_import_batches, insert_person_names,
    insert_organisations, insert_addresses, insert_address_associations, insert_tradelines,
    insert_search_records, insert_credit_scores, insert_public_records,
    insert_quality_warnings, insert_ingest_receipt, insert_audit_log_entry,
)
from .locks import subject_locks
from .quality_warnings import QualityWarning, generate_quality_warnings
from .transforms import compute_payload_hash
from .validation import validate_credit_file, check_referential_integrity
from ...errors import StorageError
from ...models.db_models import IngestReceiptDB

logger = logging.getLogger(__name__)

# Foreign-key order: provenance → identity → tradelines → records
ENTITY_INSERTERS = (
    insert_subject,
    insert_credit_file,
    insert_import_batches,
    insert_person_names,
    insert_organisations,
    insert_addresses,
    insert_address_associations,
    insert_tradelines,
    insert_search_records,
    insert_credit_scores,
    insert_public_records,
)


@dataclass
class IngestResult:
    success: bool
    errors: List[str] = field(default_factory=list)
    entity_counts: Dict[str, int] = field(default_factory=dict)
    import_ids: List[str] = field(default_factory=list)
    duplicate: bool = False
    receipt_id: Optional[str] = None
    duration_ms: Optional[int] = None
    warnings: List[QualityWarning] = field(default_factory=list)


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


def find_prior_receipt(db: Session, subject_id: str, payload_sha256: str) -> Optional[IngestReceiptDB]:
    return db.query(IngestReceiptDB).filter(
        IngestReceiptDB.subject_id == subject_id,
        IngestReceiptDB.payload_sha256 == payload_sha256,
        IngestReceiptDB.status == "success",
    ).first()


def ingest_credit_file(db: Session, data: Any, log: Optional[logging.Logger] = None) -> IngestResult:
    """
    Ingest one credit file payload into the timeline store.

    Args:
        db: Session used as the transaction handle; committed or rolled back here
        data: JSON-shaped payload (dict) or an already-built CreditFile
        log: Optional logger; defaults to this module's (silent unless configured)

    Returns:
        IngestResult - success=False with one error per violation when the
        payload is invalid; success=True otherwise

    Raises:
        StorageError: the transactional phase failed (after rollback)
    """
    log = log or logger
    start = time.perf_counter()

    # Step 1: schema validation
    outcome = validate_credit_file(data)
    if not outcome.valid:
        log.warning(f"Schema validation failed with {len(outcome.errors)} error(s)")
        return IngestResult(success=False, errors=[str(issue) for issue in outcome.errors])
    credit_file = outcome.value

    # Step 2: referential integrity
    ref_issues = check_referential_integrity(credit_file)
    if ref_issues:
        log.warning(f"Referential checks failed for file {credit_file.file_id}: {len(ref_issues)} error(s)")
        return IngestResult(success=False, errors=[str(issue) for issue in ref_issues])

    # Step 3: content hash of the validated file; 1000 and 1000.0 hash alike
    payload_sha256 = compute_payload_hash(credit_file.model_dump(mode="json"))

    scoped = logging.LoggerAdapter(log, {
        "file_id": credit_file.file_id,
        "subject_id": credit_file.subject_id,
    })

    with subject_locks.hold(credit_file.subject_id):
        # Step 4: dedup check
        prior = find_prior_receipt(db, credit_file.subject_id, payload_sha256)
        if prior is not None:
            scoped.info(
                f"Duplicate payload for subject {credit_file.subject_id} "
                f"(receipt {prior.id}), skipping"
            )
            return IngestResult(
                success=True,
                entity_counts=dict(prior.entity_counts or {}),
                import_ids=list(prior.import_ids or []),
                duplicate=True,
                receipt_id=prior.id,
                duration_ms=_elapsed_ms(start),
            )

        warnings = generate_quality_warnings(credit_file)

        # Step 5: one transaction for every insert
        ctx = IngestContext(
            session=db,
            credit_file=credit_file,
            subject_id=credit_file.subject_id,
            logger=scoped,
        )
        try:
            for inserter in ENTITY_INSERTERS:
                inserter(ctx)
            insert_quality_warnings(ctx, warnings)

            duration_ms = _elapsed_ms(start)
            receipt_id = insert_ingest_receipt(ctx, payload_sha256, duration_ms)
            insert_audit_log_entry(ctx, "ingest.completed", {
                "file_id": credit_file.file_id,
                "entity_counts": dict(ctx.entity_counts),
                "duration_ms": duration_ms,
            })
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            scoped.error(f"Ingestion of file {credit_file.file_id} rolled back: {exc}")
            raise StorageError(
                f"Ingestion of file {credit_file.file_id} failed: {exc}",
                file_id=credit_file.file_id,
                subject_id=credit_file.subject_id,
            ) from exc
        except BaseException:
            # Includes timeouts and interrupts: never leave a partial transaction
            db.rollback()
            scoped.error(f"Ingestion of file {credit_file.file_id} rolled back")
            raise

    scoped.info(
        f"Ingested file {credit_file.file_id}: imports={credit_file.import_ids} "
        f"counts={ctx.entity_counts} in {duration_ms}ms"
    )
    return IngestResult(
        success=True,
        entity_counts=dict(ctx.entity_counts),
        import_ids=credit_file.import_ids,
        receipt_id=receipt_id,
        duration_ms=duration_ms,
        warnings=warnings,
    )
