"""
Credit Timeline - Ingestion API Router

Thin HTTP framing around the ingestion pipeline:
- validation failures → 400 with one error per violation
- storage failures → 500
- duplicate payloads → 200, same shape as a fresh ingest, duplicate=true
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import PayloadValidationError, StorageError
from ..models.db_models import ImportBatchDB, SubjectDB
from ..services.ingestion import ingest_credit_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["ingestion"])


# =============================================================================
# PYDANTIC MODELS FOR API
# =============================================================================

class QualityWarningResponse(BaseModel):
    kind: str
    severity: str
    summary: str
    entity_ids: List[str] = []


class IngestResponse(BaseModel):
    success: bool
    duplicate: bool = False
    receipt_id: Optional[str] = None
    import_ids: List[str] = []
    entity_counts: Dict[str, int] = {}
    duration_ms: Optional[int] = None
    warnings: List[QualityWarningResponse] = []


class ImportResponse(BaseModel):
    import_id: str
    file_id: str
    subject_id: str
    imported_at: str
    source_system: str
    acquisition_method: str
    mapping_version: Optional[str] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/ingest", response_model=IngestResponse)
async def ingest(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db)
):
    """Ingest one canonical credit file payload."""
    try:
        result = ingest_credit_file(db, payload)
    except StorageError as e:
        logger.error(f"Ingestion failed: {e}")
        raise HTTPException(status_code=500, detail=f"Ingestion failed: {e}")

    if not result.success:
        raise PayloadValidationError(result.errors)

    return IngestResponse(
        success=True,
        duplicate=result.duplicate,
        receipt_id=result.receipt_id,
        import_ids=result.import_ids,
        entity_counts=result.entity_counts,
        duration_ms=result.duration_ms,
        warnings=[
            QualityWarningResponse(
                kind=w.kind,
                severity=w.severity.value,
                summary=w.summary,
                entity_ids=list(w.entity_ids),
            )
            for w in result.warnings
        ],
    )


@router.get("/imports", response_model=List[ImportResponse])
async def list_imports(
    subject_id: str = Query(...),
    db: Session = Depends(get_db)
):
    """List a subject's imports, oldest first."""
    if db.get(SubjectDB, subject_id) is None:
        raise HTTPException(status_code=404, detail="Subject not found")

    rows = db.query(ImportBatchDB).filter(
        ImportBatchDB.subject_id == subject_id
    ).order_by(ImportBatchDB.imported_at, ImportBatchDB.id).all()

    return [
        ImportResponse(
            import_id=row.id,
            file_id=row.file_id,
            subject_id=row.subject_id,
            imported_at=row.imported_at.isoformat(),
            source_system=row.source_system,
            acquisition_method=row.acquisition_method,
            mapping_version=row.mapping_version,
        )
        for row in rows
    ]
