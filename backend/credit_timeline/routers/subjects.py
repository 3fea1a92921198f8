"""
Credit Timeline - Subjects API Router

Anomaly analysis for one subject. Optional rule overrides are passed as JSON
text in the `config` query parameter, e.g.
    ?config={"hard_search": {"window_days": 14}}
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import AnomalyConfigError, SubjectNotFoundError
from ..services.analysis import analyze_subject

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subjects", tags=["subjects"])


# =============================================================================
# PYDANTIC MODELS FOR API
# =============================================================================

class InsightResponse(BaseModel):
    rule_id: str
    kind: str
    severity: str
    message: str
    evidence: Dict[str, Any] = {}
    observed_at: Optional[str] = None
    import_id: Optional[str] = None
    entity_ids: List[str] = []


class RuleErrorResponse(BaseModel):
    rule_id: str
    error: str


class AnomalyReportResponse(BaseModel):
    subject_id: str
    insight_count: int
    counts_by_severity: Dict[str, int]
    rules_evaluated: List[str]
    rule_errors: List[RuleErrorResponse] = []
    insights: List[InsightResponse]


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/{subject_id}/anomalies", response_model=AnomalyReportResponse)
async def get_anomalies(
    subject_id: str,
    config: Optional[str] = Query(None, description="JSON object of rule overrides"),
    db: Session = Depends(get_db)
):
    """Run every anomaly rule against the subject's timeline."""
    overrides = None
    if config:
        try:
            overrides = json.loads(config)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=400, detail=f"config is not valid JSON: {e}")

    try:
        result = analyze_subject(db, subject_id, overrides=overrides)
    except AnomalyConfigError as e:
        raise HTTPException(status_code=400, detail={"message": "Invalid anomaly config", "errors": e.issues})
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail="Subject not found")

    return AnomalyReportResponse(
        subject_id=result.subject_id,
        insight_count=result.insight_count,
        counts_by_severity=result.counts_by_severity,
        rules_evaluated=result.rules_evaluated,
        rule_errors=[
            RuleErrorResponse(rule_id=err.rule_id, error=str(err.cause))
            for err in result.rule_errors
        ],
        insights=[
            InsightResponse(
                rule_id=i.rule_id,
                kind=i.kind,
                severity=i.severity.value,
                message=i.message,
                evidence=i.evidence,
                observed_at=i.observed_at.isoformat() if i.observed_at else None,
                import_id=i.import_id,
                entity_ids=list(i.entity_ids),
            )
            for i in result.insights
        ],
    )
