"""
Credit Timeline - Analysis Entrypoint

subject id (+ optional overrides) → config → context → engine → result
"""
from __future__ import annotations
import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from ...models.timeline import AnalysisEngineResult
from .config import load_anomaly_config, load_settings_overrides
from .context_builder import build_analysis_context
from .engine import run_rules

logger = logging.getLogger(__name__)


def analyze_subject(
    db: Session,
    subject_id: str,
    overrides: Optional[Mapping[str, Any]] = None,
    log: Optional[logging.Logger] = None,
    current_import_ids: Optional[Iterable[str]] = None,
) -> AnalysisEngineResult:
    """
    Run anomaly analysis for one subject. Read-only against the store.

    Raises:
        AnomalyConfigError: overrides or persisted settings are invalid
        SubjectNotFoundError: no such subject
    """
    log = log or logger

    # Config first: a bad override fails before any timeline is read
    config = load_anomaly_config(overrides=overrides, settings=load_settings_overrides(db))
    context = build_analysis_context(db, subject_id, current_import_ids=current_import_ids)
    return run_rules(context, config, log=log)
