"""
Credit Timeline - Ingestion Service

Validates a credit file payload and writes it to the timeline store in one
transaction, deduplicated per subject by content hash.
"""
from .pipeline import IngestResult, ingest_credit_file, find_prior_receipt
from .transforms import compute_payload_hash, derive_metric_value_key
from .validation import (
    ValidationIssue, ValidationOutcome, validate_credit_file, check_referential_integrity,
)
from .quality_warnings import QualityWarning, generate_quality_warnings
from .context import IngestContext
from .locks import SubjectLockRegistry, subject_locks

__all__ = [
    "IngestResult", "ingest_credit_file", "find_prior_receipt",
    "compute_payload_hash", "derive_metric_value_key",
    "ValidationIssue", "ValidationOutcome", "validate_credit_file", "check_referential_integrity",
    "QualityWarning", "generate_quality_warnings",
    "IngestContext",
    "SubjectLockRegistry", "subject_locks",
]
