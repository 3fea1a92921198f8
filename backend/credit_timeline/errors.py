"""
Credit Timeline - Error Taxonomy

Validation failures and duplicate payloads are normal return values of the
ingestion pipeline. The exceptions below cover everything else.
"""
from typing import List, Optional, Sequence


class CreditTimelineError(Exception):
    """Base class for all Credit Timeline errors."""


class PayloadValidationError(CreditTimelineError):
    """
    A payload did not conform to the canonical schema.

    Raised by the HTTP layer only; ingest_credit_file() returns validation
    failures as values. `issues` holds one "path: message" string per violation.
    """

    def __init__(self, issues: Sequence[str]):
        self.issues: List[str] = list(issues)
        summary = "; ".join(self.issues[:5])
        super().__init__(f"Payload failed validation ({len(self.issues)} issue(s)): {summary}")


class StorageError(CreditTimelineError):
    """
    The transactional phase of an ingestion failed.

    Always raised after the transaction has been rolled back; the
    underlying driver/ORM exception is chained as __cause__.
    """

    def __init__(self, message: str, file_id: Optional[str] = None, subject_id: Optional[str] = None):
        self.file_id = file_id
        self.subject_id = subject_id
        super().__init__(message)


class AnomalyConfigError(CreditTimelineError, ValueError):
    """An anomaly config override was invalid."""

    def __init__(self, issues: Sequence[str]):
        self.issues: List[str] = list(issues)
        super().__init__("Invalid anomaly config: " + "; ".join(self.issues))


class RuleEvaluationError(CreditTimelineError):
    """
    One anomaly rule raised during evaluation.

    The engine records these in its result instead of raising them.
    """

    def __init__(self, rule_id: str, cause: BaseException):
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(f"Rule {rule_id} failed: {type(cause).__name__}: {cause}")


class SubjectNotFoundError(CreditTimelineError, LookupError):
    """No timeline exists for the requested subject."""

    def __init__(self, subject_id: str):
        self.subject_id = subject_id
        super().__init__(f"Subject {subject_id} not found")
