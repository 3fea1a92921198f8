"""
Credit Timeline - Payload Validation

Two passes, both side-effect free:
1. Schema validation - raw JSON-shaped data → CreditFile (pydantic)
2. Referential checks - internal cross-references within the CreditFile

Failures are returned as values, one issue per violation.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set

from pydantic import ValidationError

from ...models.canonical import CreditFile
from .transforms import derive_metric_value_key

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ValidationOutcome:
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    value: Optional[CreditFile] = None


def _format_loc(loc) -> str:
    return "/" + "/".join(str(part) for part in loc) if loc else "/"


def validate_credit_file(data: Any) -> ValidationOutcome:
    """Validate raw data against the canonical schema."""
    try:
        credit_file = CreditFile.model_validate(data)
    except ValidationError as exc:
        issues = [
            ValidationIssue(path=_format_loc(err.get("loc", ())), message=err.get("msg", "invalid"))
            for err in exc.errors()
        ]
        return ValidationOutcome(valid=False, errors=issues)
    return ValidationOutcome(valid=True, value=credit_file)


# =============================================================================
# REFERENTIAL CHECKS
# =============================================================================

def check_referential_integrity(credit_file: CreditFile) -> List[ValidationIssue]:
    """
    Validate internal cross-references. Runs after schema validation.

    Checks:
    1. import ids are unique
    2. subject.subject_id matches the file's subject_id
    3. every source_import_id resolves to imports[]
    4. every address reference resolves to addresses[]
    5. every organisation reference resolves to organisations[]
    6. monthly metric periods are YYYY-MM
    7. no duplicate monthly metric keys per tradeline
    """
    issues: List[ValidationIssue] = []

    import_ids: Set[str] = set()
    for idx, imp in enumerate(credit_file.imports):
        if imp.import_id in import_ids:
            issues.append(ValidationIssue(
                f"/imports/{idx}/import_id", f'duplicate import_id "{imp.import_id}"'
            ))
        import_ids.add(imp.import_id)

    if credit_file.subject.subject_id != credit_file.subject_id:
        issues.append(ValidationIssue(
            "/subject/subject_id",
            f'"{credit_file.subject.subject_id}" does not match file subject_id "{credit_file.subject_id}"',
        ))

    address_ids = {a.address_id for a in credit_file.addresses}
    organisation_ids = {o.organisation_id for o in credit_file.organisations}

    def check_import(import_id: Optional[str], path: str) -> None:
        if import_id is not None and import_id not in import_ids:
            issues.append(ValidationIssue(path, f'source_import_id "{import_id}" not found in imports[]'))

    def check_address(address_id: Optional[str], path: str) -> None:
        if address_id is not None and address_id not in address_ids:
            issues.append(ValidationIssue(path, f'address_id "{address_id}" not found in addresses[]'))

    def check_organisation(organisation_id: Optional[str], path: str) -> None:
        if organisation_id is not None and organisation_id not in organisation_ids:
            issues.append(ValidationIssue(
                path, f'organisation_id "{organisation_id}" not found in organisations[]'
            ))

    for n in credit_file.subject.names:
        check_import(n.source_import_id, f"/subject/names[{n.name_id}]")
    for o in credit_file.organisations:
        check_import(o.source_import_id, f"/organisations[{o.organisation_id}]")
    for a in credit_file.address_associations:
        path = f"/address_associations[{a.association_id}]"
        check_import(a.source_import_id, path)
        check_address(a.address_id, path)

    for t in credit_file.tradelines:
        path = f"/tradelines[{t.tradeline_id}]"
        check_import(t.source_import_id, path)
        check_organisation(t.furnisher_organisation_id, path)
        for s in t.snapshots:
            check_import(s.source_import_id, f"{path}/snapshots[{s.snapshot_id}]")

        seen_metric_keys: Set[tuple] = set()
        for m in t.monthly_metrics:
            metric_path = f"{path}/monthly_metrics[{m.monthly_metric_id}]"
            check_import(m.source_import_id, metric_path)
            if not PERIOD_PATTERN.match(m.period):
                issues.append(ValidationIssue(metric_path, f'period "{m.period}" is not valid YYYY-MM format'))
            value_key = derive_metric_value_key(m)
            composite = (m.period, m.metric_type, m.source_import_id, value_key)
            if composite in seen_metric_keys:
                issues.append(ValidationIssue(
                    metric_path, f"duplicate metric key ({m.period}, {m.metric_type}, {value_key})"
                ))
            seen_metric_keys.add(composite)

    for s in credit_file.searches:
        path = f"/searches[{s.search_id}]"
        check_import(s.source_import_id, path)
        check_organisation(s.organisation_id, path)
    for c in credit_file.credit_scores:
        check_import(c.source_import_id, f"/credit_scores[{c.score_id}]")
    for p in credit_file.public_records:
        path = f"/public_records[{p.public_record_id}]"
        check_import(p.source_import_id, path)
        check_address(p.address_id, path)

    return issues
