"""
Credit Timeline - Entity Inserters

One function per entity group, called top-down in foreign-key order by the
pipeline. Each inserter:
- derives `source_system` from the IngestContext, never from the caller
- flushes its group so constraint violations surface immediately
- records its count on the context once the group completes
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .context import IngestContext
from .quality_warnings import QualityWarning
from .transforms import derive_metric_value_key, to_utc_naive
from ...models.db_models import (
    SubjectDB, CreditFileDB, ImportBatchDB, PersonNameDB, OrganisationDB, AddressDB,
    AddressAssociationDB, TradelineDB, TradelineSnapshotDB, TradelineMonthlyMetricDB,
    SearchRecordDB, CreditScoreDB, PublicRecordDB, GeneratedInsightDB, IngestReceiptDB,
    AuditLogDB,
)


# =============================================================================
# PROVENANCE
# =============================================================================

def insert_subject(ctx: IngestContext) -> None:
    """Subjects accumulate files over time; only the first file creates the row."""
    if ctx.session.get(SubjectDB, ctx.subject_id) is not None:
        ctx.logger.debug(f"Subject {ctx.subject_id} already exists")
        return

    ctx.session.add(SubjectDB(
        id=ctx.subject_id,
        created_at=to_utc_naive(ctx.credit_file.created_at),
        extensions=ctx.credit_file.subject.extensions,
    ))
    ctx.session.flush()
    ctx.count("subjects", 1)


def insert_credit_file(ctx: IngestContext) -> None:
    cf = ctx.credit_file
    ctx.session.add(CreditFileDB(
        id=cf.file_id,
        subject_id=ctx.subject_id,
        schema_version=cf.schema_version,
        currency_code=cf.currency_code or "GBP",
        created_at=to_utc_naive(cf.created_at),
        extensions=cf.extensions,
    ))
    ctx.session.flush()
    ctx.count("credit_files", 1)


def insert_import_batches(ctx: IngestContext) -> None:
    cf = ctx.credit_file
    for imp in cf.imports:
        ctx.session.add(ImportBatchDB(
            id=imp.import_id,
            file_id=cf.file_id,
            subject_id=ctx.subject_id,
            imported_at=to_utc_naive(imp.imported_at),
            source_system=imp.source_system.value,
            acquisition_method=imp.acquisition_method.value,
            currency_code=imp.currency_code or cf.currency_code,
            source_wrapper=imp.source_wrapper,
            mapping_version=imp.mapping_version,
            confidence_notes=imp.confidence_notes,
            extensions=imp.extensions,
        ))
        ctx.register_import(imp.import_id, imp.source_system.value)
    ctx.session.flush()
    ctx.count("import_batches", len(cf.imports))


# =============================================================================
# IDENTITY
# =============================================================================

def insert_person_names(ctx: IngestContext) -> None:
    names = ctx.credit_file.subject.names
    for n in names:
        ctx.session.add(PersonNameDB(
            id=n.name_id,
            subject_id=ctx.subject_id,
            full_name=n.full_name,
            given_name=n.given_name,
            middle_name=n.middle_name,
            family_name=n.family_name,
            name_type=n.name_type,
            source_import_id=n.source_import_id,
            source_system=ctx.source_system_for(n.source_import_id),
        ))
    ctx.session.flush()
    ctx.count("person_names", len(names))


def insert_organisations(ctx: IngestContext) -> None:
    orgs = ctx.credit_file.organisations
    for o in orgs:
        ctx.session.add(OrganisationDB(
            id=o.organisation_id,
            subject_id=ctx.subject_id,
            name=o.name,
            roles=o.roles or None,
            industry_type=o.industry_type,
            source_import_id=o.source_import_id,
            source_system=ctx.source_system_for(o.source_import_id) if o.source_import_id else None,
        ))
    ctx.session.flush()
    ctx.count("organisations", len(orgs))


def insert_addresses(ctx: IngestContext) -> None:
    addresses = ctx.credit_file.addresses
    for a in addresses:
        ctx.session.add(AddressDB(
            id=a.address_id,
            line_1=a.line_1,
            line_2=a.line_2,
            town_city=a.town_city,
            postcode=a.postcode,
            country_code=a.country_code,
            normalized_single_line=a.normalized_single_line,
        ))
    ctx.session.flush()
    ctx.count("addresses", len(addresses))


def insert_address_associations(ctx: IngestContext) -> None:
    associations = ctx.credit_file.address_associations
    for a in associations:
        ctx.session.add(AddressAssociationDB(
            id=a.association_id,
            subject_id=ctx.subject_id,
            address_id=a.address_id,
            role=a.role,
            valid_from=a.valid_from,
            valid_to=a.valid_to,
            source_import_id=a.source_import_id,
            source_system=ctx.source_system_for(a.source_import_id),
        ))
    ctx.session.flush()
    ctx.count("address_associations", len(associations))


# =============================================================================
# TRADELINES
# =============================================================================

def insert_tradelines(ctx: IngestContext) -> None:
    tradelines = ctx.credit_file.tradelines
    snapshot_count = 0
    metric_count = 0

    for t in tradelines:
        ctx.session.add(TradelineDB(
            id=t.tradeline_id,
            canonical_id=t.canonical_id,
            subject_id=ctx.subject_id,
            furnisher_organisation_id=t.furnisher_organisation_id,
            furnisher_name_raw=t.furnisher_name_raw,
            account_type=t.account_type,
            account_number_masked=t.account_number_masked,
            opened_at=t.opened_at,
            closed_at=t.closed_at,
            status_current=t.status_current,
            source_import_id=t.source_import_id,
            source_system=ctx.source_system_for(t.source_import_id),
            extensions=t.extensions,
        ))
    ctx.session.flush()

    for t in tradelines:
        for s in t.snapshots:
            ctx.session.add(TradelineSnapshotDB(
                id=s.snapshot_id,
                tradeline_id=t.tradeline_id,
                as_of_date=s.as_of_date,
                account_status=s.account_status,
                payment_status=s.payment_status,
                current_balance=s.current_balance,
                credit_limit=s.credit_limit,
                delinquent_balance=s.delinquent_balance,
                source_import_id=s.source_import_id,
                source_system=ctx.source_system_for(s.source_import_id),
            ))
            snapshot_count += 1

        for m in t.monthly_metrics:
            ctx.session.add(TradelineMonthlyMetricDB(
                id=m.monthly_metric_id,
                tradeline_id=t.tradeline_id,
                period=m.period,
                metric_type=m.metric_type,
                value_numeric=m.value_numeric,
                value_text=m.value_text,
                canonical_status=m.canonical_status,
                raw_status_code=m.raw_status_code,
                metric_value_key=derive_metric_value_key(m),
                source_import_id=m.source_import_id,
                source_system=ctx.source_system_for(m.source_import_id),
            ))
            metric_count += 1
    ctx.session.flush()

    ctx.count("tradelines", len(tradelines))
    ctx.count("tradeline_snapshots", snapshot_count)
    ctx.count("tradeline_monthly_metrics", metric_count)


# =============================================================================
# RECORDS
# =============================================================================

def insert_search_records(ctx: IngestContext) -> None:
    searches = ctx.credit_file.searches
    for s in searches:
        ctx.session.add(SearchRecordDB(
            id=s.search_id,
            subject_id=ctx.subject_id,
            searched_at=to_utc_naive(s.searched_at),
            organisation_id=s.organisation_id,
            organisation_name_raw=s.organisation_name_raw,
            search_type=s.search_type,
            visibility=s.visibility.value,
            purpose_text=s.purpose_text,
            source_import_id=s.source_import_id,
            source_system=ctx.source_system_for(s.source_import_id),
        ))
    ctx.session.flush()
    ctx.count("searches", len(searches))


def insert_credit_scores(ctx: IngestContext) -> None:
    scores = ctx.credit_file.credit_scores
    for c in scores:
        ctx.session.add(CreditScoreDB(
            id=c.score_id,
            subject_id=ctx.subject_id,
            score_type=c.score_type,
            score_name=c.score_name,
            score_value=c.score_value,
            score_min=c.score_min,
            score_max=c.score_max,
            calculated_at=to_utc_naive(c.calculated_at),
            source_import_id=c.source_import_id,
            source_system=ctx.source_system_for(c.source_import_id),
        ))
    ctx.session.flush()
    ctx.count("credit_scores", len(scores))


def insert_public_records(ctx: IngestContext) -> None:
    records = ctx.credit_file.public_records
    for p in records:
        ctx.session.add(PublicRecordDB(
            id=p.public_record_id,
            subject_id=ctx.subject_id,
            record_type=p.record_type,
            court_or_register=p.court_or_register,
            amount=p.amount,
            recorded_at=p.recorded_at,
            satisfied_at=p.satisfied_at,
            status=p.status,
            address_id=p.address_id,
            source_import_id=p.source_import_id,
            source_system=ctx.source_system_for(p.source_import_id),
        ))
    ctx.session.flush()
    ctx.count("public_records", len(records))


# =============================================================================
# INSIGHTS & APPLICATION
# =============================================================================

def insert_quality_warnings(ctx: IngestContext, warnings: List[QualityWarning]) -> None:
    for w in warnings:
        ctx.session.add(GeneratedInsightDB(
            id=str(uuid4()),
            subject_id=ctx.subject_id,
            file_id=ctx.credit_file.file_id,
            kind=w.kind,
            severity=w.severity.value,
            summary=w.summary,
            entity_ids=list(w.entity_ids) or None,
            generated_at=datetime.utcnow(),
        ))
    ctx.session.flush()
    ctx.count("generated_insights", len(warnings))


def insert_ingest_receipt(
    ctx: IngestContext,
    payload_sha256: str,
    duration_ms: int,
    status: str = "success",
) -> str:
    """Written after all entities so the stored counts are final."""
    receipt_id = str(uuid4())
    ctx.session.add(IngestReceiptDB(
        id=receipt_id,
        subject_id=ctx.subject_id,
        file_id=ctx.credit_file.file_id,
        payload_sha256=payload_sha256,
        entity_counts=dict(ctx.entity_counts),
        import_ids=ctx.credit_file.import_ids,
        ingested_at=datetime.utcnow(),
        duration_ms=duration_ms,
        status=status,
    ))
    ctx.session.flush()
    return receipt_id


def insert_audit_log_entry(
    ctx: IngestContext,
    event_type: str,
    detail: Optional[Dict[str, Any]] = None,
) -> None:
    ctx.session.add(AuditLogDB(
        id=str(uuid4()),
        event_type=event_type,
        entity_type="credit_file",
        entity_id=ctx.credit_file.file_id,
        detail=detail,
        created_at=datetime.utcnow(),
    ))
    ctx.session.flush()
