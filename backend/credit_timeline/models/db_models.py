"""
Credit Timeline - SQLAlchemy ORM Models
Persistent storage for the subject timeline and its provenance.

Every row that originates from a payload child entity carries
`source_import_id` and `source_system`, so any value on the timeline can be
traced back to the import (and credit reference agency) that reported it.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Date, Text, JSON, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# PROVENANCE
# =============================================================================

class SubjectDB(Base):
    """The person whose credit history the timeline describes."""
    __tablename__ = "subjects"

    id = Column(String(64), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    extensions = Column(JSON, nullable=True)

    credit_files = relationship("CreditFileDB", back_populates="subject")


class CreditFileDB(Base):
    """One ingested payload."""
    __tablename__ = "credit_files"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    schema_version = Column(String(20), nullable=False)
    currency_code = Column(String(3), default="GBP")
    created_at = Column(DateTime, nullable=False)
    extensions = Column(JSON, nullable=True)

    subject = relationship("SubjectDB", back_populates="credit_files")
    imports = relationship("ImportBatchDB", back_populates="credit_file")


class ImportBatchDB(Base):
    """One source-system block within a credit file."""
    __tablename__ = "import_batches"

    id = Column(String(64), primary_key=True)
    file_id = Column(String(64), ForeignKey("credit_files.id"), nullable=False, index=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    imported_at = Column(DateTime, nullable=False)
    source_system = Column(String(20), nullable=False)
    acquisition_method = Column(String(20), nullable=False)
    currency_code = Column(String(3), nullable=True)
    source_wrapper = Column(String(100), nullable=True)
    mapping_version = Column(String(50), nullable=True)
    confidence_notes = Column(Text, nullable=True)
    extensions = Column(JSON, nullable=True)

    credit_file = relationship("CreditFileDB", back_populates="imports")


# =============================================================================
# IDENTITY
# =============================================================================

class PersonNameDB(Base):
    __tablename__ = "person_names"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    given_name = Column(String(100), nullable=True)
    middle_name = Column(String(100), nullable=True)
    family_name = Column(String(100), nullable=True)
    name_type = Column(String(20), nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)


class OrganisationDB(Base):
    __tablename__ = "organisations"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    roles = Column(JSON, nullable=True)
    industry_type = Column(String(50), nullable=True)
    # Organisations may be shared across imports, so provenance is optional
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=True)
    source_system = Column(String(20), nullable=True)


class AddressDB(Base):
    __tablename__ = "addresses"

    id = Column(String(64), primary_key=True)
    line_1 = Column(String(255), nullable=True)
    line_2 = Column(String(255), nullable=True)
    town_city = Column(String(100), nullable=True)
    postcode = Column(String(20), nullable=True)
    country_code = Column(String(2), nullable=True)
    normalized_single_line = Column(String(500), nullable=True)


class AddressAssociationDB(Base):
    """Links a subject to an address, as reported by one import."""
    __tablename__ = "address_associations"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    address_id = Column(String(64), ForeignKey("addresses.id"), nullable=False)
    role = Column(String(20), nullable=True)
    valid_from = Column(Date, nullable=True)
    valid_to = Column(Date, nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)


# =============================================================================
# TRADELINES
# =============================================================================

class TradelineDB(Base):
    """One credit account as reported by one import."""
    __tablename__ = "tradelines"

    id = Column(String(64), primary_key=True)
    # Stable cross-import / cross-source identity when the extractor provides one
    canonical_id = Column(String(64), nullable=True, index=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    furnisher_organisation_id = Column(String(64), ForeignKey("organisations.id"), nullable=True)
    furnisher_name_raw = Column(String(255), nullable=True)
    account_type = Column(String(50), nullable=True)
    account_number_masked = Column(String(50), nullable=True)
    opened_at = Column(Date, nullable=True)
    closed_at = Column(Date, nullable=True)
    status_current = Column(String(50), nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False, index=True)
    source_system = Column(String(20), nullable=False)
    extensions = Column(JSON, nullable=True)

    snapshots = relationship("TradelineSnapshotDB", back_populates="tradeline")
    furnisher = relationship("OrganisationDB")


class TradelineSnapshotDB(Base):
    __tablename__ = "tradeline_snapshots"

    id = Column(String(64), primary_key=True)
    tradeline_id = Column(String(64), ForeignKey("tradelines.id"), nullable=False, index=True)
    as_of_date = Column(Date, nullable=True)
    account_status = Column(String(50), nullable=True)
    payment_status = Column(String(50), nullable=True)
    current_balance = Column(Float, nullable=True)
    credit_limit = Column(Float, nullable=True)
    delinquent_balance = Column(Float, nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)

    tradeline = relationship("TradelineDB", back_populates="snapshots")


class TradelineMonthlyMetricDB(Base):
    __tablename__ = "tradeline_monthly_metrics"
    __table_args__ = (
        UniqueConstraint(
            "tradeline_id", "period", "metric_type", "source_import_id", "metric_value_key",
            name="uq_monthly_metric_key",
        ),
    )

    id = Column(String(64), primary_key=True)
    tradeline_id = Column(String(64), ForeignKey("tradelines.id"), nullable=False, index=True)
    period = Column(String(7), nullable=False)  # YYYY-MM
    metric_type = Column(String(30), nullable=False)
    value_numeric = Column(Float, nullable=True)
    value_text = Column(String(100), nullable=True)
    canonical_status = Column(String(50), nullable=True)
    raw_status_code = Column(String(20), nullable=True)
    metric_value_key = Column(String(150), nullable=False)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)


# =============================================================================
# RECORDS
# =============================================================================

class SearchRecordDB(Base):
    __tablename__ = "search_records"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    searched_at = Column(DateTime, nullable=False)
    organisation_id = Column(String(64), ForeignKey("organisations.id"), nullable=True)
    organisation_name_raw = Column(String(255), nullable=True)
    search_type = Column(String(50), nullable=True)
    visibility = Column(String(10), nullable=False, default="unknown")
    purpose_text = Column(Text, nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)


class CreditScoreDB(Base):
    __tablename__ = "credit_scores"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    score_type = Column(String(30), nullable=True)
    score_name = Column(String(100), nullable=True)
    score_value = Column(Integer, nullable=True)
    score_min = Column(Integer, nullable=True)
    score_max = Column(Integer, nullable=True)
    calculated_at = Column(DateTime, nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)


class PublicRecordDB(Base):
    __tablename__ = "public_records"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    record_type = Column(String(30), nullable=False)
    court_or_register = Column(String(255), nullable=True)
    amount = Column(Float, nullable=True)
    recorded_at = Column(Date, nullable=True)
    satisfied_at = Column(Date, nullable=True)
    status = Column(String(20), nullable=True)
    address_id = Column(String(64), ForeignKey("addresses.id"), nullable=True)
    source_import_id = Column(String(64), ForeignKey("import_batches.id"), nullable=False)
    source_system = Column(String(20), nullable=False)


# =============================================================================
# INSIGHTS & APPLICATION
# =============================================================================

class GeneratedInsightDB(Base):
    """Quality warnings recorded at ingest time."""
    __tablename__ = "generated_insights"

    id = Column(String(36), primary_key=True)  # UUID
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    file_id = Column(String(64), ForeignKey("credit_files.id"), nullable=True)
    kind = Column(String(50), nullable=False)
    severity = Column(String(10), nullable=False)
    summary = Column(Text, nullable=False)
    entity_ids = Column(JSON, nullable=True)
    generated_at = Column(DateTime, default=datetime.utcnow)


class IngestReceiptDB(Base):
    """
    Written last in every successful ingestion transaction.

    The (subject_id, payload_sha256) pair is the dedup key.
    """
    __tablename__ = "ingest_receipts"
    __table_args__ = (
        UniqueConstraint("subject_id", "payload_sha256", name="uq_receipt_subject_payload"),
        Index("ix_receipt_payload", "payload_sha256"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False)
    file_id = Column(String(64), ForeignKey("credit_files.id"), nullable=False)
    payload_sha256 = Column(String(64), nullable=False)
    entity_counts = Column(JSON, nullable=False, default=dict)
    import_ids = Column(JSON, nullable=False, default=list)
    ingested_at = Column(DateTime, default=datetime.utcnow)
    duration_ms = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="success")


class AuditLogDB(Base):
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True)  # UUID
    event_type = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False)
    detail = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AppSettingDB(Base):
    """Key/value settings. Keys under `anomaly.` override anomaly rule parameters."""
    __tablename__ = "app_settings"

    key = Column(String(100), primary_key=True)
    value = Column(String(255), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
