"""
Credit Timeline - Canonical Payload Models

The validated, typed shape of one credit-report file. Every child entity
references the import that produced it through `source_import_id`; every
import carries exactly one source-system tag.
"""
from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class SourceSystem(str, Enum):
    EQUIFAX = "equifax"
    TRANSUNION = "transunion"
    EXPERIAN = "experian"
    OTHER = "other"


class AcquisitionMethod(str, Enum):
    PDF_UPLOAD = "pdf_upload"
    HTML_SCRAPE = "html_scrape"
    API = "api"
    IMAGE = "image"
    OTHER = "other"


class SearchVisibility(str, Enum):
    HARD = "hard"
    SOFT = "soft"
    UNKNOWN = "unknown"


# =============================================================================
# BASE
# =============================================================================

class CanonicalModel(BaseModel):
    """Unknown fields are violations, not silently dropped."""
    model_config = ConfigDict(extra="forbid")


# =============================================================================
# PROVENANCE
# =============================================================================

class ImportBatch(CanonicalModel):
    import_id: str = Field(..., min_length=1)
    imported_at: datetime
    source_system: SourceSystem
    acquisition_method: AcquisitionMethod
    currency_code: Optional[str] = None
    source_wrapper: Optional[str] = None
    mapping_version: Optional[str] = None
    confidence_notes: Optional[str] = None
    extensions: Optional[Dict[str, Any]] = None


class PersonName(CanonicalModel):
    name_id: str = Field(..., min_length=1)
    full_name: Optional[str] = None
    given_name: Optional[str] = None
    middle_name: Optional[str] = None
    family_name: Optional[str] = None
    name_type: Optional[str] = None
    source_import_id: str


class Subject(CanonicalModel):
    subject_id: str = Field(..., min_length=1)
    names: List[PersonName] = Field(default_factory=list)
    extensions: Optional[Dict[str, Any]] = None


# =============================================================================
# IDENTITY & ORGANISATIONS
# =============================================================================

class Organisation(CanonicalModel):
    organisation_id: str = Field(..., min_length=1)
    name: str
    roles: List[str] = Field(default_factory=list)
    industry_type: Optional[str] = None
    source_import_id: Optional[str] = None


class Address(CanonicalModel):
    address_id: str = Field(..., min_length=1)
    line_1: Optional[str] = None
    line_2: Optional[str] = None
    town_city: Optional[str] = None
    postcode: Optional[str] = None
    country_code: Optional[str] = None
    normalized_single_line: Optional[str] = None


class AddressAssociation(CanonicalModel):
    association_id: str = Field(..., min_length=1)
    address_id: str
    role: Optional[str] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    source_import_id: str


# =============================================================================
# TRADELINES
# =============================================================================

class TradelineSnapshot(CanonicalModel):
    snapshot_id: str = Field(..., min_length=1)
    as_of_date: Optional[date] = None
    account_status: Optional[str] = None
    payment_status: Optional[str] = None
    current_balance: Optional[float] = None
    credit_limit: Optional[float] = None
    delinquent_balance: Optional[float] = None
    source_import_id: str


class TradelineMonthlyMetric(CanonicalModel):
    monthly_metric_id: str = Field(..., min_length=1)
    period: str
    metric_type: str
    value_numeric: Optional[float] = None
    value_text: Optional[str] = None
    canonical_status: Optional[str] = None
    raw_status_code: Optional[str] = None
    source_import_id: str


class Tradeline(CanonicalModel):
    tradeline_id: str = Field(..., min_length=1)
    canonical_id: Optional[str] = None
    furnisher_organisation_id: Optional[str] = None
    furnisher_name_raw: Optional[str] = None
    account_type: Optional[str] = None
    account_number_masked: Optional[str] = None
    opened_at: Optional[date] = None
    closed_at: Optional[date] = None
    status_current: Optional[str] = None
    snapshots: List[TradelineSnapshot] = Field(default_factory=list)
    monthly_metrics: List[TradelineMonthlyMetric] = Field(default_factory=list)
    source_import_id: str
    extensions: Optional[Dict[str, Any]] = None


# =============================================================================
# RECORDS
# =============================================================================

class SearchRecord(CanonicalModel):
    search_id: str = Field(..., min_length=1)
    searched_at: datetime
    organisation_id: Optional[str] = None
    organisation_name_raw: Optional[str] = None
    search_type: Optional[str] = None
    visibility: SearchVisibility = SearchVisibility.UNKNOWN
    purpose_text: Optional[str] = None
    source_import_id: str


class CreditScore(CanonicalModel):
    score_id: str = Field(..., min_length=1)
    score_type: Optional[str] = None
    score_name: Optional[str] = None
    score_value: Optional[int] = None
    score_min: Optional[int] = None
    score_max: Optional[int] = None
    calculated_at: Optional[datetime] = None
    source_import_id: str


class PublicRecord(CanonicalModel):
    public_record_id: str = Field(..., min_length=1)
    record_type: str
    court_or_register: Optional[str] = None
    amount: Optional[float] = None
    recorded_at: Optional[date] = None
    satisfied_at: Optional[date] = None
    status: Optional[str] = None
    address_id: Optional[str] = None
    source_import_id: str


# =============================================================================
# CREDIT FILE (the canonical payload)
# =============================================================================

class CreditFile(CanonicalModel):
    """One validated credit-report file for a subject."""
    schema_version: str
    file_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    created_at: datetime
    currency_code: Optional[str] = None
    imports: List[ImportBatch] = Field(..., min_length=1)
    subject: Subject
    organisations: List[Organisation] = Field(default_factory=list)
    addresses: List[Address] = Field(default_factory=list)
    address_associations: List[AddressAssociation] = Field(default_factory=list)
    tradelines: List[Tradeline] = Field(default_factory=list)
    searches: List[SearchRecord] = Field(default_factory=list)
    credit_scores: List[CreditScore] = Field(default_factory=list)
    public_records: List[PublicRecord] = Field(default_factory=list)
    extensions: Optional[Dict[str, Any]] = None

    @property
    def import_ids(self) -> List[str]:
        return [imp.import_id for imp in self.imports]
