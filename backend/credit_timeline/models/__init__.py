"""Credit Timeline - Data Models"""
from .canonical import (
    # Enums
    SourceSystem, AcquisitionMethod, SearchVisibility,
    # Canonical payload
    CreditFile, ImportBatch, Subject, PersonName, Organisation, Address,
    AddressAssociation, Tradeline, TradelineSnapshot, TradelineMonthlyMetric,
    SearchRecord, CreditScore, PublicRecord,
)
from .timeline import (
    # Enums
    Severity, RuleId,
    # Analysis input
    ImportRef, TradelineObservation, SearchObservation, ScoreObservation,
    PublicRecordObservation, AnalysisContext,
    # Analysis output
    Insight, AnalysisEngineResult, sort_insights,
)

__all__ = [
    "SourceSystem", "AcquisitionMethod", "SearchVisibility",
    "CreditFile", "ImportBatch", "Subject", "PersonName", "Organisation", "Address",
    "AddressAssociation", "Tradeline", "TradelineSnapshot", "TradelineMonthlyMetric",
    "SearchRecord", "CreditScore", "PublicRecord",
    "Severity", "RuleId",
    "ImportRef", "TradelineObservation", "SearchObservation", "ScoreObservation",
    "PublicRecordObservation", "AnalysisContext",
    "Insight", "AnalysisEngineResult", "sort_insights",
]
