"""
Credit Timeline - multi-source credit report ingestion and anomaly detection.

Pipeline:
- Raw payload → validation → CreditFile (canonical payload)
- CreditFile → ingestion transaction → persisted timeline rows
- Persisted rows → AnalysisContext → anomaly rules → AnalysisEngineResult
"""
import logging

__version__ = "1.0.0"

# Library default: silent unless the host application configures logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())
