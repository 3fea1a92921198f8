"""
Credit Timeline - Ingest Context

Transaction-scoped state threaded explicitly through every inserter.
Created at the start of one ingestion call and discarded at its end.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Union

from sqlalchemy.orm import Session

from ...models.canonical import CreditFile


@dataclass
class IngestContext:
    session: Session
    credit_file: CreditFile
    subject_id: str
    logger: Union[logging.Logger, logging.LoggerAdapter]
    # Filled in as import batches are inserted; children inherit provenance from it
    source_system_by_import_id: Dict[str, str] = field(default_factory=dict)
    # Reporting only - never consulted for control flow
    entity_counts: Dict[str, int] = field(default_factory=dict)

    def register_import(self, import_id: str, source_system: str) -> None:
        self.source_system_by_import_id[import_id] = source_system

    def source_system_for(self, import_id: str) -> str:
        """Provenance for a child entity. Raises KeyError for an unregistered import."""
        try:
            return self.source_system_by_import_id[import_id]
        except KeyError:
            raise KeyError(f"import {import_id} has not been registered in this ingestion") from None

    def count(self, entity_type: str, inserted: int) -> None:
        if inserted:
            self.entity_counts[entity_type] = self.entity_counts.get(entity_type, 0) + inserted
