"""Credit Timeline - API Routers"""
from .ingest import router as ingest_router
from .subjects import router as subjects_router

__all__ = [
    "ingest_router",
    "subjects_router",
]
