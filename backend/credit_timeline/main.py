"""
Credit Timeline - FastAPI Application

Main entry point for the Credit Timeline backend.

Architecture:
- Payload → Validation → CreditFile → Ingestion transaction → timeline rows
- Timeline rows → AnalysisContext → Anomaly rules → AnalysisEngineResult
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .errors import PayloadValidationError
from .routers import ingest_router, subjects_router
from .database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Credit Timeline",
    description="""
    Credit Timeline - Multi-source credit report timeline and anomaly detection

    ## Pipeline
    1. **Ingestion**: canonical credit file → validated, deduplicated, one transaction
    2. **Timeline**: tradelines, searches, scores, public records with provenance
    3. **Analysis**: six anomaly rules → insights sorted by severity

    ## Key Principles
    - Ingestion is all-or-nothing and idempotent per payload
    - Every timeline row is traceable to the import that reported it
    - Insights are derived and can be regenerated at any time
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(ingest_router)
app.include_router(subjects_router)


@app.exception_handler(PayloadValidationError)
async def payload_validation_handler(request: Request, exc: PayloadValidationError):
    """Schema and referential failures → 400, one error per violation."""
    logger.info(str(exc))
    return JSONResponse(
        status_code=400,
        content={"detail": {"message": "Payload failed validation", "errors": exc.issues}},
    )


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Credit Timeline",
        "version": __version__,
        "description": "Credit report timeline and anomaly detection",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m credit_timeline.main
if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
