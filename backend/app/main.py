"""
Revenue Intelligence Engine - FastAPI Application

Main entry point for the Revenue Intelligence Engine backend.

Architecture:
- Edit Gate → Hypothesis Store (no content mutation without an active hypothesis)
- Edit Gate → Content Version Ledger (every save is an immutable version)
- Payment Event Intake → Correlation Engine (idempotent on event id)
- Outcome Recorder → Correlation validation / hypothesis accuracy
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS
from .database import init_db
from .logging_setup import setup_logging
from .routers import (
    journeys_router,
    pages_router,
    editing_router,
    payments_router,
    correlations_router,
    outcomes_router,
)

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and initialize database on startup."""
    setup_logging()
    init_db()
    logger.info(f"Revenue Intelligence Engine {VERSION} started")
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Revenue Intelligence Engine",
    description="""
    Revenue Intelligence Engine - Hypothesis-Gated Editing & Payment Correlation

    Editors may only change journey page content after recording a falsifiable
    hypothesis; payment events are correlated with journeys so hypotheses can
    be judged against revenue.

    ## Flow
    1. **Edit Gate**: LOCKED → CAPTURING → UNLOCKED per editing session
    2. **Hypothesis Store**: one active hypothesis per page
    3. **Content Version Ledger**: append-only versions bound to a hypothesis
    4. **Correlation Engine**: payment events → correlations, manual overrides, metrics
    5. **Outcome Recorder**: human-entered journey outcome, hypothesis accuracy

    ## Key Principles
    - Supersede-then-create of hypotheses is one atomic write
    - Content versions are never updated in place
    - Payment ingestion is idempotent on event id
    - Overrides are additive; the original classification stays queryable
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(journeys_router)
app.include_router(pages_router)
app.include_router(editing_router)
app.include_router(payments_router)
app.include_router(correlations_router)
app.include_router(outcomes_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Revenue Intelligence Engine",
        "version": VERSION,
        "description": "Hypothesis-gated editing and payment-outcome correlation",
        "docs": "/docs",
        "components": {
            "edit_gate": "Blocks content mutation until a hypothesis is recorded",
            "hypothesis_store": "One active hypothesis per page",
            "content_ledger": "Append-only content versions",
            "correlation_engine": "Payment events linked to journeys, with overrides",
            "outcome_recorder": "Final journey outcome per client",
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
