"""
Revenue Intelligence Engine - Pages API Router

Read side of hypothesis-gated editing: hypothesis history and analytics,
content version history, and recording what a hypothesis actually led to.
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import ContentVersionDB, HypothesisDB
from ..services.editing import ContentVersionLedger, HypothesisStore, JourneyService
from ..services.errors import RevenueEngineError


router = APIRouter(tags=["pages"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class HypothesisResponse(BaseModel):
    id: int
    page_id: int
    statement: str
    change_type: str
    confidence_level: int
    predicted_outcome: Optional[str]
    actual_outcome: Optional[str]
    status: str
    created_by: Optional[str]
    created_at: str
    completed_at: Optional[str]
    cancelled_at: Optional[str]
    cancellation_reason: Optional[str]
    superseded_by_id: Optional[int]


class HypothesisList(BaseModel):
    hypotheses: List[HypothesisResponse]
    total: int


class HypothesisAnalyticsResponse(BaseModel):
    total_hypotheses: int
    active_hypotheses: int
    completed_hypotheses: int
    cancelled_hypotheses: int
    average_confidence: float
    change_type_distribution: Dict[str, int]


class HypothesisOutcomeRequest(BaseModel):
    actual_outcome: str


class VersionResponse(BaseModel):
    id: int
    page_id: int
    version_number: int
    title: str
    body: str
    hypothesis_id: Optional[int]
    saved_by: Optional[str]
    saved_at: str


class VersionList(BaseModel):
    versions: List[VersionResponse]
    total: int


def _iso(value):
    return value.isoformat() if value else None


def hypothesis_response(h: HypothesisDB) -> HypothesisResponse:
    return HypothesisResponse(
        id=h.id,
        page_id=h.page_id,
        statement=h.statement,
        change_type=h.change_type,
        confidence_level=h.confidence_level,
        predicted_outcome=h.predicted_outcome,
        actual_outcome=h.actual_outcome,
        status=h.status,
        created_by=h.created_by,
        created_at=h.created_at.isoformat(),
        completed_at=_iso(h.completed_at),
        cancelled_at=_iso(h.cancelled_at),
        cancellation_reason=h.cancellation_reason,
        superseded_by_id=h.superseded_by_id,
    )


def version_response(v: ContentVersionDB) -> VersionResponse:
    return VersionResponse(
        id=v.id,
        page_id=v.page_id,
        version_number=v.version_number,
        title=v.title,
        body=v.body,
        hypothesis_id=v.hypothesis_id,
        saved_by=v.saved_by,
        saved_at=v.saved_at.isoformat(),
    )


def _require_page(db: Session, page_id: int):
    try:
        JourneyService(db).get_page(page_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


# =============================================================================
# HYPOTHESES
# =============================================================================

@router.get("/pages/{page_id}/hypotheses", response_model=HypothesisList)
async def list_hypotheses(page_id: int, db: Session = Depends(get_db)):
    """All hypotheses recorded for a page, newest first."""
    _require_page(db, page_id)
    hypotheses = HypothesisStore(db).list_by_page(page_id)
    return HypothesisList(
        hypotheses=[hypothesis_response(h) for h in hypotheses],
        total=len(hypotheses),
    )


@router.get("/pages/{page_id}/hypotheses/active", response_model=Optional[HypothesisResponse])
async def get_active_hypothesis(page_id: int, db: Session = Depends(get_db)):
    _require_page(db, page_id)
    active = HypothesisStore(db).get_active(page_id)
    return hypothesis_response(active) if active else None


@router.get("/pages/{page_id}/hypotheses/analytics", response_model=HypothesisAnalyticsResponse)
async def get_hypothesis_analytics(page_id: int, db: Session = Depends(get_db)):
    _require_page(db, page_id)
    analytics = HypothesisStore(db).analytics(page_id)
    return HypothesisAnalyticsResponse(**analytics.__dict__)


@router.post("/hypotheses/{hypothesis_id}/outcome", response_model=HypothesisResponse)
async def record_hypothesis_outcome(
    hypothesis_id: int,
    request: HypothesisOutcomeRequest,
    db: Session = Depends(get_db),
):
    """Record what actually happened. Allowed in any status."""
    try:
        hypothesis = HypothesisStore(db).record_outcome(hypothesis_id, request.actual_outcome)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return hypothesis_response(hypothesis)


# =============================================================================
# CONTENT VERSIONS
# =============================================================================

@router.get("/pages/{page_id}/versions", response_model=VersionList)
async def list_versions(page_id: int, db: Session = Depends(get_db)):
    """Content version history, newest first."""
    _require_page(db, page_id)
    history = ContentVersionLedger(db).history(page_id)
    versions = [version_response(v) for v in history]
    return VersionList(versions=versions, total=len(versions))


@router.get("/pages/{page_id}/versions/latest", response_model=Optional[VersionResponse])
async def get_latest_version(page_id: int, db: Session = Depends(get_db)):
    _require_page(db, page_id)
    latest = ContentVersionLedger(db).latest(page_id)
    return version_response(latest) if latest else None
