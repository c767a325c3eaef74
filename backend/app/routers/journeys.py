"""
Revenue Intelligence Engine - Journeys API Router

Creates and advances the four-page journey of a client.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import JourneyPageDB
from ..services.editing import JourneyService
from ..services.errors import RevenueEngineError


router = APIRouter(prefix="/journeys", tags=["journeys"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class JourneyPageResponse(BaseModel):
    id: int
    client_id: int
    page_type: str
    page_order: int
    status: str
    title: str
    body: str
    activated_at: Optional[str]
    completed_at: Optional[str]


class JourneyResponse(BaseModel):
    client_id: int
    journey_started_at: Optional[str]
    pages: List[JourneyPageResponse]


class JourneyProgressResponse(BaseModel):
    total_pages: int
    completed_pages: int
    active_page_id: Optional[int]
    progress_percentage: int
    current_step: int
    is_complete: bool


class AdvanceRequest(BaseModel):
    skip: bool = False


class AdvanceResponse(BaseModel):
    active_page: Optional[JourneyPageResponse]
    is_complete: bool


def page_response(page: JourneyPageDB) -> JourneyPageResponse:
    return JourneyPageResponse(
        id=page.id,
        client_id=page.client_id,
        page_type=page.page_type,
        page_order=page.page_order,
        status=page.status,
        title=page.title or "",
        body=page.body or "",
        activated_at=page.activated_at.isoformat() if page.activated_at else None,
        completed_at=page.completed_at.isoformat() if page.completed_at else None,
    )


def _journey_response(service: JourneyService, client_id: int) -> JourneyResponse:
    started = service.journey_start(client_id)
    return JourneyResponse(
        client_id=client_id,
        journey_started_at=started.isoformat() if started else None,
        pages=[page_response(p) for p in service.get_pages(client_id)],
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/{client_id}", response_model=JourneyResponse, status_code=201)
async def create_journey(client_id: int, db: Session = Depends(get_db)):
    """Create the default journey pages for a client (page 1 starts active)."""
    service = JourneyService(db)
    try:
        service.create_journey(client_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return _journey_response(service, client_id)


@router.get("/{client_id}", response_model=JourneyResponse)
async def get_journey(client_id: int, db: Session = Depends(get_db)):
    service = JourneyService(db)
    try:
        return _journey_response(service, client_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/{client_id}/progress", response_model=JourneyProgressResponse)
async def get_progress(client_id: int, db: Session = Depends(get_db)):
    try:
        progress = JourneyService(db).progress(client_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return JourneyProgressResponse(**progress.__dict__)


@router.post("/{client_id}/advance", response_model=AdvanceResponse)
async def advance_journey(
    client_id: int,
    request: Optional[AdvanceRequest] = None,
    db: Session = Depends(get_db),
):
    """Close the active page (completed or skipped) and activate the next one."""
    skip = request.skip if request else False
    try:
        next_page = JourneyService(db).advance(client_id, skip=skip)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return AdvanceResponse(
        active_page=page_response(next_page) if next_page else None,
        is_complete=next_page is None,
    )
