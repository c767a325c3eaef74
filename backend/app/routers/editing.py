"""
Revenue Intelligence Engine - Editing API Router

HTTP face of the Edit Gate. Sessions live in process memory; every write
they trigger (hypotheses, content versions) is committed per request.
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..actor import get_actor_id
from ..config import EDIT_SESSION_IDLE_MINUTES
from ..database import get_db
from ..services.clock import utcnow
from ..services.editing import EditGate, EditSession, session_registry
from ..services.errors import RevenueEngineError
from .pages import VersionResponse, version_response


router = APIRouter(prefix="/editing", tags=["editing"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class OpenSessionRequest(BaseModel):
    page_id: int


class EditSessionResponse(BaseModel):
    session_id: str
    page_id: int
    state: str
    hypothesis_id: Optional[int]
    saves: int
    title: str
    body: str
    saved_title: str
    saved_body: str
    ended: bool


class InteractRequest(BaseModel):
    field: str  # title | body
    value: Optional[str] = None


class HypothesisSubmission(BaseModel):
    statement: str
    change_type: str  # content | title | structure | both
    confidence_level: int
    predicted_outcome: Optional[str] = None


class SaveRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None


class SaveResponse(BaseModel):
    session: EditSessionResponse
    version: VersionResponse


def session_response(session: EditSession) -> EditSessionResponse:
    return EditSessionResponse(**session.to_dict())


def _session(session_id: str) -> EditSession:
    try:
        return session_registry.get(session_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/sessions", response_model=EditSessionResponse, status_code=201)
async def open_session(
    request: OpenSessionRequest,
    actor_id: Optional[str] = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """
    Open an editing session on a page. It starts UNLOCKED when the page has
    an active hypothesis, otherwise LOCKED.

    Sessions idle longer than EDIT_SESSION_IDLE_MINUTES are ended first.
    """
    gate = EditGate(db)
    if gate.end_idle_sessions(session_registry, utcnow() - timedelta(minutes=EDIT_SESSION_IDLE_MINUTES)):
        db.commit()
    try:
        session = gate.open_session(request.page_id, actor_id=actor_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    session_registry.add(session)
    return session_response(session)


@router.get("/sessions/{session_id}", response_model=EditSessionResponse)
async def get_session(session_id: str):
    return session_response(_session(session_id))


@router.post("/sessions/{session_id}/interact", response_model=EditSessionResponse)
async def interact(session_id: str, request: InteractRequest, db: Session = Depends(get_db)):
    """Attempt a field edit. While locked this opens hypothesis capture and drops the value."""
    session = _session(session_id)
    try:
        EditGate(db).interact(session, request.field, request.value)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return session_response(session)


@router.post("/sessions/{session_id}/hypothesis", response_model=EditSessionResponse)
async def submit_hypothesis(
    session_id: str,
    request: HypothesisSubmission,
    actor_id: Optional[str] = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    session = _session(session_id)
    try:
        EditGate(db).submit_hypothesis(
            session,
            statement=request.statement,
            change_type=request.change_type,
            confidence_level=request.confidence_level,
            predicted_outcome=request.predicted_outcome,
            actor_id=actor_id,
        )
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return session_response(session)


@router.post("/sessions/{session_id}/cancel", response_model=EditSessionResponse)
async def cancel_capture(session_id: str, db: Session = Depends(get_db)):
    """Close hypothesis capture without submitting; fields revert to last saved values."""
    session = _session(session_id)
    try:
        EditGate(db).cancel_capture(session)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return session_response(session)


@router.post("/sessions/{session_id}/save", response_model=SaveResponse)
async def save(
    session_id: str,
    request: SaveRequest,
    actor_id: Optional[str] = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    session = _session(session_id)
    try:
        version = EditGate(db).save(session, title=request.title, body=request.body, actor_id=actor_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return SaveResponse(session=session_response(session), version=version_response(version))


@router.delete("/sessions/{session_id}", response_model=EditSessionResponse)
async def end_session(session_id: str, db: Session = Depends(get_db)):
    """End the session. A hypothesis it created but never saved under is cancelled."""
    session = _session(session_id)
    try:
        EditGate(db).end_session(session)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    session_registry.remove(session_id)
    return session_response(session)
