"""
Revenue Intelligence Engine - Outcomes API Router

Handles the human-entered final outcome of a client journey, and the
read-only hypothesis accuracy view built on it.

Note: Recording an outcome never rewrites correlations or hypotheses.
A 'paid' outcome with no matching payment is allowed and shows up in
correlation validation as an unverified manual entry.
"""
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..actor import get_actor_id
from ..database import get_db
from ..models.db_models import OutcomeDB
from ..services.errors import RevenueEngineError
from ..services.revenue import OutcomeRecorder


router = APIRouter(prefix="/outcomes", tags=["outcomes"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class OutcomeRequest(BaseModel):
    """Request model for recording a journey outcome."""
    outcome: str  # paid, responded, ghosted, pending, negotiating, declined
    notes: Optional[str] = None
    revenue_amount: Optional[Decimal] = None


class OutcomeResponse(BaseModel):
    """Response model for a journey outcome."""
    id: int
    client_id: int
    journey_outcome: str
    notes: Optional[str]
    revenue_amount: Optional[float]
    recorded_by: Optional[str]
    recorded_at: str


class HypothesisAccuracyResponse(BaseModel):
    hypothesis_id: int
    page_id: int
    statement: str
    predicted_outcome: Optional[str]
    recorded_outcome: Optional[str]
    accuracy: str


def outcome_response(o: OutcomeDB) -> OutcomeResponse:
    return OutcomeResponse(
        id=o.id,
        client_id=o.client_id,
        journey_outcome=o.journey_outcome,
        notes=o.notes,
        revenue_amount=float(o.revenue_amount) if o.revenue_amount is not None else None,
        recorded_by=o.recorded_by,
        recorded_at=o.recorded_at.isoformat(),
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/types", response_model=List[str])
async def list_outcome_types():
    return OutcomeRecorder.outcome_types()


@router.put("/{client_id}", response_model=OutcomeResponse)
async def record_outcome(
    client_id: int,
    request: OutcomeRequest,
    actor_id: Optional[str] = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Replace the client's current outcome."""
    try:
        outcome = OutcomeRecorder(db).record_outcome(
            client_id,
            request.outcome,
            notes=request.notes,
            revenue_amount=request.revenue_amount,
            recorded_by=actor_id,
        )
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return outcome_response(outcome)


@router.get("/{client_id}", response_model=Optional[OutcomeResponse])
async def get_outcome(client_id: int, db: Session = Depends(get_db)):
    outcome = OutcomeRecorder(db).get_outcome(client_id)
    return outcome_response(outcome) if outcome else None


@router.get("/{client_id}/hypothesis-accuracy", response_model=List[HypothesisAccuracyResponse])
async def get_hypothesis_accuracy(client_id: int, db: Session = Depends(get_db)):
    """Did each hypothesis' predicted outcome match what was recorded?"""
    try:
        results = OutcomeRecorder(db).hypothesis_accuracy(client_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return [HypothesisAccuracyResponse(**r.__dict__) for r in results]
