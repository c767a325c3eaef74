"""
Revenue Intelligence Engine - Payments API Router

Receives payment notifications (canonical events or provider webhook
envelopes) after signature verification upstream, and hands them to the
correlation engine. Safe to retry: delivery is idempotent on event id.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.errors import RevenueEngineError
from ..services.revenue import CorrelationEngine, PaymentEventIntake, mask_payment_id
from .correlations import CorrelationResponse, correlation_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/events", response_model=CorrelationResponse)
async def ingest_payment_event(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    """
    Normalize and ingest one payment event.

    Returns the correlation for the event; re-delivery of the same event
    returns the same correlation. A different payload under a known event
    id is rejected with 409 for operator review.
    """
    intake = PaymentEventIntake()
    try:
        event = intake.normalize(payload)
        correlation = CorrelationEngine(db).ingest(event)
    except RevenueEngineError as e:
        logger.info(f"Rejected payment event {mask_payment_id(str(payload.get('event_id') or payload.get('id') or ''))}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return correlation_response(correlation)
