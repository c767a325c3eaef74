"""
Revenue Intelligence Engine - Correlations API Router

Correlation history, conversion metrics, validation display and manual
overrides. Overrides are additive: the audit trail keeps every prior value.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..actor import require_actor_id
from ..database import get_db
from ..models.db_models import CorrelationAuditDB, CorrelationDB
from ..models.journey import Timeframe
from ..services.clock import to_naive_utc
from ..services.errors import RevenueEngineError
from ..services.revenue import CorrelationEngine


router = APIRouter(prefix="/correlations", tags=["correlations"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class CorrelationResponse(BaseModel):
    id: str
    payment_event_id: str
    client_id: int
    amount: int
    currency: str
    provider_status: str
    payment_method: str
    occurred_at: str
    derived_outcome_type: str
    outcome_type: str
    state: str
    manual_override: bool
    override_reason: Optional[str]
    content_version_id: Optional[int]
    linked_outcome: Optional[str]
    conversion_duration: Optional[int]
    correlation_timestamp: str
    payment_metadata: Dict[str, Any]


class CorrelationList(BaseModel):
    correlations: List[CorrelationResponse]
    total: int


class OverrideRequest(BaseModel):
    new_outcome_type: str  # paid | failed | pending | cancelled
    reason: str


class AuditEntryResponse(BaseModel):
    id: str
    correlation_id: str
    sequence: int
    old_outcome_type: str
    new_outcome_type: str
    old_manual_override: bool
    reason: str
    actor_id: str
    created_at: str


class ConversionMetricsResponse(BaseModel):
    total_correlations: int
    total_conversions: int
    average_conversion_duration_ms: Optional[float]
    success_rate: float
    by_payment_method: Dict[str, int]
    by_outcome_type: Dict[str, int]


class ValidationResponse(BaseModel):
    is_valid: bool
    issues: List[str]
    recommendations: List[str]
    checked: int


def correlation_response(c: CorrelationDB) -> CorrelationResponse:
    return CorrelationResponse(
        id=c.id,
        payment_event_id=c.payment_event_id,
        client_id=c.client_id,
        amount=c.amount,
        currency=c.currency,
        provider_status=c.provider_status,
        payment_method=c.payment_method,
        occurred_at=c.occurred_at.isoformat(),
        derived_outcome_type=c.derived_outcome_type,
        outcome_type=c.outcome_type,
        state=c.state,
        manual_override=bool(c.manual_override),
        override_reason=c.override_reason,
        content_version_id=c.content_version_id,
        linked_outcome=c.linked_outcome,
        conversion_duration=c.conversion_duration,
        correlation_timestamp=c.correlation_timestamp.isoformat(),
        payment_metadata=c.payment_metadata or {},
    )


def audit_response(a: CorrelationAuditDB) -> AuditEntryResponse:
    return AuditEntryResponse(
        id=a.id,
        correlation_id=a.correlation_id,
        sequence=a.sequence,
        old_outcome_type=a.old_outcome_type,
        new_outcome_type=a.new_outcome_type,
        old_manual_override=bool(a.old_manual_override),
        reason=a.reason,
        actor_id=a.actor_id,
        created_at=a.created_at.isoformat(),
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================
#
# Fixed paths (/metrics, /validation) are declared before /{correlation_id}.
#
# =============================================================================

@router.get("", response_model=CorrelationList)
async def list_correlations(
    client_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Correlation history for a client, newest first."""
    correlations = CorrelationEngine(db).list_for_client(client_id, limit=limit)
    return CorrelationList(
        correlations=[correlation_response(c) for c in correlations],
        total=len(correlations),
    )


@router.get("/metrics", response_model=ConversionMetricsResponse)
async def get_metrics(
    client_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    """Conversion metrics for one client or all clients, optionally bounded by occurred_at."""
    timeframe = None
    if start is not None or end is not None:
        timeframe = Timeframe(
            start=to_naive_utc(start) if start else None,
            end=to_naive_utc(end) if end else None,
        )
    metrics = CorrelationEngine(db).metrics_for(client_id, timeframe)
    return ConversionMetricsResponse(**metrics.to_dict())


@router.get("/validation", response_model=ValidationResponse)
async def validate_correlations(client_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Cross-check correlations against recorded outcomes."""
    validation = CorrelationEngine(db).validate(client_id)
    return ValidationResponse(**validation.__dict__)


@router.get("/{correlation_id}", response_model=CorrelationResponse)
async def get_correlation(correlation_id: str, db: Session = Depends(get_db)):
    try:
        correlation = CorrelationEngine(db).get(correlation_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return correlation_response(correlation)


@router.post("/{correlation_id}/override", response_model=CorrelationResponse)
async def override_correlation(
    correlation_id: str,
    request: OverrideRequest,
    actor_id: str = Depends(require_actor_id),
    db: Session = Depends(get_db),
):
    """
    Replace the visible outcome of a correlation. The prior value is kept
    in the audit trail; re-delivery of the payment event never reverts it.
    """
    try:
        correlation = CorrelationEngine(db).override(
            correlation_id,
            new_outcome_type=request.new_outcome_type,
            reason=request.reason,
            actor_id=actor_id,
        )
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    db.commit()
    return correlation_response(correlation)


@router.get("/{correlation_id}/audit", response_model=List[AuditEntryResponse])
async def get_audit_trail(correlation_id: str, db: Session = Depends(get_db)):
    """Override history, oldest first."""
    try:
        entries = CorrelationEngine(db).audit_trail(correlation_id)
    except RevenueEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return [audit_response(a) for a in entries]
