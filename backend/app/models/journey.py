"""
Revenue Intelligence Engine - Domain Models

Plain dataclasses passed between services and routers. Persistence rows
live in db_models; these are the read-side and boundary shapes.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from hashlib import sha256
from typing import Dict, List, Optional, Any

from ..services.clock import to_naive_utc


# =============================================================================
# PAYMENT PROVIDER BOUNDARY
# =============================================================================

@dataclass(frozen=True)
class PaymentEvent:
    """
    Canonical payment notification, already signature-verified upstream.

    event_id is the idempotency key. amount is in minor units.
    """
    event_id: str
    client_id: int
    amount: int
    currency: str
    status: str
    occurred_at: datetime
    payment_method: str = "unknown"
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        # Stored timestamps are naive UTC; the same instant must fingerprint the same
        object.__setattr__(self, "occurred_at", to_naive_utc(self.occurred_at))

    def fingerprint(self) -> str:
        """SHA256 over the fields that define the event (metadata excluded)."""
        canonical = "|".join([
            self.event_id,
            str(self.client_id),
            str(self.amount),
            self.currency.lower(),
            self.status,
            self.occurred_at.isoformat(),
            self.payment_method,
        ])
        return sha256(canonical.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "client_id": self.client_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "occurred_at": self.occurred_at.isoformat(),
            "payment_method": self.payment_method,
            "metadata": dict(self.metadata),
        }


# =============================================================================
# METRICS
# =============================================================================

@dataclass(frozen=True)
class Timeframe:
    """Inclusive bounds on occurred_at. Either side may be open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        if self.start is not None:
            object.__setattr__(self, "start", to_naive_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", to_naive_utc(self.end))

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


@dataclass(frozen=True)
class ConversionMetrics:
    total_correlations: int
    total_conversions: int
    average_conversion_duration_ms: Optional[float]
    success_rate: float
    by_payment_method: Dict[str, int]
    by_outcome_type: Dict[str, int]

    @classmethod
    def empty(cls) -> "ConversionMetrics":
        return cls(
            total_correlations=0,
            total_conversions=0,
            average_conversion_duration_ms=None,
            success_rate=0.0,
            by_payment_method={},
            by_outcome_type={},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_correlations": self.total_correlations,
            "total_conversions": self.total_conversions,
            "average_conversion_duration_ms": self.average_conversion_duration_ms,
            "success_rate": self.success_rate,
            "by_payment_method": dict(self.by_payment_method),
            "by_outcome_type": dict(self.by_outcome_type),
        }


@dataclass
class CorrelationValidation:
    """Result of cross-checking correlations against recorded outcomes."""
    is_valid: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    checked: int = 0


# =============================================================================
# JOURNEY & LEARNING READ MODELS
# =============================================================================

@dataclass
class JourneyProgress:
    total_pages: int
    completed_pages: int
    active_page_id: Optional[int]
    progress_percentage: int
    current_step: int
    is_complete: bool


@dataclass
class HypothesisAnalytics:
    total_hypotheses: int
    active_hypotheses: int
    completed_hypotheses: int
    cancelled_hypotheses: int
    average_confidence: float
    change_type_distribution: Dict[str, int]


@dataclass
class HypothesisAccuracy:
    """Did the editor's predicted outcome match what actually happened?"""
    hypothesis_id: int
    page_id: int
    statement: str
    predicted_outcome: Optional[str]
    recorded_outcome: Optional[str]
    accuracy: str  # accurate | inaccurate | unknown
