"""Revenue Intelligence Engine - Data Models"""
from .db_models import (
    # Enums
    PageType, PageStatus, ChangeType, HypothesisStatus, OutcomeType,
    CorrelationState, JourneyOutcome,
    # ORM
    ClientDB, JourneyPageDB, HypothesisDB, ContentVersionDB,
    CorrelationDB, CorrelationAuditDB, OutcomeDB,
)
from .journey import (
    PaymentEvent, Timeframe, ConversionMetrics, CorrelationValidation,
    JourneyProgress, HypothesisAnalytics, HypothesisAccuracy,
)

__all__ = [
    "PageType", "PageStatus", "ChangeType", "HypothesisStatus", "OutcomeType",
    "CorrelationState", "JourneyOutcome",
    "ClientDB", "JourneyPageDB", "HypothesisDB", "ContentVersionDB",
    "CorrelationDB", "CorrelationAuditDB", "OutcomeDB",
    "PaymentEvent", "Timeframe", "ConversionMetrics", "CorrelationValidation",
    "JourneyProgress", "HypothesisAnalytics", "HypothesisAccuracy",
]
