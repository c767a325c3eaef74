"""
Revenue Correlation Services

Payment Event Intake -> Correlation Engine -> Conversion Metrics, with the
Outcome Recorder supplying the human-entered side for validation.
"""

from .payment_intake import PaymentEventIntake, mask_payment_id, parse_occurred_at
from .metrics import compute_conversion_metrics
from .correlation_engine import CorrelationEngine, STATUS_OUTCOME, derive_outcome_type
from .outcome_recorder import OutcomeRecorder

__all__ = [
    'PaymentEventIntake',
    'mask_payment_id',
    'parse_occurred_at',
    'compute_conversion_metrics',
    'CorrelationEngine',
    'STATUS_OUTCOME',
    'derive_outcome_type',
    'OutcomeRecorder',
]
