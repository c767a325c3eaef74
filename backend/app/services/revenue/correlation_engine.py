"""
Correlation Engine

Links payment events to client journeys and keeps that linkage auditable
and correctable.

Correlation lifecycle:
    INGESTED -> OVERRIDDEN   (one-way; there is no deleted state)

INVARIANTS:
- One correlation per payment event (unique payment_event_id)
- Re-ingesting an identical event returns the stored row, overridden or not
- Re-ingesting a different payload under the same event_id is a conflict;
  the stored row is left untouched
- Every override appends an audit row in the same flush that rewrites the
  visible fields; derived_outcome_type keeps what the engine computed
"""
import logging
from typing import Dict, List, Optional
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import CORRELATION_HISTORY_LIMIT, SUSPICIOUS_CONVERSION_HOURS
from ...models.db_models import (
    ClientDB,
    ContentVersionDB,
    CorrelationAuditDB,
    CorrelationDB,
    CorrelationState,
    JourneyOutcome,
    JourneyPageDB,
    OutcomeDB,
    OutcomeType,
)
from ...models.journey import ConversionMetrics, CorrelationValidation, PaymentEvent, Timeframe
from ..clock import utcnow
from ..errors import ConflictError, NotFoundError, ValidationError
from .metrics import compute_conversion_metrics
from .payment_intake import mask_payment_id

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS MAPPING
# =============================================================================

STATUS_OUTCOME = {
    "succeeded": OutcomeType.PAID,
    "requires_action": OutcomeType.PENDING,
    "processing": OutcomeType.PENDING,
    "failed": OutcomeType.FAILED,
    "voided": OutcomeType.CANCELLED,
    "refunded": OutcomeType.CANCELLED,
}


def derive_outcome_type(status: str) -> OutcomeType:
    try:
        return STATUS_OUTCOME[status]
    except KeyError:
        raise ValidationError(f"No outcome mapping for payment status '{status}'", field="status")


def parse_outcome_type(value) -> OutcomeType:
    try:
        return OutcomeType(value)
    except ValueError:
        valid = [o.value for o in OutcomeType]
        raise ValidationError(f"Invalid outcome_type '{value}'. Must be one of: {valid}", field="outcome_type")


class CorrelationEngine:
    """Ingest, override and measure payment correlations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # INGEST
    # =========================================================================

    def ingest(self, event: PaymentEvent) -> CorrelationDB:
        """
        Create the correlation for a payment event, or return the existing one.

        Raises:
            ConflictError: event_id already stored with a different payload
            NotFoundError: unknown client
            ValidationError: status with no outcome mapping
        """
        fingerprint = event.fingerprint()

        existing = self._by_event_id(event.event_id)
        if existing is not None:
            return self._check_duplicate(existing, event, fingerprint)

        if self.db.get(ClientDB, event.client_id) is None:
            raise NotFoundError(f"Client not found: {event.client_id}")

        outcome = derive_outcome_type(event.status)
        duration = self._conversion_duration(event)

        correlation = CorrelationDB(
            id=str(uuid4()),
            payment_event_id=event.event_id,
            client_id=event.client_id,
            amount=event.amount,
            currency=event.currency,
            provider_status=event.status,
            payment_method=event.payment_method,
            occurred_at=event.occurred_at,
            payload_fingerprint=fingerprint,
            payment_metadata=dict(event.metadata),
            derived_outcome_type=outcome.value,
            outcome_type=outcome.value,
            state=CorrelationState.INGESTED.value,
            manual_override=False,
            content_version_id=self._content_version_at(event),
            linked_outcome=self._outcome_at(event),
            conversion_duration=duration,
            correlation_timestamp=utcnow(),
        )

        try:
            with self.db.begin_nested():
                self.db.add(correlation)
                self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same event
            existing = self._by_event_id(event.event_id)
            if existing is None:
                raise
            return self._check_duplicate(existing, event, fingerprint)

        logger.info(
            f"Ingested payment {mask_payment_id(event.event_id)} for client {event.client_id}: "
            f"{event.status} -> {outcome.value}"
        )
        return correlation

    def _by_event_id(self, event_id: str) -> Optional[CorrelationDB]:
        return (
            self.db.query(CorrelationDB)
            .filter(CorrelationDB.payment_event_id == event_id)
            .first()
        )

    def _check_duplicate(self, existing: CorrelationDB, event: PaymentEvent, fingerprint: str) -> CorrelationDB:
        if existing.payload_fingerprint == fingerprint:
            logger.info(f"Duplicate delivery of payment {mask_payment_id(event.event_id)}; returning correlation {existing.id}")
            return existing

        logger.warning(
            f"Payment {mask_payment_id(event.event_id)} re-delivered with a different payload; "
            f"correlation {existing.id} left untouched for operator review"
        )
        raise ConflictError(
            f"Payment event {event.event_id} was already ingested with a different payload",
            field="event_id",
        )

    def _conversion_duration(self, event: PaymentEvent) -> Optional[int]:
        client = self.db.get(ClientDB, event.client_id)
        start = client.journey_started_at if client else None
        if start is None:
            logger.info(f"No journey start for client {event.client_id}; conversion duration left empty")
            return None

        delta_ms = int((event.occurred_at - start).total_seconds() * 1000)
        if delta_ms < 0:
            logger.info(
                f"Payment {mask_payment_id(event.event_id)} predates the journey start of client "
                f"{event.client_id}; conversion duration left empty"
            )
            return None
        return delta_ms

    def _content_version_at(self, event: PaymentEvent) -> Optional[int]:
        """Latest content version on the client's journey saved at or before the payment."""
        row = (
            self.db.query(ContentVersionDB.id)
            .join(JourneyPageDB, JourneyPageDB.id == ContentVersionDB.page_id)
            .filter(
                JourneyPageDB.client_id == event.client_id,
                ContentVersionDB.saved_at <= event.occurred_at,
            )
            .order_by(ContentVersionDB.saved_at.desc(), ContentVersionDB.id.desc())
            .first()
        )
        return row[0] if row else None

    def _outcome_at(self, event: PaymentEvent) -> Optional[str]:
        outcome = (
            self.db.query(OutcomeDB)
            .filter(
                OutcomeDB.client_id == event.client_id,
                OutcomeDB.recorded_at <= event.occurred_at,
            )
            .first()
        )
        return outcome.journey_outcome if outcome else None

    # =========================================================================
    # OVERRIDE
    # =========================================================================

    def override(self, correlation_id: str, new_outcome_type, reason: str, actor_id: str) -> CorrelationDB:
        """
        Replace the visible classification of a correlation.

        The audit row records the prior value and is written in the same
        flush as the change, so neither can exist without the other.
        """
        new_outcome = parse_outcome_type(new_outcome_type)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("An override reason is required", field="reason")
        actor_id = (actor_id or "").strip()
        if not actor_id:
            raise ValidationError("An acting user is required for overrides", field="actor_id")

        correlation = (
            self.db.query(CorrelationDB)
            .filter(CorrelationDB.id == correlation_id)
            .with_for_update()
            .first()
        )
        if correlation is None:
            raise NotFoundError(f"Correlation not found: {correlation_id}")

        old_outcome = correlation.outcome_type
        last_sequence = (
            self.db.query(func.max(CorrelationAuditDB.sequence))
            .filter(CorrelationAuditDB.correlation_id == correlation.id)
            .scalar()
        ) or 0
        audit = CorrelationAuditDB(
            id=str(uuid4()),
            correlation_id=correlation.id,
            sequence=last_sequence + 1,
            old_outcome_type=old_outcome,
            new_outcome_type=new_outcome.value,
            old_manual_override=bool(correlation.manual_override),
            reason=reason,
            actor_id=actor_id,
            created_at=utcnow(),
        )
        self.db.add(audit)

        correlation.outcome_type = new_outcome.value
        correlation.manual_override = True
        correlation.override_reason = reason
        correlation.state = CorrelationState.OVERRIDDEN.value
        self.db.flush()

        logger.info(
            f"Correlation {correlation.id} overridden by {actor_id}: {old_outcome} -> {new_outcome.value}"
        )
        return correlation

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, correlation_id: str) -> CorrelationDB:
        correlation = self.db.get(CorrelationDB, correlation_id)
        if correlation is None:
            raise NotFoundError(f"Correlation not found: {correlation_id}")
        return correlation

    def audit_trail(self, correlation_id: str) -> List[CorrelationAuditDB]:
        """Override history, oldest first."""
        self.get(correlation_id)
        return (
            self.db.query(CorrelationAuditDB)
            .filter(CorrelationAuditDB.correlation_id == correlation_id)
            .order_by(CorrelationAuditDB.sequence.asc())
            .all()
        )

    def list_for_client(self, client_id: int, limit: Optional[int] = None) -> List[CorrelationDB]:
        """Most recent correlations for a client, newest first."""
        limit = limit or CORRELATION_HISTORY_LIMIT
        return (
            self.db.query(CorrelationDB)
            .filter(CorrelationDB.client_id == client_id)
            .order_by(CorrelationDB.occurred_at.desc(), CorrelationDB.correlation_timestamp.desc())
            .limit(limit)
            .all()
        )

    def _in_range(self, client_id: Optional[int], timeframe: Optional[Timeframe]):
        query = self.db.query(CorrelationDB)
        if client_id is not None:
            query = query.filter(CorrelationDB.client_id == client_id)
        if timeframe is not None:
            if timeframe.start is not None:
                query = query.filter(CorrelationDB.occurred_at >= timeframe.start)
            if timeframe.end is not None:
                query = query.filter(CorrelationDB.occurred_at <= timeframe.end)
        return query.order_by(CorrelationDB.occurred_at.asc(), CorrelationDB.id.asc())

    def metrics_for(self, client_id: Optional[int] = None, timeframe: Optional[Timeframe] = None) -> ConversionMetrics:
        """Conversion metrics over correlations in range. Read-only."""
        return compute_conversion_metrics(self._in_range(client_id, timeframe).all())

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, client_id: Optional[int] = None) -> CorrelationValidation:
        """
        Cross-check correlations against recorded outcomes.

        A recorded 'paid' outcome without a paid correlation is reported as an
        unverified manual entry; it is not an error to have one.
        """
        correlations = self._in_range(client_id, None).all()

        outcome_query = self.db.query(OutcomeDB)
        if client_id is not None:
            outcome_query = outcome_query.filter(OutcomeDB.client_id == client_id)
        outcomes: Dict[int, OutcomeDB] = {o.client_id: o for o in outcome_query.all()}

        threshold_ms = SUSPICIOUS_CONVERSION_HOURS * 3600 * 1000
        paid_value = OutcomeType.PAID.value
        issues = []
        recommendations = []

        def recommend(text: str):
            if text not in recommendations:
                recommendations.append(text)

        paid_clients = set()
        for correlation in correlations:
            if correlation.outcome_type != paid_value:
                continue
            paid_clients.add(correlation.client_id)

            outcome = outcomes.get(correlation.client_id)
            if outcome is not None and outcome.journey_outcome != JourneyOutcome.PAID.value:
                issues.append(
                    f"Correlation {correlation.id}: marked paid but client {correlation.client_id} "
                    f"outcome is '{outcome.journey_outcome}'"
                )
                recommend("Update the client outcome or override the correlation")

            if correlation.conversion_duration is None:
                issues.append(f"Correlation {correlation.id}: paid with no conversion duration")
                recommend("Ensure journeys are started before payment links are sent")
            elif correlation.conversion_duration > threshold_ms:
                issues.append(
                    f"Correlation {correlation.id}: conversion duration over "
                    f"{SUSPICIOUS_CONVERSION_HOURS} hours seems unrealistic"
                )
                recommend("Review journey start times for long-running conversions")

        for outcome in outcomes.values():
            if outcome.journey_outcome == JourneyOutcome.PAID.value and outcome.client_id not in paid_clients:
                issues.append(
                    f"Client {outcome.client_id}: outcome recorded as paid with no matching payment "
                    f"(unverified manual entry)"
                )
                recommend("Confirm manual paid outcomes against the payment provider")

        if issues:
            recommend("Review payment webhook metadata collection")

        return CorrelationValidation(
            is_valid=not issues,
            issues=issues,
            recommendations=recommendations,
            checked=len(correlations),
        )
