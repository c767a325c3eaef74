"""
Outcome Recorder

Persists the single current human-entered outcome of a client journey and
offers the read-only "hypothesis accuracy" cross reference.

Recording an outcome never touches correlations or hypotheses.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import ClientDB, HypothesisDB, JourneyOutcome, JourneyPageDB, OutcomeDB
from ...models.journey import HypothesisAccuracy
from ..clock import utcnow
from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ACCURATE = "accurate"
INACCURATE = "inaccurate"
UNKNOWN = "unknown"


def parse_journey_outcome(value) -> JourneyOutcome:
    try:
        return JourneyOutcome(value)
    except ValueError:
        valid = [o.value for o in JourneyOutcome]
        raise ValidationError(f"Invalid outcome '{value}'. Must be one of: {valid}", field="outcome")


def parse_revenue(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("revenue_amount must be a number", field="revenue_amount")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"revenue_amount must be a number, got {value!r}", field="revenue_amount")
    if not amount.is_finite():
        raise ValidationError("revenue_amount must be finite", field="revenue_amount")
    return amount


def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


class OutcomeRecorder:
    """Current outcome per client."""

    def __init__(self, db: Session):
        self.db = db

    def record_outcome(
        self,
        client_id: int,
        outcome,
        notes: Optional[str] = None,
        revenue_amount=None,
        recorded_by: Optional[str] = None,
    ) -> OutcomeDB:
        """
        Replace the client's current outcome.

        Raises:
            ValidationError: unknown outcome, or paid with revenue_amount <= 0
            NotFoundError: unknown client
        """
        journey_outcome = parse_journey_outcome(outcome)
        revenue = parse_revenue(revenue_amount)
        if journey_outcome == JourneyOutcome.PAID and revenue is not None and revenue <= 0:
            raise ValidationError("A paid outcome needs a positive revenue_amount", field="revenue_amount")

        if self.db.get(ClientDB, client_id) is None:
            raise NotFoundError(f"Client not found: {client_id}")

        record = self.get_outcome(client_id)
        if record is None:
            record = OutcomeDB(client_id=client_id)
            self.db.add(record)

        record.journey_outcome = journey_outcome.value
        record.notes = notes
        record.revenue_amount = revenue
        record.recorded_by = recorded_by
        record.recorded_at = utcnow()
        self.db.flush()

        logger.info(f"Recorded outcome '{journey_outcome.value}' for client {client_id}")
        return record

    def get_outcome(self, client_id: int) -> Optional[OutcomeDB]:
        return self.db.query(OutcomeDB).filter(OutcomeDB.client_id == client_id).first()

    def hypothesis_accuracy(self, client_id: int) -> List[HypothesisAccuracy]:
        """Compare each hypothesis' predicted outcome with the client's recorded outcome."""
        if self.db.get(ClientDB, client_id) is None:
            raise NotFoundError(f"Client not found: {client_id}")

        outcome = self.get_outcome(client_id)
        recorded = outcome.journey_outcome if outcome else None

        hypotheses = (
            self.db.query(HypothesisDB)
            .join(JourneyPageDB, JourneyPageDB.id == HypothesisDB.page_id)
            .filter(JourneyPageDB.client_id == client_id)
            .order_by(HypothesisDB.created_at.asc(), HypothesisDB.id.asc())
            .all()
        )

        results = []
        for hypothesis in hypotheses:
            predicted = _normalize(hypothesis.predicted_outcome)
            if not predicted or recorded is None:
                accuracy = UNKNOWN
            elif predicted == recorded:
                accuracy = ACCURATE
            else:
                accuracy = INACCURATE

            results.append(HypothesisAccuracy(
                hypothesis_id=hypothesis.id,
                page_id=hypothesis.page_id,
                statement=hypothesis.statement,
                predicted_outcome=hypothesis.predicted_outcome,
                recorded_outcome=recorded,
                accuracy=accuracy,
            ))
        return results

    @staticmethod
    def outcome_types() -> List[str]:
        return [o.value for o in JourneyOutcome]
