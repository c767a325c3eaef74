"""
Hypothesis Store

Owns the lifecycle of hypotheses attached to editable journey pages.

Lifecycle:
    active -> completed   (superseded by a newer hypothesis, or outcome recorded)
    active -> cancelled   (capture abandoned, or swept as unused)

INVARIANTS:
- At most one hypothesis per page is active (also enforced by a partial
  unique index)
- Supersede-then-create is one unit inside a savepoint; it is never
  observable half-done
- Outcomes may be recorded in any status (learning after the fact)
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import exists, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import (
    ChangeType,
    ContentVersionDB,
    HypothesisDB,
    HypothesisStatus,
    JourneyPageDB,
)
from ...models.journey import HypothesisAnalytics
from ..clock import utcnow
from ..errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 1
MAX_CONFIDENCE = 10


def parse_change_type(value) -> ChangeType:
    try:
        return ChangeType(value)
    except ValueError:
        valid = [c.value for c in ChangeType]
        raise ValidationError(f"Invalid change_type '{value}'. Must be one of: {valid}", field="change_type")


def validate_confidence(value) -> int:
    # bool is an int subclass; True must not read as confidence 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("confidence_level must be an integer", field="confidence_level")
    if value < MIN_CONFIDENCE or value > MAX_CONFIDENCE:
        raise ValidationError(
            f"confidence_level must be between {MIN_CONFIDENCE} and {MAX_CONFIDENCE}, got {value}",
            field="confidence_level",
        )
    return value


class HypothesisStore:
    """Hypothesis persistence and lifecycle transitions."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_hypothesis(
        self,
        page_id: int,
        statement: str,
        change_type,
        confidence_level: int,
        predicted_outcome: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> HypothesisDB:
        """
        Create the page's new active hypothesis, completing any prior one.

        Raises:
            ValidationError: blank statement, confidence outside 1-10, unknown change_type
            NotFoundError: unknown page
            ConflictError: another hypothesis became active concurrently
        """
        statement = (statement or "").strip()
        if not statement:
            raise ValidationError("Hypothesis statement is required", field="statement")
        change = parse_change_type(change_type)
        confidence = validate_confidence(confidence_level)
        predicted = (predicted_outcome or "").strip() or None

        page = (
            self.db.query(JourneyPageDB)
            .filter(JourneyPageDB.id == page_id)
            .with_for_update()
            .first()
        )
        if page is None:
            raise NotFoundError(f"Journey page not found: {page_id}")

        now = utcnow()
        try:
            with self.db.begin_nested():
                prior = self._lock_active(page_id)
                for old in prior:
                    old.status = HypothesisStatus.COMPLETED.value
                    old.completed_at = now
                # Old rows must leave 'active' before the new row is inserted
                self.db.flush()

                hypothesis = HypothesisDB(
                    page_id=page_id,
                    statement=statement,
                    change_type=change.value,
                    confidence_level=confidence,
                    predicted_outcome=predicted,
                    status=HypothesisStatus.ACTIVE.value,
                    created_by=created_by,
                    created_at=now,
                )
                self.db.add(hypothesis)
                self.db.flush()

                for old in prior:
                    old.superseded_by_id = hypothesis.id
                self.db.flush()
        except IntegrityError:
            logger.warning(f"Concurrent hypothesis creation on page {page_id}")
            raise ConflictError(
                f"Another hypothesis became active on page {page_id}; reload and retry",
            )

        for old in prior:
            logger.info(f"Hypothesis {old.id} superseded by {hypothesis.id} on page {page_id}")
        logger.info(
            f"Created hypothesis {hypothesis.id} on page {page_id} "
            f"(change_type={change.value}, confidence={confidence})"
        )
        return hypothesis

    def _lock_active(self, page_id: int) -> List[HypothesisDB]:
        return (
            self.db.query(HypothesisDB)
            .filter(
                HypothesisDB.page_id == page_id,
                HypothesisDB.status == HypothesisStatus.ACTIVE.value,
            )
            .with_for_update()
            .all()
        )

    def record_outcome(self, hypothesis_id: int, actual_outcome: str) -> HypothesisDB:
        """Record what actually happened. An active hypothesis becomes completed."""
        hypothesis = self.get(hypothesis_id)
        outcome = (actual_outcome or "").strip()
        if not outcome:
            raise ValidationError("actual_outcome is required", field="actual_outcome")

        now = utcnow()
        hypothesis.actual_outcome = outcome
        hypothesis.outcome_recorded_at = now
        if hypothesis.status == HypothesisStatus.ACTIVE.value:
            hypothesis.status = HypothesisStatus.COMPLETED.value
            hypothesis.completed_at = now
        self.db.flush()

        logger.info(f"Recorded outcome for hypothesis {hypothesis_id} (status={hypothesis.status})")
        return hypothesis

    def cancel(self, hypothesis_id: int, reason: Optional[str] = None) -> HypothesisDB:
        """Cancel an active hypothesis. Completed or cancelled rows are left as they are."""
        hypothesis = self.get(hypothesis_id)
        if hypothesis.status != HypothesisStatus.ACTIVE.value:
            return hypothesis

        hypothesis.status = HypothesisStatus.CANCELLED.value
        hypothesis.cancelled_at = utcnow()
        hypothesis.cancellation_reason = reason or "User cancelled"
        self.db.flush()

        logger.info(f"Cancelled hypothesis {hypothesis_id}: {hypothesis.cancellation_reason}")
        return hypothesis

    def sweep_abandoned(self, older_than: datetime) -> int:
        """
        Cancel active hypotheses created before `older_than` that never got a
        content version. Recovers from sessions that died between capture
        and first save.
        """
        saved_under = exists().where(ContentVersionDB.hypothesis_id == HypothesisDB.id)
        abandoned = (
            self.db.query(HypothesisDB)
            .filter(
                HypothesisDB.status == HypothesisStatus.ACTIVE.value,
                HypothesisDB.created_at < older_than,
                ~saved_under,
            )
            .all()
        )

        now = utcnow()
        for hypothesis in abandoned:
            hypothesis.status = HypothesisStatus.CANCELLED.value
            hypothesis.cancelled_at = now
            hypothesis.cancellation_reason = "Abandoned without saved content"
        self.db.flush()

        if abandoned:
            logger.info(f"Swept {len(abandoned)} abandoned hypotheses")
        return len(abandoned)

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, hypothesis_id: int) -> HypothesisDB:
        hypothesis = self.db.get(HypothesisDB, hypothesis_id)
        if hypothesis is None:
            raise NotFoundError(f"Hypothesis not found: {hypothesis_id}")
        return hypothesis

    def has_versions(self, hypothesis_id: int) -> bool:
        return self.db.query(
            exists().where(ContentVersionDB.hypothesis_id == hypothesis_id)
        ).scalar()

    def get_active(self, page_id: int) -> Optional[HypothesisDB]:
        return (
            self.db.query(HypothesisDB)
            .filter(
                HypothesisDB.page_id == page_id,
                HypothesisDB.status == HypothesisStatus.ACTIVE.value,
            )
            .first()
        )

    def list_by_page(self, page_id: int) -> List[HypothesisDB]:
        """All hypotheses for a page, newest first."""
        return (
            self.db.query(HypothesisDB)
            .filter(HypothesisDB.page_id == page_id)
            .order_by(HypothesisDB.created_at.desc(), HypothesisDB.id.desc())
            .all()
        )

    def analytics(self, page_id: int) -> HypothesisAnalytics:
        rows = (
            self.db.query(HypothesisDB.status, HypothesisDB.change_type, func.count(HypothesisDB.id),
                          func.sum(HypothesisDB.confidence_level))
            .filter(HypothesisDB.page_id == page_id)
            .group_by(HypothesisDB.status, HypothesisDB.change_type)
            .all()
        )

        by_status = {s.value: 0 for s in HypothesisStatus}
        by_change = {c.value: 0 for c in ChangeType}
        total = 0
        confidence_sum = 0
        for status, change_type, count, confidence in rows:
            by_status[status] = by_status.get(status, 0) + count
            by_change[change_type] = by_change.get(change_type, 0) + count
            total += count
            confidence_sum += confidence or 0

        return HypothesisAnalytics(
            total_hypotheses=total,
            active_hypotheses=by_status[HypothesisStatus.ACTIVE.value],
            completed_hypotheses=by_status[HypothesisStatus.COMPLETED.value],
            cancelled_hypotheses=by_status[HypothesisStatus.CANCELLED.value],
            average_confidence=round(confidence_sum / total, 1) if total else 0.0,
            change_type_distribution=by_change,
        )
