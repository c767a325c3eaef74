"""
Revenue Intelligence Engine - SQLAlchemy ORM Models
Persistent storage for journeys, hypotheses, content versions,
payment correlations and outcomes.
"""
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, ForeignKey, Boolean, Numeric,
    Index, UniqueConstraint, CheckConstraint, text,
)
from sqlalchemy.orm import relationship
from ..database import Base
from ..services.clock import utcnow


# =============================================================================
# ENUMS
# =============================================================================
#
# Enum members are stored by value in String columns, so the partial unique
# index on hypotheses can be expressed as plain SQL ("status = 'active'").
#
# =============================================================================

class PageType(str, Enum):
    """The four steps of a client journey, in order."""
    ACTIVATION = "activation"
    AGREEMENT = "agreement"
    CONFIRMATION = "confirmation"
    PROCESSING = "processing"


class PageStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class ChangeType(str, Enum):
    """What an editor intends to change under a hypothesis."""
    CONTENT = "content"
    TITLE = "title"
    STRUCTURE = "structure"
    BOTH = "both"


class HypothesisStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OutcomeType(str, Enum):
    """Correlation outcome classification derived from provider status."""
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class CorrelationState(str, Enum):
    """INGESTED -> OVERRIDDEN (one-way). There is no deleted state."""
    INGESTED = "INGESTED"
    OVERRIDDEN = "OVERRIDDEN"


class JourneyOutcome(str, Enum):
    """Human-entered final classification of a client journey."""
    PAID = "paid"
    RESPONDED = "responded"
    GHOSTED = "ghosted"
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    DECLINED = "declined"


# =============================================================================
# CLIENTS & JOURNEYS
# =============================================================================

class ClientDB(Base):
    """
    Recruiting client. Client CRUD lives outside this service; the engine
    only needs identity and the journey start time.
    """
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    journey_started_at = Column(DateTime, nullable=True)  # Set when page 1 is activated
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    pages = relationship(
        "JourneyPageDB",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="JourneyPageDB.page_order",
    )
    outcome = relationship("OutcomeDB", back_populates="client", uselist=False, cascade="all, delete-orphan")


class JourneyPageDB(Base):
    """One editable step of a client's journey."""
    __tablename__ = "journey_pages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    page_type = Column(String(20), nullable=False)
    page_order = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PageStatus.PENDING.value)

    # Last saved content - mirrors the latest content version
    title = Column(String(500), nullable=False, default="")
    body = Column(Text, nullable=False, default="")

    activated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("client_id", "page_order", name="uq_journey_pages_client_order"),
    )

    # Relationships - hypotheses and versions are owned by the page
    client = relationship("ClientDB", back_populates="pages")
    hypotheses = relationship(
        "HypothesisDB",
        back_populates="page",
        cascade="all, delete-orphan",
    )
    versions = relationship(
        "ContentVersionDB",
        back_populates="page",
        cascade="all, delete-orphan",
    )


# =============================================================================
# HYPOTHESIS-GATED EDITING
# =============================================================================

class HypothesisDB(Base):
    """
    A falsifiable belief recorded before content on a page may change.

    At most one row per page has status 'active' (partial unique index).
    """
    __tablename__ = "hypotheses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    page_id = Column(Integer, ForeignKey("journey_pages.id", ondelete="CASCADE"), nullable=False, index=True)

    statement = Column(Text, nullable=False)
    change_type = Column(String(20), nullable=False)
    confidence_level = Column(Integer, nullable=False)  # 1-10
    predicted_outcome = Column(Text, nullable=True)
    actual_outcome = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=HypothesisStatus.ACTIVE.value)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    outcome_recorded_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    superseded_by_id = Column(Integer, nullable=True)  # Hypothesis that completed this one

    __table_args__ = (
        Index(
            "uq_hypotheses_one_active_per_page",
            "page_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        CheckConstraint("confidence_level BETWEEN 1 AND 10", name="ck_hypotheses_confidence_range"),
    )

    page = relationship("JourneyPageDB", back_populates="hypotheses")
    versions = relationship("ContentVersionDB", viewonly=True)


class ContentVersionDB(Base):
    """
    Saved content of a page. Append-only: rows are never updated or deleted
    except by cascade when the owning page is removed.
    """
    __tablename__ = "content_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    page_id = Column(Integer, ForeignKey("journey_pages.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)

    title = Column(String(500), nullable=False, default="")
    body = Column(Text, nullable=False, default="")

    # Nullable only for rows written before the gate existed
    hypothesis_id = Column(Integer, ForeignKey("hypotheses.id", ondelete="CASCADE"), nullable=True, index=True)

    saved_by = Column(String(100), nullable=True)
    saved_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("page_id", "version_number", name="uq_content_versions_page_version"),
    )

    page = relationship("JourneyPageDB", back_populates="versions")
    hypothesis = relationship("HypothesisDB")


# =============================================================================
# PAYMENT CORRELATION
# =============================================================================

class CorrelationDB(Base):
    """
    Linkage between one payment event and one outcome classification.

    Immutable except outcome_type / manual_override / override_reason / state,
    which only an override rewrites (with an audit row). derived_outcome_type
    keeps what the engine originally computed.
    """
    __tablename__ = "correlations"

    id = Column(String(36), primary_key=True)  # UUID
    payment_event_id = Column(String(255), nullable=False, unique=True, index=True)  # Idempotency key
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    # Canonical payment event
    amount = Column(Integer, nullable=False)  # Minor units (cents)
    currency = Column(String(3), nullable=False)
    provider_status = Column(String(50), nullable=False)
    payment_method = Column(String(50), nullable=False, default="unknown")
    occurred_at = Column(DateTime, nullable=False, index=True)
    payload_fingerprint = Column(String(64), nullable=False)  # SHA256 of canonical event
    payment_metadata = Column(JSON, nullable=True, default=dict)

    # Classification
    derived_outcome_type = Column(String(20), nullable=False)
    outcome_type = Column(String(20), nullable=False)
    state = Column(String(20), nullable=False, default=CorrelationState.INGESTED.value)
    manual_override = Column(Boolean, nullable=False, default=False)
    override_reason = Column(Text, nullable=True)

    # Journey linkage (references only, no ownership)
    content_version_id = Column(Integer, ForeignKey("content_versions.id", ondelete="SET NULL"), nullable=True)
    linked_outcome = Column(String(20), nullable=True)  # Client outcome recorded before the payment
    conversion_duration = Column(Integer, nullable=True)  # Milliseconds, journey start -> occurred_at

    correlation_timestamp = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_correlations_client_occurred", "client_id", "occurred_at"),
    )

    audit_entries = relationship(
        "CorrelationAuditDB",
        back_populates="correlation",
        order_by="CorrelationAuditDB.sequence",
    )


class CorrelationAuditDB(Base):
    """
    Override history for a correlation.

    Append-only. Immutable after insert.
    """
    __tablename__ = "correlation_audit"

    id = Column(String(36), primary_key=True)  # UUID
    correlation_id = Column(String(36), ForeignKey("correlations.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based per correlation

    old_outcome_type = Column(String(20), nullable=False)
    new_outcome_type = Column(String(20), nullable=False)
    old_manual_override = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=False)
    actor_id = Column(String(100), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("correlation_id", "sequence", name="uq_correlation_audit_sequence"),
    )

    correlation = relationship("CorrelationDB", back_populates="audit_entries")


# =============================================================================
# OUTCOMES
# =============================================================================

class OutcomeDB(Base):
    """Current human-entered outcome of a client journey (one per client)."""
    __tablename__ = "outcomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, unique=True)

    journey_outcome = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    revenue_amount = Column(Numeric(10, 2), nullable=True)

    recorded_by = Column(String(100), nullable=True)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)

    client = relationship("ClientDB", back_populates="outcome")
