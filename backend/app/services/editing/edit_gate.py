"""
Edit Gate

Per-session state machine that enforces "no content mutation without an
active hypothesis" on a journey page.

    LOCKED --interact--> CAPTURING --submit--> UNLOCKED --save--> UNLOCKED
                          |
                          +--cancel--> LOCKED

    any state --end--> LOCKED

Gate state lives only in the editing session; it is never persisted. A new
session starts UNLOCKED when the page already has an active hypothesis,
otherwise LOCKED.

INVARIANTS:
- Edits attempted while LOCKED or CAPTURING are discarded, never queued
- A save without a bound hypothesis never reaches the ledger
- A hypothesis created by a session that ends without saving is cancelled,
  never left active with zero edits
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...models.db_models import ContentVersionDB
from ..clock import utcnow
from ..errors import NotFoundError, PreconditionError, ValidationError
from .content_ledger import ContentVersionLedger
from .hypothesis_store import HypothesisStore
from .journey_pages import JourneyService

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    LOCKED = "LOCKED"
    CAPTURING = "CAPTURING"
    UNLOCKED = "UNLOCKED"


class GateAction(str, Enum):
    INTERACT = "interact"
    SUBMIT = "submit_hypothesis"
    CANCEL = "cancel_capture"
    SAVE = "save"
    END = "end_session"


EDITABLE_FIELDS = ("title", "body")


# =============================================================================
# TRANSITION TABLE
# =============================================================================
#
# (from_state, action) -> to_state. Anything missing is illegal and raises
# PreconditionError. SAVE is deliberately absent from LOCKED and CAPTURING.
#
# =============================================================================

TRANSITIONS: Dict[tuple, GateState] = {
    (GateState.LOCKED, GateAction.INTERACT): GateState.CAPTURING,
    (GateState.CAPTURING, GateAction.INTERACT): GateState.CAPTURING,
    (GateState.UNLOCKED, GateAction.INTERACT): GateState.UNLOCKED,
    (GateState.CAPTURING, GateAction.SUBMIT): GateState.UNLOCKED,
    (GateState.CAPTURING, GateAction.CANCEL): GateState.LOCKED,
    (GateState.UNLOCKED, GateAction.SAVE): GateState.UNLOCKED,
    (GateState.LOCKED, GateAction.END): GateState.LOCKED,
    (GateState.CAPTURING, GateAction.END): GateState.LOCKED,
    (GateState.UNLOCKED, GateAction.END): GateState.LOCKED,
}


@dataclass
class EditSession:
    """One editor's in-memory view of one page."""
    page_id: int
    session_id: str = field(default_factory=lambda: str(uuid4()))
    state: GateState = GateState.LOCKED
    hypothesis_id: Optional[int] = None
    created_hypothesis: bool = False
    saves: int = 0
    saved_title: str = ""
    saved_body: str = ""
    draft_title: str = ""
    draft_body: str = ""
    actor_id: Optional[str] = None
    ended: bool = False
    opened_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)

    def touch(self):
        self.last_seen_at = utcnow()

    def revert_drafts(self):
        self.draft_title = self.saved_title
        self.draft_body = self.saved_body

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "page_id": self.page_id,
            "state": self.state.value,
            "hypothesis_id": self.hypothesis_id,
            "saves": self.saves,
            "title": self.draft_title,
            "body": self.draft_body,
            "saved_title": self.saved_title,
            "saved_body": self.saved_body,
            "ended": self.ended,
        }


class EditGate:
    """Drives EditSession objects through the gate against the stores."""

    def __init__(self, db: Session):
        self.db = db
        self.hypotheses = HypothesisStore(db)
        self.ledger = ContentVersionLedger(db)
        self.pages = JourneyService(db)

    def can_transition(self, state: GateState, action: GateAction) -> bool:
        return (state, action) in TRANSITIONS

    def _transition(self, session: EditSession, action: GateAction) -> GateState:
        if session.ended:
            raise PreconditionError(f"Editing session {session.session_id} has ended")
        target = TRANSITIONS.get((session.state, action))
        if target is None:
            raise PreconditionError(f"Cannot {action.value} while the edit gate is {session.state.value}")
        return target

    def _enter(self, session: EditSession, target: GateState, action: GateAction):
        if session.state != target:
            logger.debug(
                f"Edit session {session.session_id}: {session.state.value} -> {target.value} ({action.value})"
            )
        session.state = target

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    def open_session(self, page_id: int, actor_id: Optional[str] = None) -> EditSession:
        page = self.pages.get_page(page_id)
        session = EditSession(
            page_id=page_id,
            saved_title=page.title or "",
            saved_body=page.body or "",
            actor_id=actor_id,
        )
        session.revert_drafts()

        active = self.hypotheses.get_active(page_id)
        if active is not None:
            session.state = GateState.UNLOCKED
            session.hypothesis_id = active.id

        logger.info(
            f"Opened edit session {session.session_id} on page {page_id} ({session.state.value})"
        )
        return session

    def end_session(self, session: EditSession) -> EditSession:
        """
        Close the session. A hypothesis this session created is cancelled if
        nothing was ever saved under it, by this session or any other.
        """
        target = self._transition(session, GateAction.END)

        if (
            session.created_hypothesis
            and session.saves == 0
            and session.hypothesis_id is not None
            and not self.hypotheses.has_versions(session.hypothesis_id)
        ):
            self.hypotheses.cancel(session.hypothesis_id, reason="Editing session ended without saving")

        session.hypothesis_id = None
        session.created_hypothesis = False
        session.revert_drafts()
        self._enter(session, target, GateAction.END)
        session.ended = True
        logger.info(f"Ended edit session {session.session_id} on page {session.page_id}")
        return session

    def end_idle_sessions(self, registry: "EditSessionRegistry", older_than: datetime) -> int:
        """End and drop every registered session not used since older_than."""
        idle = registry.evict_idle(older_than)
        for session in idle:
            if session.ended:
                continue
            try:
                self.end_session(session)
            except NotFoundError as e:
                # Page or hypothesis deleted while the session sat idle
                logger.warning(f"Idle session {session.session_id} could not be ended cleanly: {e}")
        if idle:
            logger.info(f"Evicted {len(idle)} idle edit session(s)")
        return len(idle)

    # =========================================================================
    # EDITOR ACTIONS
    # =========================================================================

    def interact(self, session: EditSession, field_name: str, value: Optional[str] = None) -> EditSession:
        """
        Attempt to edit a field. Only an UNLOCKED gate applies the value;
        otherwise the attempt opens hypothesis capture and is dropped.
        """
        if field_name not in EDITABLE_FIELDS:
            raise ValidationError(f"Unknown field '{field_name}'. Must be one of: {list(EDITABLE_FIELDS)}", field="field")

        target = self._transition(session, GateAction.INTERACT)
        if session.state == GateState.UNLOCKED and value is not None:
            setattr(session, f"draft_{field_name}", value)
        self._enter(session, target, GateAction.INTERACT)
        return session

    def submit_hypothesis(
        self,
        session: EditSession,
        statement: str,
        change_type,
        confidence_level: int,
        predicted_outcome: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> EditSession:
        target = self._transition(session, GateAction.SUBMIT)

        # Store errors propagate and leave the session CAPTURING
        hypothesis = self.hypotheses.create_hypothesis(
            page_id=session.page_id,
            statement=statement,
            change_type=change_type,
            confidence_level=confidence_level,
            predicted_outcome=predicted_outcome,
            created_by=actor_id or session.actor_id,
        )

        session.hypothesis_id = hypothesis.id
        session.created_hypothesis = True
        session.saves = 0
        self._enter(session, target, GateAction.SUBMIT)
        return session

    def cancel_capture(self, session: EditSession) -> EditSession:
        target = self._transition(session, GateAction.CANCEL)
        session.revert_drafts()
        self._enter(session, target, GateAction.CANCEL)
        return session

    def save(
        self,
        session: EditSession,
        title: Optional[str] = None,
        body: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> ContentVersionDB:
        """
        Append a content version under the bound hypothesis.

        If the ledger no longer accepts the bound hypothesis (superseded or
        cancelled elsewhere), the session relocks and the error propagates.
        """
        if session.ended:
            raise PreconditionError(f"Editing session {session.session_id} has ended")
        if session.hypothesis_id is None:
            raise PreconditionError("Record a hypothesis before saving content")
        target = self._transition(session, GateAction.SAVE)

        if title is not None:
            session.draft_title = title
        if body is not None:
            session.draft_body = body

        try:
            version = self.ledger.append_version(
                page_id=session.page_id,
                title=session.draft_title,
                body=session.draft_body,
                hypothesis_id=session.hypothesis_id,
                saved_by=actor_id or session.actor_id,
            )
        except PreconditionError:
            logger.info(
                f"Edit session {session.session_id} relocked: hypothesis {session.hypothesis_id} is no longer active"
            )
            session.hypothesis_id = None
            session.created_hypothesis = False
            session.revert_drafts()
            self._enter(session, GateState.LOCKED, GateAction.SAVE)
            raise

        session.saves += 1
        session.saved_title = version.title
        session.saved_body = version.body
        self._enter(session, target, GateAction.SAVE)
        return version


# =============================================================================
# SESSION REGISTRY
# =============================================================================

class EditSessionRegistry:
    """In-process store of open editing sessions for the HTTP layer."""

    def __init__(self):
        self._sessions: Dict[str, EditSession] = {}
        self._lock = threading.Lock()

    def add(self, session: EditSession) -> EditSession:
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> EditSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Editing session not found: {session_id}")
        session.touch()
        return session

    def remove(self, session_id: str) -> Optional[EditSession]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def evict_idle(self, older_than: datetime) -> List[EditSession]:
        """Remove and return sessions not used since older_than."""
        with self._lock:
            idle = [s for s in self._sessions.values() if s.last_seen_at < older_than]
            for session in idle:
                del self._sessions[session.session_id]
        return idle

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


session_registry = EditSessionRegistry()
