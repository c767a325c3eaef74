"""
Randomized walks over the edit gate and correlation overrides.

Each walk interleaves sessions on two pages (open, interact, submit,
cancel, save, end, abandoned sweep) and checks after every step:
- at most one active hypothesis per page
- an action the transition table forbids raises PreconditionError
- a save succeeds exactly when the bound hypothesis is still active
"""
import random
from datetime import timedelta

import pytest
from sqlalchemy import func

from app.models.db_models import (
    ContentVersionDB,
    CorrelationAuditDB,
    HypothesisDB,
    HypothesisStatus,
)
from app.models.journey import PaymentEvent
from app.services.clock import utcnow
from app.services.editing import EditGate, GateAction, GateState, HypothesisStore
from app.services.errors import PreconditionError
from app.services.revenue import CorrelationEngine

from factories import JOURNEY_START

ACTIONS = ["open", "interact", "submit", "cancel", "save", "end", "sweep"]
OUTCOMES = ["paid", "failed", "pending", "cancelled"]


def active_counts(db):
    return dict(
        db.query(HypothesisDB.page_id, func.count(HypothesisDB.id))
        .filter(HypothesisDB.status == HypothesisStatus.ACTIVE.value)
        .group_by(HypothesisDB.page_id)
        .all()
    )


def is_legal(gate, session, action):
    return not session.ended and gate.can_transition(session.state, action)


def step(db, gate, rng, sessions, page_ids, saved):
    action = rng.choice(ACTIONS)

    if action == "sweep":
        HypothesisStore(db).sweep_abandoned(utcnow() + timedelta(seconds=1))
        return
    if action == "open" or not sessions:
        sessions.append(gate.open_session(rng.choice(page_ids)))
        return

    session = rng.choice(sessions)

    if action == "interact":
        if is_legal(gate, session, GateAction.INTERACT):
            gate.interact(session, "title", f"draft {rng.random()}")
        else:
            with pytest.raises(PreconditionError):
                gate.interact(session, "title", "dropped")

    elif action == "submit":
        if is_legal(gate, session, GateAction.SUBMIT):
            gate.submit_hypothesis(session, "walk hypothesis", "content", rng.randint(1, 10))
            assert session.state == GateState.UNLOCKED
        else:
            with pytest.raises(PreconditionError):
                gate.submit_hypothesis(session, "walk hypothesis", "content", 5)

    elif action == "cancel":
        if is_legal(gate, session, GateAction.CANCEL):
            gate.cancel_capture(session)
            assert session.state == GateState.LOCKED
        else:
            with pytest.raises(PreconditionError):
                gate.cancel_capture(session)

    elif action == "save":
        legal = is_legal(gate, session, GateAction.SAVE) and session.hypothesis_id is not None
        bound = session.hypothesis_id
        still_active = bound is not None and db.get(HypothesisDB, bound).status == HypothesisStatus.ACTIVE.value
        if legal and still_active:
            version = gate.save(session, body=f"body {rng.random()}")
            assert version.hypothesis_id == bound
            saved.append((version.id, bound))
        else:
            with pytest.raises(PreconditionError):
                gate.save(session, body="rejected")
            if legal:
                assert session.state == GateState.LOCKED
                assert session.hypothesis_id is None

    elif action == "end":
        if is_legal(gate, session, GateAction.END):
            gate.end_session(session)
            assert session.state == GateState.LOCKED
            sessions.remove(session)
        else:
            with pytest.raises(PreconditionError):
                gate.end_session(session)


class TestEditingWalk:

    @pytest.mark.parametrize("seed_value", [1, 7, 42, 1234, 2024])
    def test_random_walk_keeps_invariants(self, db, pages, seed_value):
        rng = random.Random(seed_value)
        gate = EditGate(db)
        page_ids = [pages[0].id, pages[1].id]
        sessions = []
        saved = []

        for _ in range(80):
            step(db, gate, rng, sessions, page_ids, saved)
            assert all(count <= 1 for count in active_counts(db).values())

        # Every version points at the hypothesis that was bound when it was saved
        for version_id, hypothesis_id in saved:
            assert db.get(ContentVersionDB, version_id).hypothesis_id == hypothesis_id

        # Version numbers stay dense per page
        for page_id in page_ids:
            numbers = [
                n for (n,) in db.query(ContentVersionDB.version_number)
                .filter(ContentVersionDB.page_id == page_id)
                .order_by(ContentVersionDB.version_number)
            ]
            assert numbers == list(range(1, len(numbers) + 1))


class TestOverrideWalk:

    @pytest.mark.parametrize("seed_value", [3, 99])
    def test_every_override_is_audited(self, db, client_record, seed_value):
        rng = random.Random(seed_value)
        engine = CorrelationEngine(db)
        correlation = engine.ingest(PaymentEvent(
            event_id=f"evt_walk_{seed_value}", client_id=client_record.id, amount=1000,
            currency="usd", status="succeeded", occurred_at=JOURNEY_START + timedelta(hours=2),
        ))

        history = [correlation.outcome_type]
        for n in range(rng.randint(3, 8)):
            new_outcome = rng.choice(OUTCOMES)
            engine.override(correlation.id, new_outcome, f"review {n}", f"ops-{rng.randint(1, 3)}")
            history.append(new_outcome)

        trail = engine.audit_trail(correlation.id)
        assert [a.sequence for a in trail] == list(range(1, len(history)))
        assert [a.old_outcome_type for a in trail] == history[:-1]
        assert [a.new_outcome_type for a in trail] == history[1:]
        assert correlation.outcome_type == history[-1]
        assert correlation.derived_outcome_type == "paid"
        assert db.query(CorrelationAuditDB).count() == len(history) - 1
