"""
HTTP-level tests.

Drives the routers through a TestClient backed by the in-memory database:
journeys, the editing gate, payment intake, correlation overrides and
outcomes. Seed rows through the `seed` fixture and keep only ids.
"""
from datetime import timedelta

import pytest

from app.config import EDIT_SESSION_IDLE_MINUTES
from app.services.clock import utcnow
from app.services.editing import JourneyService, session_registry

from factories import JOURNEY_START, make_client


@pytest.fixture
def journey(seed):
    """Client with its four pages; returns (client_id, first page id)."""
    def _create(db):
        client = make_client(db, journey_started_at=JOURNEY_START)
        pages = JourneyService(db).create_journey(client.id)
        return client.id, pages[0].id
    return seed(_create)


def payment(client_id, event_id="evt_api_0001", status="succeeded", amount=12500):
    return {
        "event_id": event_id,
        "client_id": client_id,
        "amount": amount,
        "currency": "USD",
        "status": status,
        "occurred_at": "2024-03-02T09:00:00Z",
        "payment_method": "card",
    }


# =============================================================================
# TEST: SERVICE ENDPOINTS
# =============================================================================

class TestServiceEndpoints:

    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_lists_components(self, api):
        body = api.get("/").json()
        assert "edit_gate" in body["components"]


# =============================================================================
# TEST: JOURNEYS
# =============================================================================

class TestJourneyEndpoints:

    def test_create_and_read_journey(self, api, seed):
        client_id = seed(lambda db: make_client(db).id)

        created = api.post(f"/journeys/{client_id}")
        assert created.status_code == 201
        assert [p["page_order"] for p in created.json()["pages"]] == [1, 2, 3, 4]
        assert created.json()["journey_started_at"] is not None

        again = api.post(f"/journeys/{client_id}")
        assert again.status_code == 409

    def test_unknown_client_is_404(self, api):
        response = api.get("/journeys/404")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_advance_and_progress(self, api, journey):
        client_id, _ = journey

        advanced = api.post(f"/journeys/{client_id}/advance", json={"skip": True})
        assert advanced.status_code == 200
        assert advanced.json()["active_page"]["page_order"] == 2

        progress = api.get(f"/journeys/{client_id}/progress").json()
        assert progress["completed_pages"] == 0
        assert progress["progress_percentage"] == 25
        assert progress["current_step"] == 2


# =============================================================================
# TEST: EDITING
# =============================================================================

class TestEditingEndpoints:

    def test_gated_edit_flow(self, api, journey):
        """Locked interaction opens capture; a hypothesis unlocks; saves become versions."""
        _, page_id = journey

        opened = api.post("/editing/sessions", json={"page_id": page_id}, headers={"X-Actor-Id": "editor-1"})
        assert opened.status_code == 201
        session = opened.json()
        assert session["state"] == "LOCKED"
        sid = session["session_id"]
        saved_title = session["saved_title"]

        typed = api.post(f"/editing/sessions/{sid}/interact", json={"field": "title", "value": "Dropped"}).json()
        assert typed["state"] == "CAPTURING"
        assert typed["title"] == saved_title

        blocked = api.post(f"/editing/sessions/{sid}/save", json={"title": "Sneaky"})
        assert blocked.status_code == 409
        assert api.get(f"/pages/{page_id}/versions").json()["total"] == 0

        unlocked = api.post(f"/editing/sessions/{sid}/hypothesis", json={
            "statement": "A shorter title converts better",
            "change_type": "title",
            "confidence_level": 7,
            "predicted_outcome": "paid",
        })
        assert unlocked.status_code == 200
        assert unlocked.json()["state"] == "UNLOCKED"
        hypothesis_id = unlocked.json()["hypothesis_id"]

        saved = api.post(f"/editing/sessions/{sid}/save", json={"title": "Start today"})
        assert saved.status_code == 200
        version = saved.json()["version"]
        assert version["version_number"] == 1
        assert version["hypothesis_id"] == hypothesis_id
        assert version["saved_by"] == "editor-1"

        latest = api.get(f"/pages/{page_id}/versions/latest").json()
        assert latest["title"] == "Start today"

        ended = api.delete(f"/editing/sessions/{sid}")
        assert ended.json()["ended"] is True
        assert api.get(f"/editing/sessions/{sid}").status_code == 404

        active = api.get(f"/pages/{page_id}/hypotheses/active").json()
        assert active["id"] == hypothesis_id

    def test_cancelled_capture_relocks(self, api, journey):
        _, page_id = journey
        sid = api.post("/editing/sessions", json={"page_id": page_id}).json()["session_id"]

        api.post(f"/editing/sessions/{sid}/interact", json={"field": "body", "value": "x"})
        cancelled = api.post(f"/editing/sessions/{sid}/cancel").json()
        assert cancelled["state"] == "LOCKED"
        assert api.get(f"/pages/{page_id}/hypotheses").json()["total"] == 0

    def test_invalid_hypothesis_keeps_capturing(self, api, journey):
        _, page_id = journey
        sid = api.post("/editing/sessions", json={"page_id": page_id}).json()["session_id"]
        api.post(f"/editing/sessions/{sid}/interact", json={"field": "title"})

        response = api.post(f"/editing/sessions/{sid}/hypothesis", json={
            "statement": "too sure", "change_type": "title", "confidence_level": 11,
        })
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "confidence_level"
        assert api.get(f"/editing/sessions/{sid}").json()["state"] == "CAPTURING"

    def test_unknown_field_is_400(self, api, journey):
        _, page_id = journey
        sid = api.post("/editing/sessions", json={"page_id": page_id}).json()["session_id"]
        response = api.post(f"/editing/sessions/{sid}/interact", json={"field": "footer"})
        assert response.status_code == 400

    def test_opening_a_session_ends_idle_ones(self, api, journey):
        _, page_id = journey
        sid = api.post("/editing/sessions", json={"page_id": page_id}).json()["session_id"]
        api.post(f"/editing/sessions/{sid}/interact", json={"field": "title"})
        api.post(f"/editing/sessions/{sid}/hypothesis", json={
            "statement": "abandoned mid-edit", "change_type": "title", "confidence_level": 4,
        })
        session_registry.get(sid).last_seen_at = utcnow() - timedelta(minutes=EDIT_SESSION_IDLE_MINUTES + 1)

        fresh = api.post("/editing/sessions", json={"page_id": page_id})

        assert fresh.status_code == 201
        assert fresh.json()["state"] == "LOCKED"
        assert api.get(f"/editing/sessions/{sid}").status_code == 404
        assert api.get(f"/pages/{page_id}/hypotheses/active").json() is None
        assert api.get(f"/pages/{page_id}/hypotheses/analytics").json()["cancelled_hypotheses"] == 1

    def test_open_on_unknown_page_is_404(self, api):
        assert api.post("/editing/sessions", json={"page_id": 9999}).status_code == 404

    def test_hypothesis_outcome_endpoint(self, api, journey):
        _, page_id = journey
        sid = api.post("/editing/sessions", json={"page_id": page_id}).json()["session_id"]
        api.post(f"/editing/sessions/{sid}/interact", json={"field": "title"})
        hypothesis_id = api.post(f"/editing/sessions/{sid}/hypothesis", json={
            "statement": "urgency helps", "change_type": "content", "confidence_level": 5,
        }).json()["hypothesis_id"]

        response = api.post(f"/hypotheses/{hypothesis_id}/outcome", json={"actual_outcome": "client paid in 2 days"})
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["actual_outcome"] == "client paid in 2 days"

        analytics = api.get(f"/pages/{page_id}/hypotheses/analytics").json()
        assert analytics["completed_hypotheses"] == 1
        assert analytics["active_hypotheses"] == 0


# =============================================================================
# TEST: PAYMENTS & CORRELATIONS
# =============================================================================

class TestPaymentEndpoints:

    def test_ingest_is_idempotent(self, api, journey):
        client_id, _ = journey

        first = api.post("/payments/events", json=payment(client_id))
        assert first.status_code == 200
        assert first.json()["outcome_type"] == "paid"
        assert first.json()["currency"] == "usd"

        second = api.post("/payments/events", json=payment(client_id))
        assert second.json()["id"] == first.json()["id"]

        listed = api.get("/correlations", params={"client_id": client_id}).json()
        assert listed["total"] == 1

    def test_conflicting_redelivery_is_409(self, api, journey):
        client_id, _ = journey
        original = api.post("/payments/events", json=payment(client_id)).json()

        response = api.post("/payments/events", json=payment(client_id, amount=99))
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "conflict"
        assert api.get(f"/correlations/{original['id']}").json()["amount"] == 12500

    def test_malformed_event_is_400(self, api, journey):
        client_id, _ = journey
        event = payment(client_id)
        del event["currency"]
        response = api.post("/payments/events", json=event)
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "currency"

    def test_unknown_client_is_404(self, api):
        assert api.post("/payments/events", json=payment(777)).status_code == 404

    def test_webhook_envelope(self, api, journey):
        client_id, _ = journey
        response = api.post("/payments/events", json={
            "id": "evt_webhook_0001",
            "type": "payment_intent.payment_failed",
            "created": 1709370000,
            "data": {"object": {
                "id": "pi_123456789",
                "amount": 5000,
                "currency": "usd",
                "payment_method_types": ["card"],
                "metadata": {"client_id": str(client_id)},
            }},
        })
        assert response.status_code == 200
        assert response.json()["outcome_type"] == "failed"
        assert response.json()["payment_method"] == "card"


class TestCorrelationEndpoints:

    def test_override_requires_actor(self, api, journey):
        client_id, _ = journey
        correlation_id = api.post("/payments/events", json=payment(client_id)).json()["id"]

        response = api.post(f"/correlations/{correlation_id}/override", json={
            "new_outcome_type": "cancelled", "reason": "chargeback",
        })
        assert response.status_code == 401

    def test_override_audit_and_metrics(self, api, journey):
        client_id, _ = journey
        correlation_id = api.post("/payments/events", json=payment(client_id)).json()["id"]

        overridden = api.post(
            f"/correlations/{correlation_id}/override",
            json={"new_outcome_type": "cancelled", "reason": "chargeback"},
            headers={"X-Actor-Id": "ops-1"},
        )
        assert overridden.status_code == 200
        assert overridden.json()["outcome_type"] == "cancelled"
        assert overridden.json()["derived_outcome_type"] == "paid"
        assert overridden.json()["state"] == "OVERRIDDEN"

        # Re-delivery does not revert the override
        again = api.post("/payments/events", json=payment(client_id)).json()
        assert again["outcome_type"] == "cancelled"

        audit = api.get(f"/correlations/{correlation_id}/audit").json()
        assert len(audit) == 1
        assert audit[0]["sequence"] == 1
        assert audit[0]["old_outcome_type"] == "paid"
        assert audit[0]["actor_id"] == "ops-1"

        metrics = api.get("/correlations/metrics", params={"client_id": client_id}).json()
        assert metrics["total_correlations"] == 1
        assert metrics["total_conversions"] == 0
        assert metrics["by_outcome_type"] == {"cancelled": 1}

    def test_invalid_override_outcome_is_400(self, api, journey):
        client_id, _ = journey
        correlation_id = api.post("/payments/events", json=payment(client_id)).json()["id"]
        response = api.post(
            f"/correlations/{correlation_id}/override",
            json={"new_outcome_type": "refunded", "reason": "typo"},
            headers={"X-Actor-Id": "ops-1"},
        )
        assert response.status_code == 400

    def test_metrics_timeframe(self, api, journey):
        client_id, _ = journey
        api.post("/payments/events", json=payment(client_id))

        inside = api.get("/correlations/metrics", params={
            "client_id": client_id, "start": "2024-03-01T00:00:00", "end": "2024-03-03T00:00:00",
        }).json()
        outside = api.get("/correlations/metrics", params={
            "client_id": client_id, "start": "2024-04-01T00:00:00",
        }).json()

        assert inside["total_correlations"] == 1
        assert inside["success_rate"] == 100.0
        assert outside["total_correlations"] == 0

    def test_unknown_correlation_is_404(self, api):
        assert api.get("/correlations/does-not-exist").status_code == 404
        assert api.get("/correlations/does-not-exist/audit").status_code == 404

    def test_validation_flags_unverified_paid_outcome(self, api, journey):
        client_id, _ = journey
        api.put(f"/outcomes/{client_id}", json={"outcome": "paid", "revenue_amount": "1500"})

        validation = api.get("/correlations/validation", params={"client_id": client_id}).json()
        assert validation["is_valid"] is False
        assert any("unverified manual entry" in issue for issue in validation["issues"])


# =============================================================================
# TEST: OUTCOMES
# =============================================================================

class TestOutcomeEndpoints:

    def test_outcome_types(self, api):
        assert "negotiating" in api.get("/outcomes/types").json()

    def test_record_and_read_outcome(self, api, journey):
        client_id, _ = journey

        rejected = api.put(f"/outcomes/{client_id}", json={"outcome": "paid", "revenue_amount": 0})
        assert rejected.status_code == 400
        assert rejected.json()["detail"]["field"] == "revenue_amount"
        assert api.get(f"/outcomes/{client_id}").json() is None

        recorded = api.put(
            f"/outcomes/{client_id}",
            json={"outcome": "paid", "revenue_amount": "1500.00", "notes": "signed"},
            headers={"X-Actor-Id": "ops-2"},
        )
        assert recorded.status_code == 200
        assert recorded.json()["revenue_amount"] == 1500.0
        assert recorded.json()["recorded_by"] == "ops-2"

        assert api.get(f"/outcomes/{client_id}").json()["journey_outcome"] == "paid"

    def test_hypothesis_accuracy(self, api, journey):
        client_id, page_id = journey
        sid = api.post("/editing/sessions", json={"page_id": page_id}).json()["session_id"]
        api.post(f"/editing/sessions/{sid}/interact", json={"field": "title"})
        api.post(f"/editing/sessions/{sid}/hypothesis", json={
            "statement": "clear pricing wins", "change_type": "content",
            "confidence_level": 8, "predicted_outcome": "ghosted",
        })
        api.put(f"/outcomes/{client_id}", json={"outcome": "responded"})

        results = api.get(f"/outcomes/{client_id}/hypothesis-accuracy").json()
        assert [r["accuracy"] for r in results] == ["inaccurate"]
