"""
Tests for Payment Event Intake.

Canonical records and provider webhook envelopes normalize to the same
PaymentEvent shape; malformed input names the offending field.
"""
from datetime import datetime

import pytest

from app.models.journey import PaymentEvent
from app.services.errors import ValidationError
from app.services.revenue import PaymentEventIntake, mask_payment_id


def canonical(**overrides):
    raw = {
        "event_id": "evt_1",
        "client_id": 42,
        "amount": 5000,
        "currency": "USD",
        "status": "succeeded",
        "occurred_at": "2024-03-02T09:00:00Z",
    }
    raw.update(overrides)
    return raw


def webhook(event_type="payment_intent.succeeded", **object_overrides):
    obj = {
        "id": "pi_123",
        "amount": 2500,
        "currency": "usd",
        "metadata": {"client_id": "42"},
        "payment_method_types": ["card"],
    }
    obj.update(object_overrides)
    return {"id": "evt_wh_1", "type": event_type, "created": 1709370000, "data": {"object": obj}}


# =============================================================================
# TEST: CANONICAL RECORDS
# =============================================================================

class TestCanonical:

    def test_normalizes(self):
        event = PaymentEventIntake().normalize(canonical())
        assert event == PaymentEvent(
            event_id="evt_1", client_id=42, amount=5000, currency="usd",
            status="succeeded", occurred_at=datetime(2024, 3, 2, 9, 0, 0),
        )

    def test_offset_converted_to_utc(self):
        event = PaymentEventIntake().normalize(canonical(occurred_at="2024-03-02T11:00:00+02:00"))
        assert event.occurred_at == datetime(2024, 3, 2, 9, 0, 0)

    def test_epoch_seconds(self):
        event = PaymentEventIntake().normalize(canonical(occurred_at=0))
        assert event.occurred_at == datetime(1970, 1, 1)

    def test_client_id_string_accepted(self):
        assert PaymentEventIntake().normalize(canonical(client_id="42")).client_id == 42

    def test_payment_method_from_metadata(self):
        event = PaymentEventIntake().normalize(canonical(metadata={"payment_method": "ach"}))
        assert event.payment_method == "ach"
        assert event.metadata == {"payment_method": "ach"}

    @pytest.mark.parametrize("missing", ["event_id", "client_id", "amount", "currency", "status", "occurred_at"])
    def test_missing_field(self, missing):
        raw = canonical()
        del raw[missing]
        with pytest.raises(ValidationError) as exc:
            PaymentEventIntake().normalize(raw)
        assert exc.value.field == missing

    @pytest.mark.parametrize("field,value", [
        ("amount", -1),
        ("amount", 12.5),
        ("amount", "lots"),
        ("currency", "dollars"),
        ("client_id", "abc"),
        ("status", "exploded"),
        ("occurred_at", "yesterday-ish"),
    ])
    def test_invalid_field(self, field, value):
        with pytest.raises(ValidationError) as exc:
            PaymentEventIntake().normalize(canonical(**{field: value}))
        assert exc.value.field == field

    def test_fingerprint_ignores_metadata(self):
        intake = PaymentEventIntake()
        a = intake.normalize(canonical(metadata={"referrer": "email"}))
        b = intake.normalize(canonical(metadata={"referrer": "ads"}))
        assert a.fingerprint() == b.fingerprint()

    def test_fingerprint_tracks_amount(self):
        intake = PaymentEventIntake()
        assert intake.normalize(canonical()).fingerprint() != intake.normalize(canonical(amount=5001)).fingerprint()


# =============================================================================
# TEST: WEBHOOK ENVELOPES
# =============================================================================

class TestWebhook:

    @pytest.mark.parametrize("event_type,status", [
        ("payment_intent.succeeded", "succeeded"),
        ("payment_intent.payment_failed", "failed"),
        ("payment_intent.processing", "processing"),
        ("payment_intent.requires_action", "requires_action"),
        ("payment_intent.canceled", "voided"),
        ("charge.refunded", "refunded"),
    ])
    def test_type_mapping(self, event_type, status):
        assert PaymentEventIntake().normalize(webhook(event_type)).status == status

    def test_fields(self):
        event = PaymentEventIntake().normalize(webhook())
        assert event.event_id == "evt_wh_1"
        assert event.client_id == 42
        assert event.amount == 2500
        assert event.currency == "usd"
        assert event.payment_method == "card"
        assert event.occurred_at == datetime(2024, 3, 2, 9, 0, 0)
        assert event.metadata["provider_object_id"] == "pi_123"

    def test_checkout_session_paid(self):
        raw = webhook("checkout.session.completed", amount=None, amount_total=9900, payment_status="paid")
        event = PaymentEventIntake().normalize(raw)
        assert event.status == "succeeded"
        assert event.amount == 9900

    def test_checkout_session_unpaid_is_processing(self):
        raw = webhook("checkout.session.completed", payment_status="unpaid")
        assert PaymentEventIntake().normalize(raw).status == "processing"

    def test_unsupported_type(self):
        with pytest.raises(ValidationError) as exc:
            PaymentEventIntake().normalize(webhook("customer.created"))
        assert exc.value.field == "type"

    def test_missing_client_id(self):
        with pytest.raises(ValidationError) as exc:
            PaymentEventIntake().normalize(webhook(metadata={}))
        assert exc.value.field == "client_id"


# =============================================================================
# TEST: MASKING
# =============================================================================

class TestMaskPaymentId:

    def test_masks_long_ids(self):
        assert mask_payment_id("pi_3Nabcdef1234") == "pi_3...1234"

    def test_short_and_empty(self):
        assert mask_payment_id("evt_1") == "*****"
        assert mask_payment_id(None) == "<none>"
