"""
Payment Event Intake

Normalizes inbound payment notifications into the canonical PaymentEvent
shape consumed by the correlation engine.

Accepted inputs:
1. Canonical record: {event_id, client_id, amount, currency, status, occurred_at}
2. Provider webhook envelope: {id, type, created, data: {object: {...}}}

Signature verification happens upstream; nothing here trusts or checks it.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from ...models.journey import PaymentEvent
from ..clock import to_naive_utc
from ..errors import ValidationError

logger = logging.getLogger(__name__)


# Provider statuses the correlation engine knows how to classify
KNOWN_STATUSES = {"succeeded", "requires_action", "processing", "failed", "voided", "refunded"}

# Webhook event type -> provider status
WEBHOOK_TYPE_STATUS = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "failed",
    "payment_intent.processing": "processing",
    "payment_intent.requires_action": "requires_action",
    "payment_intent.canceled": "voided",
    "charge.refunded": "refunded",
}

CHECKOUT_COMPLETED = "checkout.session.completed"

CANONICAL_FIELDS = ("event_id", "client_id", "amount", "currency", "status", "occurred_at")


def mask_payment_id(value: Optional[str]) -> str:
    """Log-safe form of a provider identifier: keep prefix and last 4."""
    if not value:
        return "<none>"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


# =============================================================================
# FIELD COERCION
# =============================================================================

def _require(raw: Dict[str, Any], name: str) -> Any:
    value = raw.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Payment event is missing '{name}'", field=name)
    return value


def _coerce_client_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("client_id must be an integer", field="client_id")
    try:
        client_id = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"client_id must be an integer, got {value!r}", field="client_id")
    if client_id <= 0:
        raise ValidationError("client_id must be positive", field="client_id")
    return client_id


def _coerce_amount(value: Any) -> int:
    # Minor units; floats with a fractional part are rejected, not rounded
    if isinstance(value, bool):
        raise ValidationError("amount must be an integer number of minor units", field="amount")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("amount must be an integer number of minor units", field="amount")
        value = int(value)
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"amount must be an integer, got {value!r}", field="amount")
    if amount < 0:
        raise ValidationError("amount must not be negative", field="amount")
    return amount


def _coerce_currency(value: Any) -> str:
    currency = str(value).strip().lower()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError(f"currency must be a 3-letter code, got {value!r}", field="currency")
    return currency


def _coerce_status(value: Any) -> str:
    status = str(value).strip().lower()
    if status not in KNOWN_STATUSES:
        raise ValidationError(
            f"Unknown payment status '{value}'. Must be one of: {sorted(KNOWN_STATUSES)}",
            field="status",
        )
    return status


def parse_occurred_at(value: Any) -> datetime:
    """ISO-8601 string, epoch seconds, or datetime -> naive UTC datetime."""
    if isinstance(value, bool):
        raise ValidationError("occurred_at is not a timestamp", field="occurred_at")
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            raise ValidationError(f"occurred_at is out of range: {value!r}", field="occurred_at")
    if isinstance(value, str):
        try:
            return to_naive_utc(date_parser.isoparse(value.strip()))
        except (ValueError, OverflowError):
            raise ValidationError(f"occurred_at is not an ISO-8601 timestamp: {value!r}", field="occurred_at")
    raise ValidationError(f"occurred_at has unsupported type {type(value).__name__}", field="occurred_at")


# =============================================================================
# INTAKE
# =============================================================================

class PaymentEventIntake:
    """Turns raw provider payloads into PaymentEvent values."""

    @staticmethod
    def is_webhook_envelope(raw: Dict[str, Any]) -> bool:
        return "type" in raw and isinstance(raw.get("data"), dict)

    def normalize(self, raw: Dict[str, Any]) -> PaymentEvent:
        if not isinstance(raw, dict):
            raise ValidationError("Payment event must be an object")
        if self.is_webhook_envelope(raw):
            return self._from_webhook(raw)
        return self._from_canonical(raw)

    def _from_canonical(self, raw: Dict[str, Any]) -> PaymentEvent:
        for name in CANONICAL_FIELDS:
            _require(raw, name)

        metadata = raw.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object", field="metadata")

        payment_method = raw.get("payment_method") or metadata.get("payment_method") or "unknown"

        return PaymentEvent(
            event_id=str(raw["event_id"]).strip(),
            client_id=_coerce_client_id(raw["client_id"]),
            amount=_coerce_amount(raw["amount"]),
            currency=_coerce_currency(raw["currency"]),
            status=_coerce_status(raw["status"]),
            occurred_at=parse_occurred_at(raw["occurred_at"]),
            payment_method=str(payment_method),
            metadata=dict(metadata),
        )

    def _from_webhook(self, raw: Dict[str, Any]) -> PaymentEvent:
        event_type = raw.get("type")
        obj = raw["data"].get("object")
        if not isinstance(obj, dict):
            raise ValidationError("Webhook envelope has no data.object", field="data")

        if event_type == CHECKOUT_COMPLETED:
            status = "succeeded" if obj.get("payment_status") == "paid" else "processing"
        elif event_type in WEBHOOK_TYPE_STATUS:
            status = WEBHOOK_TYPE_STATUS[event_type]
        else:
            raise ValidationError(f"Unsupported webhook event type '{event_type}'", field="type")

        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValidationError("data.object.metadata must be an object", field="metadata")
        if metadata.get("client_id") in (None, ""):
            raise ValidationError("Webhook payload has no client_id in metadata", field="client_id")

        amount = obj.get("amount")
        if amount is None:
            amount = obj.get("amount_total")
        if amount is None:
            raise ValidationError("Webhook payload has no amount", field="amount")

        payment_method = metadata.get("payment_method")
        if not payment_method:
            method_types = obj.get("payment_method_types") or []
            payment_method = method_types[0] if method_types else "unknown"

        event_id = _require(raw, "id")
        occurred_at = raw.get("created")
        if occurred_at is None:
            occurred_at = obj.get("created")
        if occurred_at is None:
            raise ValidationError("Webhook payload has no created timestamp", field="occurred_at")

        event = PaymentEvent(
            event_id=str(event_id).strip(),
            client_id=_coerce_client_id(metadata["client_id"]),
            amount=_coerce_amount(amount),
            currency=_coerce_currency(_require(obj, "currency")),
            status=status,
            occurred_at=parse_occurred_at(occurred_at),
            payment_method=str(payment_method),
            metadata={
                **metadata,
                "provider_event_type": event_type,
                "provider_object_id": obj.get("id"),
            },
        )
        logger.debug(f"Normalized webhook {event_type} {mask_payment_id(event.event_id)} -> {status}")
        return event
