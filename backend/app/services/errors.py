"""
Revenue Intelligence Engine - Error Taxonomy

Every service raises one of these. Routers translate them to HTTP
responses using `status_code`; nothing here is fatal to the process.

- ValidationError:   malformed input (blank statement, confidence out of range)
- PreconditionError: blocked action (save without an active hypothesis)
- NotFoundError:     unknown id
- ConflictError:     re-ingested payment event with a different payload
"""
from typing import Any, Dict, Optional


class RevenueEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 500
    code = "engine_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_detail(self) -> Dict[str, Any]:
        detail = {"code": self.code, "message": self.message}
        if self.field:
            detail["field"] = self.field
        return detail


class ValidationError(RevenueEngineError):
    """Raised on malformed input. Always recoverable by the caller."""

    status_code = 400
    code = "validation_error"


class PreconditionError(RevenueEngineError):
    """Raised when an action is blocked by current state (the edit gate)."""

    status_code = 409
    code = "precondition_failed"


class NotFoundError(RevenueEngineError):
    """Raised when an id does not resolve."""

    status_code = 404
    code = "not_found"


class ConflictError(RevenueEngineError):
    """Raised when an idempotency key is reused with a different payload."""

    status_code = 409
    code = "conflict"
