"""
Error taxonomy for gear operations.

Every rejection raised by the gear service is a ``GearError``; the HTTP layer
turns it into a JSON response with the error's status code.
"""
from typing import Any, Dict


class GearError(Exception):
    status_code = 400
    code = "gear_error"

    def __init__(self, detail: str, **bounds: Any):
        super().__init__(detail)
        self.detail = detail
        self.bounds: Dict[str, Any] = bounds

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        payload.update(self.bounds)
        return payload


class NotFoundError(GearError):
    status_code = 404
    code = "not_found"


class ValidationError(GearError):
    status_code = 400
    code = "validation_error"


class ForbiddenError(GearError):
    status_code = 403
    code = "forbidden"


class TemporalViolationError(GearError):
    """The trip has already started; assignments are frozen."""
    status_code = 400
    code = "trip_started"


class ConflictError(GearError):
    """Would break a capacity or uniqueness rule.

    Carries the corrective bound (``available``, ``total_assigned``) so the
    caller can offer a valid value.
    """
    status_code = 409
    code = "conflict"

    @property
    def available(self):
        return self.bounds.get("available")
