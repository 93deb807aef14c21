"""
Pydantic schemas for request validation (Http/Requests).
"""
from datetime import date

from pydantic import BaseModel, ValidationError, field_validator

from app.models import AdLevel, ShipmentAction

# one bucket per day; a longer range is refused rather than zero-filled
MAX_RANGE_DAYS = 366


class DateRangeQuery(BaseModel):
    """Inclusive IST calendar range for performance reports."""
    since: date
    until: date

    @field_validator("until")
    @classmethod
    def _check_range(cls, v, info):
        """until must not be before since, and the range is bounded."""
        since = info.data.get("since")
        if since and v < since:
            raise ValueError("until must be on or after since")
        if since and (v - since).days + 1 > MAX_RANGE_DAYS:
            raise ValueError(f"range must not exceed {MAX_RANGE_DAYS} days")
        return v


class PerformanceQuery(DateRangeQuery):
    level: AdLevel = AdLevel.AD


class StatusUpdateRequest(BaseModel):
    newStatus: ShipmentAction


def validation_detail(exc: ValidationError) -> str:
    """First error message of a ValidationError, for a 400 detail."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc") or ())
    message = str(first.get("msg") or "invalid value")
    return f"{field}: {message}" if field else message
