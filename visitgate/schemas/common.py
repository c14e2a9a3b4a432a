"""Shared schema pieces: the camelCase base and the field types reused across DTOs."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """All API schemas inherit from this to auto-generate camelCase aliases."""

    model_config = {
        "populate_by_name": True,
        "alias_generator": to_camel,
        "from_attributes": True,
        "str_strip_whitespace": True,
    }


def _not_in_past(value: date) -> date:
    if value < datetime.now(timezone.utc).date():
        raise ValueError("Expected date cannot be in the past")
    return value


# "+91 98765 43210", "(020) 555-0100" ... digits with the usual separators
PhoneNumber = Annotated[str, Field(min_length=10, max_length=15, pattern=r"^\+?[\d\s\-()]+$")]
VisitorName = Annotated[str, Field(min_length=1, max_length=100)]
FlatNumber = Annotated[str, Field(max_length=20)]
# Compared against the UTC calendar day
VisitDate = Annotated[date, AfterValidator(_not_in_past)]


class HealthResponse(BaseModel):
    """Health-check response returned by /health."""
    status: str = "ok"
    app: str
    env: str
    notifications: bool
