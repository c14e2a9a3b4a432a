"""Visit, visitor and token Pydantic schemas."""


from datetime import date, datetime

from pydantic import Field

from visitgate.domain.states import ApprovalStatus, VisitStatus, VisitType
from visitgate.schemas.common import CamelModel

class VisitorOut(CamelModel):
    id: str
    building_id: str
    name: str
    phone_number: str
    email: str | None = None
    purpose: str | None = None
    created_at: datetime

class TokenOut(CamelModel):
    """The credential handed to the visitor: signed string plus its QR rendering."""

    visit_id: str
    display: str
    image: str = Field(description="PNG QR code as a data URI")
    issued_at: datetime
    expires_at: datetime

class VisitOut(CamelModel):
    id: str
    building_id: str
    visitor_id: str
    host_id: str
    pre_approval_id: str | None = None
    host_flat_number: str | None = None
    purpose: str | None = None
    visit_type: VisitType
    scheduled_date: date | None = None
    scheduled_time: str | None = None
    status: VisitStatus
    approval_status: ApprovalStatus
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    actual_duration: int | None = None
    checked_in_by: str | None = None
    checked_out_by: str | None = None
    security_notes: str | None = None
    created_at: datetime
    updated_at: datetime

class ScanResult(CamelModel):
    """What security sees after scanning a token, before checking the visitor in."""

    visit: VisitOut
    visitor: VisitorOut | None = None
    token_expires_at: datetime

class CheckInRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=4096)
    security_notes: str | None = Field(default=None, max_length=1000)

class CheckOutRequest(CamelModel):
    security_notes: str | None = Field(default=None, max_length=1000)

class ScanRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=4096)
