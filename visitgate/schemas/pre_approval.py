"""Pre-approval Pydantic schemas (request DTOs and response models)."""


from datetime import date, datetime

from pydantic import EmailStr, Field

from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.states import PreApprovalStatus
from visitgate.schemas.common import CamelModel, FlatNumber, PhoneNumber, VisitDate, VisitorName
from visitgate.schemas.visit import TokenOut, VisitOut, VisitorOut

class PreApprovalCreate(CamelModel):
    visitor_name: VisitorName
    visitor_phone: PhoneNumber
    visitor_email: EmailStr | None = None
    purpose: str | None = Field(default=None, max_length=200)
    expected_date: VisitDate | None = None
    expected_time: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=500)
    resident_mobile_number: PhoneNumber | None = None
    flat_number: FlatNumber | None = None

class PreApprovalUpdate(CamelModel):
    visitor_name: VisitorName | None = None
    visitor_phone: PhoneNumber | None = None
    visitor_email: EmailStr | None = None
    purpose: str | None = Field(default=None, max_length=200)
    expected_date: VisitDate | None = None
    expected_time: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=500)
    resident_mobile_number: PhoneNumber | None = None
    flat_number: FlatNumber | None = None

class ApproveRequest(CamelModel):
    notes: str | None = Field(default=None, max_length=500)

class RejectRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=500)

class PreApprovalOut(CamelModel):
    id: str
    building_id: str
    visitor_id: str
    resident_id: str
    visitor_name: str
    visitor_phone: str
    visitor_email: str | None = None
    flat_number: str | None = None
    resident_mobile_number: str | None = None
    purpose: str | None = None
    expected_date: date | None = None
    expected_time: str | None = None
    notes: str | None = None
    status: PreApprovalStatus
    usage_count: int
    max_usage: int
    expires_at: datetime
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    full_identification: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: PreApproval, now: datetime | None = None) -> "PreApprovalOut":
        """Serialize with the effective status (lapsed PENDING shows as EXPIRED)."""
        out = cls.model_validate(record)
        out.status = record.effective_status(now)
        return out

class PreApprovalCreated(CamelModel):
    """Composite returned on submission: everything the create chain produced."""

    pre_approval: PreApprovalOut
    visitor: VisitorOut
    visit: VisitOut
    token: TokenOut
