# invitation code models: therapist-issued one-time codes for patient linking
# codes are 5-digit, single-use, expire 48 hours after creation

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class InvitationState(str, Enum):
    PENDING = "pending"
    EXPIRED = "expired"
    USED = "used"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """mongodb hands back naive datetimes unless tz_aware is set"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InvitationRecord(BaseModel):
    """persisted invitation document from the invitation_codes collection"""
    id: str
    code: str
    therapist_id: str
    patient_email: str
    patient_first_name: str
    patient_last_name: str = ""
    is_used: bool = False
    created_at: datetime
    expires_at: datetime
    used_at: Optional[datetime] = None
    patient_id: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "InvitationRecord":
        """convert a mongodb document, tolerating missing optional fields"""
        return cls(
            id=str(doc.get("_id", "")),
            code=doc.get("code", ""),
            therapist_id=doc.get("therapist_id", ""),
            patient_email=doc.get("patient_email", ""),
            patient_first_name=doc.get("patient_first_name", ""),
            patient_last_name=doc.get("patient_last_name") or "",
            is_used=bool(doc.get("is_used", False)),
            created_at=_as_utc(doc.get("created_at")) or EPOCH,
            expires_at=_as_utc(doc.get("expires_at")) or EPOCH,
            used_at=_as_utc(doc.get("used_at")),
            patient_id=doc.get("patient_id") or None,
        )

    def state(self, now: datetime) -> InvitationState:
        """derive the lifecycle state; expiry is never written, only computed"""
        if self.is_used:
            return InvitationState.USED
        if now >= self.expires_at:
            return InvitationState.EXPIRED
        return InvitationState.PENDING

    def to_preview(self) -> "InvitationPreview":
        return InvitationPreview(
            id=self.id,
            code=self.code,
            therapistId=self.therapist_id,
            patientEmail=self.patient_email,
            patientFirstName=self.patient_first_name,
            patientLastName=self.patient_last_name,
            isUsed=self.is_used,
            createdAt=_iso(self.created_at),
            expiresAt=_iso(self.expires_at),
        )

    def to_response(self) -> "InvitationResponse":
        return InvitationResponse(
            **self.to_preview().model_dump(),
            usedAt=_iso(self.used_at),
            patientId=self.patient_id,
        )


# responses

class InvitationPreview(BaseModel):
    """sanitized invitation shown to an unauthenticated caller holding the code"""
    id: str
    code: str
    therapist_id: str = Field(..., alias="therapistId")
    patient_email: str = Field(..., alias="patientEmail")
    patient_first_name: str = Field(..., alias="patientFirstName")
    patient_last_name: str = Field("", alias="patientLastName")
    is_used: bool = Field(False, alias="isUsed")
    created_at: str = Field(..., alias="createdAt")
    expires_at: str = Field(..., alias="expiresAt")

    model_config = {"populate_by_name": True}


class InvitationResponse(InvitationPreview):
    used_at: Optional[str] = Field(None, alias="usedAt")
    patient_id: Optional[str] = Field(None, alias="patientId")

    model_config = {"populate_by_name": True}


class InvitationCreateResponse(BaseModel):
    success: bool = True
    invitation_id: str = Field(..., alias="invitationId")
    email_sent: bool = Field(False, alias="emailSent")
    invitation: InvitationResponse

    model_config = {"populate_by_name": True}


class InvitationResult(BaseModel):
    """single lookup result; invitation is null when the code cannot be used"""
    invitation: Optional[InvitationResponse] = None


class InvitationPreviewResult(BaseModel):
    invitation: Optional[InvitationPreview] = None


class InvitationListResponse(BaseModel):
    invitations: list[InvitationResponse] = Field(default_factory=list)


class DeleteInvitationResponse(BaseModel):
    success: bool = True


# requests; fields are optional so services can report the exact missing field

class InvitationCreate(BaseModel):
    therapist_id: Optional[str] = Field(None, alias="therapistId")
    patient_email: Optional[str] = Field(None, alias="patientEmail")
    patient_first_name: Optional[str] = Field(None, alias="patientFirstName")
    patient_last_name: Optional[str] = Field(None, alias="patientLastName")

    model_config = {"populate_by_name": True}


class InvitationCodeRequest(BaseModel):
    code: Optional[str] = None


class TherapistScopeRequest(BaseModel):
    therapist_id: Optional[str] = Field(None, alias="therapistId")

    model_config = {"populate_by_name": True}


class PatientScopeRequest(BaseModel):
    patient_id: Optional[str] = Field(None, alias="patientId")

    model_config = {"populate_by_name": True}


class InvitationDeleteRequest(BaseModel):
    invitation_id: Optional[str] = Field(None, alias="invitationId")

    model_config = {"populate_by_name": True}
