# caller identity and the patient profile fields this service reads
# identities come from the external identity provider's bearer token

from typing import Optional
from pydantic import BaseModel, Field


class AuthContext(BaseModel):
    """authenticated caller, threaded explicitly through every operation"""
    uid: str = Field(..., min_length=1)
    role: Optional[str] = None
    email: Optional[str] = None


class PatientProfile(BaseModel):
    """subset of a users document needed to validate therapist links"""
    id: str
    therapist_id: str = ""
    share_summaries_with_therapist: bool = True

    @classmethod
    def from_doc(cls, doc: dict) -> "PatientProfile":
        onboarding = doc.get("patient_onboarding_data") or {}
        share = onboarding.get("share_summaries_with_therapist")
        return cls(
            id=str(doc.get("_id", "")),
            therapist_id=doc.get("therapist_id") or "",
            # default true when the patient never answered
            share_summaries_with_therapist=share if isinstance(share, bool) else True,
        )
