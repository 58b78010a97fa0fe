# conversation summary store: append-only ai companion summaries
# written by the patient, readable by the linked therapist when sharing is on

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId

from app.errors import FailedPrecondition, InvalidArgument, PermissionDenied
from app.models.ai import TranscriptPart
from app.models.user import PatientProfile
from app.services.db import Database

logger = logging.getLogger(__name__)


def sanitize_transcript(raw: Optional[list[Any]]) -> list[dict[str, str]]:
    """keep {role, text} pairs only and drop parts without text"""
    parts = []
    for part in raw or []:
        if not isinstance(part, dict):
            continue
        role = part.get("role")
        text = part.get("text")
        cleaned = TranscriptPart(
            role=role if isinstance(role, str) else "",
            text=text if isinstance(text, str) else "",
        )
        if cleaned.text:
            parts.append(cleaned.model_dump())
    return parts


async def _load_profile(db: Database, patient_id: str) -> Optional[PatientProfile]:
    lookups: list[Any] = [patient_id]
    try:
        lookups.insert(0, ObjectId(patient_id))
    except (InvalidId, TypeError):
        pass
    doc = await db.users.find_one({"_id": {"$in": lookups}})
    return PatientProfile.from_doc(doc) if doc else None


async def save_conversation_summary(
    db: Database,
    patient_id: str,
    therapist_id: Optional[str],
    summary: Optional[str],
    transcript: Optional[list[Any]],
) -> str:
    therapist_id = therapist_id.strip() if isinstance(therapist_id, str) else ""
    summary = summary.strip() if isinstance(summary, str) else ""
    if not therapist_id:
        raise InvalidArgument("therapistId is required")
    if not summary:
        raise InvalidArgument("summary is required")

    profile = await _load_profile(db, patient_id)
    if profile is None:
        raise FailedPrecondition("User profile not found")
    if not profile.therapist_id or profile.therapist_id != therapist_id:
        raise PermissionDenied("You are not linked to this therapist.")

    doc = {
        "patient_id": patient_id,
        "therapist_id": therapist_id,
        "summary": summary,
        "transcript": sanitize_transcript(transcript),
        "share_with_therapist": profile.share_summaries_with_therapist,
        "created_at": datetime.now(timezone.utc),
    }
    result = await db.ai_conversation_summaries.insert_one(doc)
    logger.info(f"Conversation summary saved for patient {patient_id}")
    return str(result.inserted_id)
