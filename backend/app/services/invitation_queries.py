# invitation query service: role-scoped read paths over invitation_codes
# every predicate carries the caller's own identity

import logging
from typing import Optional

from pymongo import DESCENDING

from app.models.invitation import InvitationRecord, InvitationState
from app.services.invitation_store import InvitationStore

logger = logging.getLogger(__name__)

ACCEPTED_SORT = [("used_at", DESCENDING), ("created_at", DESCENDING)]


class InvitationQueries:
    def __init__(self, store: InvitationStore):
        self.store = store

    async def _find(self, query: dict, sort: list) -> list[InvitationRecord]:
        cursor = self.store.collection.find(query).sort(sort)
        records = []
        async for doc in cursor:
            records.append(InvitationRecord.from_doc(doc))
        return records

    async def list_for_therapist(self, therapist_id: str) -> list[InvitationRecord]:
        """all invitations owned by the therapist, newest first"""
        return await self._find({"therapist_id": therapist_id}, [("created_at", DESCENDING)])

    async def list_accepted_for_therapist(self, therapist_id: str) -> list[InvitationRecord]:
        """used invitations owned by the therapist, the completed connections view"""
        return await self._find({"therapist_id": therapist_id, "is_used": True}, ACCEPTED_SORT)

    async def list_accepted_for_patient(self, patient_id: str) -> list[InvitationRecord]:
        return await self._find({"patient_id": patient_id, "is_used": True}, ACCEPTED_SORT)

    async def preview(self, code: str) -> Optional[InvitationRecord]:
        """pending record for the code, or None for unknown, used and expired alike"""
        record = await self.store.find_by_code(code)
        if record is None or record.state(self.store.clock()) is not InvitationState.PENDING:
            return None
        return record
