# invitation store: persistence and state transitions for invitation codes
#
# states (derived, see InvitationRecord.state):
#   pending  -> is_used false and now < expires_at
#   expired  -> is_used false and now >= expires_at
#   used     -> is_used true, terminal
#
# transitions:
#   create   -> pending
#   redeem   -> pending to used, inside a session transaction
#   delete   -> pending/expired removed by the owning therapist

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING

from app.errors import FailedPrecondition, NotFound, PermissionDenied
from app.models.invitation import InvitationRecord, InvitationState
from app.services.db import Database

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class InvitationStore:
    """invitation_codes collection with the redemption state machine"""

    def __init__(self, db: Database, ttl_hours: int = 48, clock: Clock = utcnow):
        self.db = db
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock

    @property
    def collection(self):
        return self.db.invitation_codes

    async def find_by_code(self, code: str) -> Optional[InvitationRecord]:
        """latest record carrying this code.

        a code is only reissued once every earlier record with it has
        expired unused, so the newest record is the only one that can be
        pending.
        """
        doc = await self.collection.find_one({"code": code}, sort=[("created_at", DESCENDING)])
        return InvitationRecord.from_doc(doc) if doc else None

    async def code_in_use(self, code: str) -> bool:
        """true when a used or still-pending record carries the code"""
        now = self.clock()
        doc = await self.collection.find_one({
            "code": code,
            "$or": [{"is_used": True}, {"expires_at": {"$gt": now}}],
        })
        return doc is not None

    async def create(
        self,
        code: str,
        therapist_id: str,
        patient_email: str,
        patient_first_name: str,
        patient_last_name: str = "",
    ) -> InvitationRecord:
        now = self.clock()
        oid = ObjectId()
        doc = {
            "_id": oid,
            "code": code,
            "therapist_id": therapist_id,
            "patient_email": patient_email,
            "patient_first_name": patient_first_name,
            "patient_last_name": patient_last_name or "",
            "is_used": False,
            "created_at": now,
            "expires_at": now + self.ttl,
            "used_at": None,
            "patient_id": None,
        }
        await self.collection.insert_one(doc)
        logger.info(f"Invitation {oid} created by therapist {therapist_id}")
        return InvitationRecord.from_doc(doc)

    async def redeem(self, code: str, patient_id: str) -> Optional[InvitationRecord]:
        """consume a pending code exactly once.

        returns the used record, or None when the code is unknown, used,
        expired or was consumed by a concurrent redemption.
        """
        candidate = await self.find_by_code(code)
        if candidate is None:
            return None
        oid = ObjectId(candidate.id)

        async def consume(session) -> Optional[InvitationRecord]:
            doc = await self.collection.find_one({"_id": oid}, session=session)
            if doc is None:
                return None

            record = InvitationRecord.from_doc(doc)
            now = self.clock()
            if record.state(now) is not InvitationState.PENDING:
                return None

            result = await self.collection.update_one(
                {"_id": oid, "is_used": False},
                {"$set": {"is_used": True, "used_at": now, "patient_id": patient_id}},
                session=session,
            )
            if result.modified_count != 1:
                return None
            return record.model_copy(update={"is_used": True, "used_at": now, "patient_id": patient_id})

        redeemed = await self.db.run_transaction(consume)
        if redeemed is not None:
            logger.info(f"Invitation {redeemed.id} redeemed by patient {patient_id}")
        return redeemed

    async def delete(self, invitation_id: str, therapist_id: str) -> None:
        """remove an unused invitation owned by the therapist"""
        oid = _object_id(invitation_id)
        doc = await self.collection.find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFound("Invitation not found")
        if doc.get("therapist_id") != therapist_id:
            raise PermissionDenied("Cannot delete this invitation")
        if doc.get("is_used"):
            raise FailedPrecondition("Invitation already used")

        # is_used in the filter keeps a concurrent redemption from being erased
        result = await self.collection.delete_one({"_id": oid, "therapist_id": therapist_id, "is_used": False})
        if result.deleted_count != 1:
            raise FailedPrecondition("Invitation already used")
        logger.info(f"Invitation {invitation_id} deleted by therapist {therapist_id}")

    async def discard(self, invitation_id: str) -> None:
        """compensating delete after a failed creation"""
        oid = _object_id(invitation_id)
        if oid is not None:
            await self.collection.delete_one({"_id": oid, "is_used": False})

    async def record_error(
        self,
        therapist_id: str,
        patient_email: str,
        message: str,
        error: BaseException,
        response_body: Any = None,
        response_status: Any = None,
    ) -> None:
        """persist a diagnostic record for operators"""
        await self.db.invitation_errors.insert_one({
            "therapist_id": therapist_id,
            "patient_email": patient_email,
            "message": message,
            "raw_message": str(error) or None,
            "response_body": response_body,
            "response_status": response_status,
            "created_at": self.clock(),
        })
