# tests for the invitation query service: scoped lists and preview
# unit tests for app/services/invitation_queries.py

from datetime import datetime, timezone, timedelta

import pytest

from app.services.invitation_queries import InvitationQueries
from app.services.invitation_store import InvitationStore
from tests.conftest import make_invitation, THERAPIST_ID, OTHER_THERAPIST_ID, PATIENT_ID, PATIENT_2_ID

NOW = datetime.now(timezone.utc)


@pytest.fixture
def queries(mock_db):
    return InvitationQueries(InvitationStore(mock_db))


def _used(code, therapist_id=THERAPIST_ID, patient_id=PATIENT_ID, created_ago=1, used_ago=1):
    created = NOW - timedelta(hours=created_ago)
    return make_invitation(
        code,
        therapist_id=therapist_id,
        created_at=created,
        is_used=True,
        used_at=NOW - timedelta(minutes=used_ago),
        patient_id=patient_id,
    )


class TestListForTherapist:

    async def test_newest_first_any_state(self, queries, mock_db):
        mock_db.invitation_codes._data = [
            make_invitation("10001", created_at=NOW - timedelta(hours=3)),
            _used("10002", created_ago=2),
            make_invitation("10003", created_at=NOW - timedelta(days=4)),  # expired
            make_invitation("10004", created_at=NOW - timedelta(minutes=5)),
        ]

        records = await queries.list_for_therapist(THERAPIST_ID)

        assert [r.code for r in records] == ["10004", "10002", "10001", "10003"]

    async def test_only_owned_records(self, queries, mock_db):
        mock_db.invitation_codes._data = [
            make_invitation("10001"),
            make_invitation("10002", therapist_id=OTHER_THERAPIST_ID),
        ]

        records = await queries.list_for_therapist(THERAPIST_ID)

        assert [r.code for r in records] == ["10001"]
        assert all(r.therapist_id == THERAPIST_ID for r in records)

    async def test_empty(self, queries):
        assert await queries.list_for_therapist(THERAPIST_ID) == []


class TestAcceptedLists:

    async def test_therapist_sees_used_only(self, queries, mock_db):
        mock_db.invitation_codes._data = [
            make_invitation("10001"),
            _used("10002"),
            _used("10003", therapist_id=OTHER_THERAPIST_ID),
        ]

        records = await queries.list_accepted_for_therapist(THERAPIST_ID)

        assert [r.code for r in records] == ["10002"]

    async def test_sorted_by_used_then_created(self, queries, mock_db):
        mock_db.invitation_codes._data = [
            _used("10001", created_ago=10, used_ago=30),
            _used("10002", created_ago=5, used_ago=1),
            _used("10003", created_ago=2, used_ago=30),
        ]

        records = await queries.list_accepted_for_therapist(THERAPIST_ID)

        # 10001 and 10003 share used_at, so newer creation wins the tie
        assert [r.code for r in records] == ["10002", "10003", "10001"]

    async def test_patient_sees_own_redemptions(self, queries, mock_db):
        mock_db.invitation_codes._data = [
            _used("10001", patient_id=PATIENT_ID, used_ago=10),
            _used("10002", patient_id=PATIENT_2_ID),
            _used("10003", therapist_id=OTHER_THERAPIST_ID, patient_id=PATIENT_ID, used_ago=2),
            make_invitation("10004"),
        ]

        records = await queries.list_accepted_for_patient(PATIENT_ID)

        assert [r.code for r in records] == ["10003", "10001"]
        assert all(r.patient_id == PATIENT_ID and r.is_used for r in records)


class TestPreview:

    async def test_pending_code_is_revealed(self, queries, mock_db):
        mock_db.invitation_codes._data = [make_invitation("12345")]
        record = await queries.preview("12345")
        assert record is not None
        assert record.is_used is False

    async def test_used_code_is_masked(self, queries, mock_db):
        mock_db.invitation_codes._data = [_used("12345")]
        assert await queries.preview("12345") is None

    async def test_expired_code_is_masked(self, queries, mock_db):
        mock_db.invitation_codes._data = [make_invitation("12345", created_at=NOW - timedelta(hours=48, seconds=1))]
        assert await queries.preview("12345") is None

    async def test_unknown_code_is_masked(self, queries):
        assert await queries.preview("12345") is None
