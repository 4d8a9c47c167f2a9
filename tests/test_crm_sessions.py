"""Photo session scheduling."""
from datetime import timedelta, timezone

import pytest

from studiocrm.db import sessions_crud
from studiocrm.db.errors import CrmError


def _book(db, start, minutes=60, **kw):
    return sessions_crud.create_session(
        db, {"title": "Shoot", "session_type": "family", "start_time": start, "duration_minutes": minutes, **kw}
    )


class TestCreate:
    def test_duration_sets_end(self, db, tomorrow_at):
        row = _book(db, tomorrow_at(10), 90)
        assert row.end_time - row.start_time == timedelta(minutes=90)
        assert row.status == "scheduled"

    def test_end_before_start(self, db, tomorrow_at):
        with pytest.raises(CrmError, match="after"):
            sessions_crud.create_session(
                db,
                {"title": "x", "session_type": "family", "start_time": tomorrow_at(10), "end_time": tomorrow_at(9)},
            )

    def test_unknown_type(self, db, tomorrow_at):
        with pytest.raises(CrmError):
            _book(db, tomorrow_at(10), session_type="skydiving")

    def test_overlap_rejected(self, db, tomorrow_at):
        _book(db, tomorrow_at(10), 60)
        with pytest.raises(CrmError, match="conflicts"):
            _book(db, tomorrow_at(10, 30), 60)

    def test_touching_sessions_allowed(self, db, tomorrow_at):
        _book(db, tomorrow_at(10), 60)
        _book(db, tomorrow_at(11), 60)

    def test_cancelled_sessions_free_the_slot(self, db, tomorrow_at):
        first = _book(db, tomorrow_at(10), 60)
        sessions_crud.cancel_session(db, first.id, "client ill")
        _book(db, tomorrow_at(10), 60)
        assert "client ill" in first.notes

    def test_aware_start_stored_as_utc(self, db, tomorrow_at):
        local = tomorrow_at(12).replace(tzinfo=timezone(timedelta(hours=2)))
        row = _book(db, local, 60)
        assert row.start_time == tomorrow_at(10)
        assert row.end_time == tomorrow_at(11)

    def test_aware_overlap_compares_instants(self, db, tomorrow_at):
        _book(db, tomorrow_at(10), 60)
        with pytest.raises(CrmError, match="conflicts"):
            _book(db, tomorrow_at(12, 30).replace(tzinfo=timezone(timedelta(hours=2))), 60)

    def test_updates_client_last_session(self, db, client_row, tomorrow_at):
        _book(db, tomorrow_at(14), client_id=client_row.id)
        db.refresh(client_row)
        assert client_row.last_session_date == tomorrow_at(14)


class TestUpdate:
    def test_reschedule_keeps_length(self, db, tomorrow_at):
        row = _book(db, tomorrow_at(10), 90)
        sessions_crud.update_session(db, row.id, {"start_time": tomorrow_at(13)})
        assert row.end_time == tomorrow_at(14, 30)

    def test_reschedule_into_conflict(self, db, tomorrow_at):
        _book(db, tomorrow_at(10), 60)
        other = _book(db, tomorrow_at(12), 60)
        with pytest.raises(CrmError):
            sessions_crud.update_session(db, other.id, {"start_time": tomorrow_at(10, 30)})

    def test_reactivating_into_rebooked_slot(self, db, tomorrow_at):
        first = _book(db, tomorrow_at(10), 60)
        sessions_crud.cancel_session(db, first.id)
        _book(db, tomorrow_at(10), 60)
        with pytest.raises(CrmError, match="conflicts"):
            sessions_crud.update_session(db, first.id, {"status": "scheduled"})

    def test_reactivating_into_free_slot(self, db, tomorrow_at):
        first = _book(db, tomorrow_at(10), 60)
        sessions_crud.cancel_session(db, first.id)
        sessions_crud.update_session(db, first.id, {"status": "confirmed"})
        assert first.status == "confirmed"

    def test_completed_cannot_be_cancelled(self, db, tomorrow_at):
        row = _book(db, tomorrow_at(10))
        sessions_crud.update_session(db, row.id, {"status": "completed"})
        with pytest.raises(CrmError):
            sessions_crud.cancel_session(db, row.id)


class TestSlots:
    def test_booked_time_excluded(self, db, tomorrow_at):
        _book(db, tomorrow_at(10), 60)
        slots = sessions_crud.available_slots(db, tomorrow_at(0).date(), duration_minutes=60)
        starts = [s["start_time"] for s in slots]
        assert tomorrow_at(9).isoformat() in starts
        assert tomorrow_at(9, 30).isoformat() not in starts
        assert tomorrow_at(10).isoformat() not in starts
        assert tomorrow_at(11).isoformat() in starts
        # the last slot must end by closing time
        assert slots[-1]["end_time"] == tomorrow_at(18).isoformat()

    def test_bad_duration(self, db, tomorrow_at):
        with pytest.raises(CrmError):
            sessions_crud.available_slots(db, tomorrow_at(0).date(), duration_minutes=0)
