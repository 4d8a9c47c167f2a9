"""Galleries and e-mail campaigns."""
from datetime import datetime, timedelta, timezone

import pytest

from studiocrm.db import campaigns_crud, clients_crud, galleries_crud, leads_crud
from studiocrm.db.errors import CrmError
from studiocrm.db.models import utcnow


class TestGalleries:
    def test_slugs_are_unique(self, db):
        first = galleries_crud.create_gallery(db, {"title": "Hochzeit Müller"})
        second = galleries_crud.create_gallery(db, {"title": "Hochzeit Müller"})
        assert first.slug == "hochzeit-mueller"
        assert second.slug == "hochzeit-mueller-2"

    def test_password_is_hashed_and_hidden(self, db):
        g = galleries_crud.create_gallery(db, {"title": "Private", "password": "letmein"})
        assert g.password_hash and g.password_hash != "letmein"
        out = galleries_crud.to_public_dict(g, detail=True)
        assert out["is_password_protected"] is True
        assert "password_hash" not in out and "password" not in out

    def test_access_check(self, db):
        galleries_crud.create_gallery(db, {"title": "Private", "password": "letmein"})
        assert galleries_crud.check_access(db, "private", "letmein").title == "Private"
        with pytest.raises(CrmError, match="Invalid gallery password"):
            galleries_crud.check_access(db, "private", "wrong")

    def test_empty_password_removes_protection(self, db):
        g = galleries_crud.create_gallery(db, {"title": "Private", "password": "letmein"})
        galleries_crud.update_gallery(db, g.id, {"password": ""})
        assert galleries_crud.check_access(db, "private", None).id == g.id

    def test_hidden_gallery(self, db):
        g = galleries_crud.create_gallery(db, {"title": "Draft"})
        galleries_crud.update_gallery(db, g.id, {"is_public": False})
        with pytest.raises(CrmError, match="not public"):
            galleries_crud.check_access(db, "draft", None)

    def test_first_image_becomes_cover(self, db):
        g = galleries_crud.create_gallery(db, {"title": "Newborn"})
        galleries_crud.add_image(db, g.id, filename="a.jpg", url="https://cdn.example.com/a.jpg")
        galleries_crud.add_image(db, g.id, filename="b.jpg", url="https://cdn.example.com/b.jpg")
        db.refresh(g)
        assert g.cover_image == "https://cdn.example.com/a.jpg"
        assert [i.sort_order for i in g.images] == [0, 1]


class TestCampaigns:
    def _campaign(self, db, **kw):
        data = {"name": "Spring", "subject": "Spring offers", "content": "<p>Hi</p>", **kw}
        return campaigns_crud.create_campaign(db, data)

    def test_recipients_from_segments(self, db, client_row):
        leads_crud.create_lead(db, {"name": "Lead", "email": "lead@example.com"})
        assert self._campaign(db).recipient_count == 1
        assert self._campaign(db, segments=["all_clients", "leads"]).recipient_count == 2
        assert self._campaign(db, segments=["vip"]).recipient_count == 0

    def test_unknown_segment(self, db):
        with pytest.raises(CrmError, match="Unknown segments"):
            self._campaign(db, segments=["martians"])

    def test_schedule_and_send(self, db, client_row):
        c = self._campaign(db)
        campaigns_crud.schedule_campaign(db, c.id, utcnow() + timedelta(days=1))
        assert c.status == "scheduled"
        campaigns_crud.mark_sent(db, c.id)
        assert c.status == "sent"
        assert c.sent_count == 1
        with pytest.raises(CrmError):
            campaigns_crud.update_campaign(db, c.id, {"subject": "Too late"})

    def test_schedule_in_past(self, db, client_row):
        c = self._campaign(db)
        with pytest.raises(CrmError, match="future"):
            campaigns_crud.schedule_campaign(db, c.id, utcnow() - timedelta(minutes=5))

    def test_aware_schedule_converted_to_utc(self, db, client_row):
        c = self._campaign(db)
        plus_five = timezone(timedelta(hours=5))
        one_hour_ago = (utcnow() - timedelta(hours=1)).replace(tzinfo=timezone.utc).astimezone(plus_five)
        with pytest.raises(CrmError, match="future"):
            campaigns_crud.schedule_campaign(db, c.id, one_hour_ago)

        when = datetime(2031, 6, 1, 9, 0, tzinfo=timezone(timedelta(hours=2)))
        campaigns_crud.schedule_campaign(db, c.id, when)
        assert c.scheduled_at == datetime(2031, 6, 1, 7, 0)

    def test_schedule_without_recipients(self, db):
        c = self._campaign(db)
        with pytest.raises(CrmError, match="no recipients"):
            campaigns_crud.schedule_campaign(db, c.id, utcnow() + timedelta(days=1))

    def test_only_drafts_deleted(self, db, client_row):
        c = self._campaign(db)
        campaigns_crud.schedule_campaign(db, c.id, utcnow() + timedelta(days=1))
        with pytest.raises(CrmError):
            campaigns_crud.delete_campaign(db, c.id)
        campaigns_crud.pause_campaign(db, c.id)
        assert c.status == "paused"

    def test_inactive_clients_excluded_from_all(self, db, client_row):
        clients_crud.update_client(db, client_row.id, {"status": "inactive"})
        assert self._campaign(db).recipient_count == 0
        assert self._campaign(db, segments=["inactive"]).recipient_count == 1
