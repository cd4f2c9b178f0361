"""
Tests for the GET /logs endpoint.

Tests cover:
- Guest display name for entries without an actor
- Actor username resolved for entries with one
- Tail capped at 50, newest first
- Viewing the log is not audited
- Storage and decoding failures
"""

import re
from datetime import datetime, timedelta

from sqlalchemy import insert

from chat_viewer import models
from chat_viewer.errors import ResultDecodingFailed, StorageUnavailable
from chat_viewer.main import app, get_store
from chat_viewer.storage import GUEST_DISPLAY_NAME, Store

from conftest import audit_rows


BASE_TIME = datetime(2025, 1, 15, 10, 0, 0)


def add_audit_rows(db, count: int, user_id=None):
    """Insert count audit rows, one second apart, oldest first."""
    db.execute(
        insert(models.audit_logs),
        [
            {
                "action": "view_messages",
                "user_id": user_id,
                "target_type": "chat",
                "target_id": i,
                "created_at": BASE_TIME + timedelta(seconds=i),
            }
            for i in range(count)
        ],
    )
    db.commit()


def rendered_entries(html: str) -> list[str]:
    return re.findall(r'<tr class="log-entry">', html)


class FailingStore:
    """Store whose audit tail query fails with the given error."""

    def __init__(self, error):
        self.error = error

    def list_recent_audit_entries(self, limit=50):
        raise self.error


class TestLogsRendering:
    """Rendering of the audit tail."""

    def test_empty_log(self, client):
        response = client.get("/logs")

        assert response.status_code == 200
        assert rendered_entries(response.text) == []

    def test_anonymous_entry_shows_guest(self, client, db):
        """An audit row with a null user_id is shown as Гість."""
        add_audit_rows(db, 1)

        response = client.get("/logs")

        assert response.status_code == 200
        assert "Гість" in response.text

    def test_actor_username_shown(self, client, db):
        add_audit_rows(db, 1, user_id=2)

        response = client.get("/logs")

        assert "bob" in response.text
        assert "Гість" not in response.text

    def test_entries_written_by_app_visible(self, client):
        client.post(
            "/send",
            data={"sender_id": "1", "chat_id": "1", "content": "hi"},
            follow_redirects=False,
        )
        client.get("/chat/1")

        text = client.get("/logs").text

        assert "add_message" in text
        assert "view_messages" in text
        assert "alice" in text
        assert "Гість" in text

    def test_viewing_logs_not_audited(self, client, db):
        add_audit_rows(db, 3)

        client.get("/logs")
        client.get("/logs")

        assert len(audit_rows()) == 3


class TestLogsCap:
    """The tail holds at most 50 entries, newest first."""

    def test_log_cap(self, client, db):
        """With 120 audit rows present, exactly 50 are rendered."""
        add_audit_rows(db, 120)

        response = client.get("/logs")

        assert response.status_code == 200
        assert len(rendered_entries(response.text)) == 50

    def test_newest_first(self, client, db):
        add_audit_rows(db, 120)

        entries = Store(db).list_recent_audit_entries(limit=50)

        assert len(entries) == 50
        created = [entry.created_at for entry in entries]
        assert created == sorted(created, reverse=True)
        assert len(set(created)) == 50
        assert entries[0].target_id == 119
        assert entries[-1].target_id == 70

    def test_rendered_newest_first(self, client, db):
        add_audit_rows(db, 60)

        text = client.get("/logs").text

        times = re.findall(r"<td>(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})</td>", text)
        assert len(times) == 50
        assert times == sorted(times, reverse=True)

    def test_guest_constant(self):
        assert GUEST_DISPLAY_NAME == "Гість"


class TestLogsErrors:
    """Store failures map to plain-text 500 responses."""

    def test_storage_unavailable(self, client):
        app.dependency_overrides[get_store] = lambda: FailingStore(StorageUnavailable("down"))

        response = client.get("/logs")

        assert response.status_code == 500
        assert response.text == "Log error"

    def test_decoding_failed(self, client):
        app.dependency_overrides[get_store] = lambda: FailingStore(ResultDecodingFailed("bad row"))

        response = client.get("/logs")

        assert response.status_code == 500
        assert response.text == "Log scan error"
