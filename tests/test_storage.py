"""
Tests for the persistence store and contact/download repository functions.

Tests cover:
- Idempotent schema initialization
- execute / query_one / query_all contracts
- StorageError diagnostics
- Health check and close
- Recent contacts ordering, limit and preview
- Downloads grouped by day
"""

from datetime import timedelta

import pytest

from app.errors import StorageError
from app.storage import (
    Store,
    count_contacts,
    count_downloads,
    create_contact,
    delete_contact,
    get_downloads_by_date,
    get_recent_contacts,
    log_download,
    mark_contact_read,
)
from app.utils import format_ts, utc_now


class TestSchema:

    def test_init_schema_is_idempotent(self, store):
        store.init_schema()
        store.init_schema()

        rows = store.query_all("SELECT id FROM site_stats")
        assert rows == [{"id": 1}]

        tables = store.query_all(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        assert [t["name"] for t in tables] == [
            "admin_sessions", "contacts", "download_logs", "site_stats"
        ]

    def test_indexes_created_once(self, store):
        store.init_schema()

        indexes = store.query_all(
            "SELECT name FROM sqlite_master WHERE type='index' "
            "AND name LIKE 'idx_%' ORDER BY name"
        )
        assert [i["name"] for i in indexes] == [
            "idx_contacts_created",
            "idx_contacts_status",
            "idx_downloads_date",
            "idx_sessions_active",
        ]

    def test_init_schema_keeps_existing_counters(self, store):
        store.execute("UPDATE site_stats SET page_views = 7 WHERE id = 1")

        store.init_schema()

        row = store.query_one("SELECT page_views FROM site_stats WHERE id = 1")
        assert row["page_views"] == 7

    def test_init_schema_fails_on_unopenable_storage(self, tmp_path):
        bad = Store(f"sqlite:///{tmp_path / 'missing-dir' / 'db.sqlite'}")
        with pytest.raises(StorageError):
            bad.init_schema()


class TestQueries:

    def test_execute_returns_insert_id_and_rowcount(self, store):
        result = store.execute(
            "INSERT INTO download_logs (downloaded_at, file_name) VALUES (:ts, :name)",
            {"ts": format_ts(utc_now()), "name": "resume.pdf"},
        )
        assert result.last_insert_id == 1
        assert result.rows_affected == 1

    def test_query_one_returns_none_when_absent(self, store):
        assert store.query_one("SELECT * FROM contacts WHERE id = :id", {"id": 42}) is None

    def test_query_all_returns_empty_list(self, store):
        assert store.query_all("SELECT * FROM contacts") == []

    def test_storage_error_carries_statement_and_params(self, store):
        statement = "INSERT INTO no_such_table (x) VALUES (:x)"
        with pytest.raises(StorageError) as exc_info:
            store.execute(statement, {"x": 1})

        assert exc_info.value.statement == statement
        assert exc_info.value.params == {"x": 1}

    def test_failed_statement_leaves_no_partial_write(self, store):
        with pytest.raises(StorageError):
            store.execute(
                "INSERT INTO contacts (name, email, message, created_at) "
                "VALUES (:name, :email, NULL, :ts)",
                {"name": "Ada", "email": "ada@example.com", "ts": format_ts(utc_now())},
            )
        assert count_contacts(store) == 0


class TestHealthAndClose:

    def test_health_check_connected(self, store):
        health = store.health_check()

        assert health["status"] == "connected"
        assert health["table_count"] == 4
        assert health["timestamp"].endswith("Z")

    def test_health_check_reports_error_instead_of_raising(self, store):
        store.close()

        health = store.health_check()

        assert health["status"] == "error"
        assert "error" in health

    def test_close_is_idempotent(self, store):
        store.close()
        store.close()

    def test_queries_after_close_raise_storage_error(self, store):
        store.close()
        with pytest.raises(StorageError):
            store.query_all("SELECT * FROM contacts")


class TestContacts:

    def test_create_contact_defaults_to_unread(self, store):
        contact_id = create_contact(store, "Ada", "ada@example.com", "hi", "10.0.0.1", "pytest")

        row = store.query_one("SELECT * FROM contacts WHERE id = :id", {"id": contact_id})
        assert row["status"] == "unread"
        assert row["ip_address"] == "10.0.0.1"
        assert row["user_agent"] == "pytest"

    def test_recent_contacts_respects_limit_and_order(self, store):
        ids = [create_contact(store, f"User {i}", "u@example.com", f"message {i}") for i in range(5)]

        recent = get_recent_contacts(store, limit=3)

        assert len(recent) == 3
        assert [r["id"] for r in recent] == list(reversed(ids))[:3]
        created = [r["created_at"] for r in recent]
        assert created == sorted(created, reverse=True)

    def test_recent_contacts_preview_truncates_long_messages(self, store):
        long_message = "x" * 150
        create_contact(store, "Ada", "ada@example.com", long_message)
        create_contact(store, "Bob", "bob@example.com", "short")

        by_name = {r["name"]: r for r in get_recent_contacts(store)}

        assert by_name["Ada"]["preview"] == "x" * 100 + "..."
        assert by_name["Ada"]["message"] == long_message
        assert by_name["Bob"]["preview"] == "short"

    def test_preview_not_truncated_at_exactly_100_chars(self, store):
        create_contact(store, "Ada", "ada@example.com", "y" * 100)

        [row] = get_recent_contacts(store)
        assert row["preview"] == "y" * 100

    def test_mark_read(self, store):
        contact_id = create_contact(store, "Ada", "ada@example.com", "hi")

        assert mark_contact_read(store, contact_id) is True
        assert count_contacts(store, status="unread") == 0
        assert mark_contact_read(store, contact_id + 100) is False

    def test_delete_existing_reduces_count_by_one(self, store):
        first = create_contact(store, "Ada", "ada@example.com", "hi")
        create_contact(store, "Bob", "bob@example.com", "hello")

        assert delete_contact(store, first) is True
        assert count_contacts(store) == 1

    def test_delete_missing_leaves_count_unchanged(self, store):
        create_contact(store, "Ada", "ada@example.com", "hi")

        assert delete_contact(store, 999) is False
        assert count_contacts(store) == 1


class TestDownloads:

    def test_log_download_default_file_name(self, store):
        download_id = log_download(store, "10.0.0.1", "pytest")

        row = store.query_one("SELECT * FROM download_logs WHERE id = :id", {"id": download_id})
        assert row["file_name"] == "resume.pdf"
        assert count_downloads(store) == 1

    def test_downloads_by_date_groups_recent_days(self, store):
        log_download(store)
        log_download(store)
        store.execute(
            "INSERT INTO download_logs (downloaded_at, file_name) VALUES (:ts, 'resume.pdf')",
            {"ts": format_ts(utc_now() - timedelta(days=2))},
        )
        store.execute(
            "INSERT INTO download_logs (downloaded_at, file_name) VALUES (:ts, 'resume.pdf')",
            {"ts": format_ts(utc_now() - timedelta(days=45))},
        )

        by_date = get_downloads_by_date(store)

        today = format_ts(utc_now())[:10]
        two_days_ago = format_ts(utc_now() - timedelta(days=2))[:10]
        assert by_date == [
            {"date": today, "count": 2},
            {"date": two_days_ago, "count": 1},
        ]
