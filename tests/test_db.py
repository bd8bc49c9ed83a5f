"""Tests for the SQLite store: schema setup, revision upgrades and error mapping."""
from __future__ import annotations

import sqlite3

import pytest

from common.db import SCHEMA_REVISION, DBManager
from common.errors import Conflict, StoreUnavailable
from server.services import RelayServices

LEGACY_SCHEMA = """
CREATE TABLE IF NOT EXISTS "Users" (
  "id"          INTEGER PRIMARY KEY NOT NULL,
  "name"        TEXT                NOT NULL,
  "is_admin"    BOOLEAN             NOT NULL DEFAULT false,
  "is_banned"   BOOLEAN             NOT NULL DEFAULT false
);
CREATE TABLE IF NOT EXISTS "Guilds" (
  "id"          INTEGER PRIMARY KEY NOT NULL,
  "name"        TEXT                NOT NULL
);
CREATE TABLE IF NOT EXISTS "Channels" (
  "id"          INTEGER PRIMARY KEY NOT NULL,
  "name"        TEXT                NOT NULL,
  "guild"       INTEGER             NOT NULL,
  "webhook"     INTEGER UNIQUE      NOT NULL,
  FOREIGN KEY ("guild") REFERENCES "Guilds"("id") ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS "Connections" (
  "id"          INTEGER PRIMARY KEY NOT NULL,
  "source"      INTEGER             NOT NULL,
  "target"      INTEGER             NOT NULL,
  "user"        INTEGER             NOT NULL,
  "webhook"     INTEGER             NOT NULL,
  FOREIGN KEY ("source")  REFERENCES "Channels"("id") ON DELETE CASCADE,
  FOREIGN KEY ("target")  REFERENCES "Channels"("id") ON DELETE CASCADE
  UNIQUE (source, target, user, webhook)
);
CREATE TABLE IF NOT EXISTS "Mentions" (
  "id"          INTEGER PRIMARY KEY NOT NULL,
  "source"      INTEGER,
  "target"      INTEGER             NOT NULL,
  "mention"     TEXT                NOT NULL,
  "user"        INTEGER             NOT NULL,
  FOREIGN KEY ("source")  REFERENCES "Channels"("id") ON DELETE CASCADE,
  FOREIGN KEY ("target")  REFERENCES "Channels"("id") ON DELETE CASCADE
);
"""


def _tables(path) -> set[str]:
    with sqlite3.connect(path) as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {r[0].lower() for r in rows}


def test_init_schema_creates_tables_and_records_revision(db, db_path):
    assert {"users", "guilds", "channels", "webhooks", "connections", "mentions"} <= _tables(
        db_path
    )
    assert db.get_version() == SCHEMA_REVISION


def test_init_schema_twice_keeps_data(db_path):
    first = DBManager(db_path, init_schema=True)
    first.insert_user(1, "u")
    first.close()

    second = DBManager(db_path, init_schema=True)
    try:
        assert second.get_user(1)["name"] == "u"
    finally:
        second.close()


def test_legacy_revision_is_rebuilt(db_path):
    raw = sqlite3.connect(db_path)
    with raw:
        raw.executescript(LEGACY_SCHEMA)
        raw.execute("INSERT INTO Users VALUES (1, 'u', 1, 0)")
        raw.execute("INSERT INTO Guilds VALUES (1, 'g')")
        raw.execute("INSERT INTO Channels VALUES (10, 'a', 1, 500)")
        raw.execute("INSERT INTO Channels VALUES (20, 'b', 1, 501)")
        raw.execute("INSERT INTO Connections VALUES (1, 10, 20, 1, 501)")
        raw.execute("INSERT INTO Mentions VALUES (1, NULL, 20, '@u', 1)")
    raw.close()

    db = DBManager(db_path, init_schema=True)
    try:
        services = RelayServices.build(db)

        assert services.identity.get_user(1).is_admin
        assert not services.identity.get_guild(1).is_banned
        assert [c.id for c in services.channels.list_channels(1)] == [10, 20]
        assert "webhook" not in db._table_columns("channels")
        assert services.mentions.resolve_mention(20, 1) == "@u"

        hook = services.webhooks.webhook_for_channel(20)
        assert (hook.id, hook.owner_user_id) == (501, 1)
        # nobody connected through 500, so it has no owner to carry over
        assert services.webhooks.webhook_for_channel(10) is None

        conns = services.connections.list_all()
        assert [(c.source_channel_id, c.target_channel_id, c.webhook_id, c.user_id) for c in conns] == [
            (10, 20, 501, 1)
        ]
        assert db.get_version() == SCHEMA_REVISION
    finally:
        db.close()


def test_legacy_connection_through_foreign_webhook_is_dropped(db_path):
    raw = sqlite3.connect(db_path)
    with raw:
        raw.executescript(LEGACY_SCHEMA)
        raw.execute("INSERT INTO Users VALUES (1, 'u', 0, 0)")
        raw.execute("INSERT INTO Guilds VALUES (1, 'g')")
        raw.execute("INSERT INTO Channels VALUES (10, 'a', 1, 500)")
        raw.execute("INSERT INTO Channels VALUES (20, 'b', 1, 501)")
        raw.execute("INSERT INTO Connections VALUES (1, 10, 20, 1, 501)")
        # delivers into 10 through the webhook of 20
        raw.execute("INSERT INTO Connections VALUES (2, 20, 10, 1, 501)")
    raw.close()

    db = DBManager(db_path, init_schema=True)
    try:
        rows = db.list_connections()
        assert [(r["source_channel_id"], r["target_channel_id"]) for r in rows] == [(10, 20)]
    finally:
        db.close()


def test_legacy_webhook_owner_must_be_registered(db_path):
    raw = sqlite3.connect(db_path)
    with raw:
        raw.executescript(LEGACY_SCHEMA)
        raw.execute("INSERT INTO Users VALUES (1, 'u', 0, 0)")
        raw.execute("INSERT INTO Guilds VALUES (1, 'g')")
        raw.execute("INSERT INTO Channels VALUES (10, 'a', 1, 500)")
        raw.execute("INSERT INTO Channels VALUES (20, 'b', 1, 501)")
        raw.execute("INSERT INTO Connections VALUES (1, 10, 20, 7, 501)")
        raw.execute("INSERT INTO Connections VALUES (2, 10, 20, 1, 501)")
    raw.close()

    db = DBManager(db_path, init_schema=True)
    try:
        assert db.get_webhook(501)["owner_user_id"] == 1
        # user 7 was never registered, so its connection dangles
        assert [r["user_id"] for r in db.list_connections()] == [1]
    finally:
        db.close()


def test_unique_violation_maps_to_conflict(db):
    db.insert_user(1, "u")

    with pytest.raises(Conflict):
        db.insert_user(1, "u")


def test_locked_store_reports_store_unavailable(db_path):
    DBManager(db_path, init_schema=True).close()
    blocker = sqlite3.connect(db_path, isolation_level=None)
    blocker.execute("BEGIN IMMEDIATE;")
    impatient = DBManager(db_path, busy_timeout_ms=50)
    try:
        with pytest.raises(StoreUnavailable):
            impatient.insert_user(1, "u")
    finally:
        blocker.execute("ROLLBACK;")
        blocker.close()
        impatient.close()


def test_nested_transaction_failure_leaves_outer_intact(db):
    with db.transaction():
        db.insert_user(1, "u")
        with pytest.raises(Conflict):
            db.insert_user(1, "dup")
        db.insert_user(2, "v")

    assert [r["id"] for r in db.list_users()] == [1, 2]


def test_config_round_trip(db):
    db.set_config("LOG_LEVEL", "DEBUG")

    assert db.get_config("LOG_LEVEL") == "DEBUG"
    assert db.get_all_config() == {"LOG_LEVEL": "DEBUG"}

    db.delete_config("LOG_LEVEL")
    assert db.get_config("LOG_LEVEL", "INFO") == "INFO"
