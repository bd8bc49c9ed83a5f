"""Tests for snapshot export and import."""
from __future__ import annotations

import pytest

from common.db import DBManager
from common.errors import Conflict, WebhookMismatch
from server.services import RelayServices
from server.snapshot import export_snapshot, import_snapshot, load_snapshot, save_snapshot


@pytest.fixture
def fresh(tmp_path):
    manager = DBManager(str(tmp_path / "restored.db"), init_schema=True)
    yield RelayServices.build(manager)
    manager.close()


def test_round_trip_restores_state_including_bans(graph, fresh, tmp_path):
    s, conn = graph
    s.mentions.record_mention(101, 202, "@scoped", 55)
    s.mentions.record_mention(101, 202, "@scoped-newer", 55)
    s.identity.set_banned(10, True)
    s.identity.set_guild_banned(1, True)

    path = tmp_path / "snap.json"
    save_snapshot(s, path)
    counts = load_snapshot(fresh, path)

    assert counts["connections"] == 1
    assert fresh.identity.is_banned(10)
    assert fresh.identity.is_guild_banned(1)
    restored = fresh.connections.list_all()
    assert [(c.source_channel_id, c.target_channel_id, c.webhook_id) for c in restored] == [
        (101, 202, 900)
    ]
    assert fresh.mentions.resolve_mention(202, 55, source_channel_id=101) == "@scoped-newer"


def test_import_requires_empty_store(graph):
    s, _ = graph

    with pytest.raises(Conflict):
        import_snapshot(s, export_snapshot(s))


def test_invalid_snapshot_is_rejected_atomically(graph, fresh):
    s, _ = graph
    data = export_snapshot(s)
    data["channels"].append({"id": 203, "name": "c3", "guild_id": 2})
    data["connections"][0]["target_channel_id"] = 203

    with pytest.raises(WebhookMismatch):
        import_snapshot(fresh, data)

    assert fresh.identity.list_users() == []
    assert fresh.channels.list_channels() == []


def test_unknown_version_rejected(fresh):
    with pytest.raises(ValueError):
        import_snapshot(fresh, {"version": 99})
