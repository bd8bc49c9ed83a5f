"""Shared fixtures: a fresh relay store per test."""
from __future__ import annotations

import pytest

from common.db import DBManager
from server.services import RelayServices


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "relay.db")


@pytest.fixture
def db(db_path):
    manager = DBManager(db_path, init_schema=True)
    yield manager
    manager.close()


@pytest.fixture
def services(db):
    return RelayServices.build(db)


@pytest.fixture
def graph(services):
    """
    Two guilds with one channel each, a user U, webhook W on C2 and the
    bridge C1 -> C2 through W.
    """
    s = services
    s.identity.create_user(10, "U")
    s.identity.create_guild(1, "G1")
    s.identity.create_guild(2, "G2")
    s.channels.create_channel(101, 1, "c1")
    s.channels.create_channel(202, 2, "c2")
    s.webhooks.create_webhook(900, 202, 10)
    conn = s.connections.create_connection(101, 202, 900, 10)
    return s, conn
