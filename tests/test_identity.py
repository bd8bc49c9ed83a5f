"""Tests for the identity store: users, guilds and ban flags."""
from __future__ import annotations

import pytest

from common.errors import Conflict, NotFound


def test_create_and_fetch_user(services):
    user = services.identity.create_user(7, "alice")

    assert user.id == 7
    assert user.name == "alice"
    assert not user.is_admin
    assert not user.is_banned
    assert services.identity.get_user(7) == user


def test_create_user_twice_conflicts(services):
    services.identity.create_user(7, "alice")

    with pytest.raises(Conflict) as exc:
        services.identity.create_user(7, "alice again")

    assert exc.value.existing_id == 7
    assert services.identity.get_user(7).name == "alice"


def test_ban_and_admin_flags_toggle(services):
    services.identity.create_user(7, "alice")

    services.identity.set_banned(7, True)
    services.identity.set_admin(7, True)
    assert services.identity.is_banned(7)
    assert services.identity.get_user(7).is_admin

    services.identity.set_banned(7, False)
    assert not services.identity.is_banned(7)


def test_flags_on_missing_user_raise_not_found(services):
    with pytest.raises(NotFound):
        services.identity.set_banned(404, True)
    with pytest.raises(NotFound):
        services.identity.set_admin(404, True)
    with pytest.raises(NotFound):
        services.identity.is_banned(404)


def test_guild_lifecycle(services):
    guild = services.identity.create_guild(1, "Traders")
    assert not guild.is_banned

    services.identity.set_guild_banned(1, True)
    services.identity.rename_guild(1, "Traders HQ")

    fetched = services.identity.get_guild(1)
    assert fetched.is_banned
    assert fetched.name == "Traders HQ"

    with pytest.raises(Conflict):
        services.identity.create_guild(1, "dup")
    with pytest.raises(NotFound):
        services.identity.set_guild_banned(2, True)


def test_ban_keeps_existing_webhooks_and_connections(graph):
    s, conn = graph

    s.identity.set_banned(10, True)

    assert s.connections.get_connection(conn.id) == conn
    assert s.webhooks.get_webhook(900).owner_user_id == 10


def test_rename_user(services):
    services.identity.create_user(7, "alice")
    services.identity.rename_user(7, "alicia")

    assert services.identity.get_user(7).name == "alicia"
    assert [u.id for u in services.identity.list_users()] == [7]
