"""Tests for relay route planning."""
from __future__ import annotations

from server.relay import RelayPlanner, RelayRoute


def test_plan_routes_message_through_connection(graph):
    s, conn = graph
    s.mentions.record_mention(None, 202, "@author (G1)", 55)

    routes = RelayPlanner(s).plan(101, author_id=55)

    assert routes == [
        RelayRoute(
            connection_id=conn.id,
            webhook_id=900,
            target_channel_id=202,
            author_mention="@author (G1)",
        )
    ]


def test_plan_without_mapping_has_no_mention(graph):
    s, conn = graph

    routes = RelayPlanner(s).plan(101, author_id=55)

    assert [r.author_mention for r in routes] == [None]


def test_banned_author_is_not_relayed(graph):
    s, conn = graph
    s.identity.create_user(55, "author")
    s.identity.set_banned(55, True)

    assert RelayPlanner(s).plan(101, author_id=55) == []


def test_connection_of_banned_user_is_skipped(graph):
    s, conn = graph
    s.identity.create_user(11, "V")
    second = s.connections.create_connection(101, 202, 900, 11)
    s.identity.set_banned(10, True)

    routes = RelayPlanner(s).plan(101, author_id=55)

    assert [r.connection_id for r in routes] == [second.id]


def test_banned_guilds_stop_relaying(graph):
    s, conn = graph
    planner = RelayPlanner(s)

    s.identity.set_guild_banned(2, True)
    assert planner.plan(101, author_id=55) == []

    s.identity.set_guild_banned(2, False)
    s.identity.set_guild_banned(1, True)
    assert planner.plan(101, author_id=55) == []


def test_unknown_or_unconnected_channel_has_no_routes(graph):
    s, conn = graph
    planner = RelayPlanner(s)

    assert planner.plan(999, author_id=55) == []
    assert planner.plan(202, author_id=55) == []
