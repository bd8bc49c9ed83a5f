# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from server import logctx
from server.services import RelayServices

logger = logging.getLogger("server.relay")


@dataclass(frozen=True)
class RelayRoute:
    connection_id: int
    webhook_id: int
    target_channel_id: int
    author_mention: Optional[str]


class RelayPlanner:
    """
    Decides where an inbound message goes. Delivery itself belongs to the
    caller; this only reads the store.
    """

    def __init__(self, services: RelayServices):
        self.services = services
        self.db = services.db

    def _user_banned(self, user_id: int) -> bool:
        row = self.db.get_user(user_id)
        return bool(row is not None and row["is_banned"])

    def _guild_banned(self, guild_id: int, cache: Dict[int, bool]) -> bool:
        if guild_id not in cache:
            row = self.db.get_guild(guild_id)
            cache[guild_id] = bool(row is not None and row["is_banned"])
        return cache[guild_id]

    def plan(self, source_channel_id: int, author_id: int) -> List[RelayRoute]:
        source = self.db.get_channel(source_channel_id)
        if source is None:
            return []

        guild_cache: Dict[int, bool] = {}
        with logctx.scope(channel=source["name"]):
            if self._guild_banned(int(source["guild_id"]), guild_cache):
                logger.debug("[⛔] Source guild %s is banned; not relaying", source["guild_id"])
                return []

            # Authors are often not registered users; only a recorded ban blocks them.
            if self._user_banned(author_id):
                logger.debug("[⛔] Author %s is banned; not relaying", author_id)
                return []

            routes: List[RelayRoute] = []
            for conn in self.services.connections.list_connections(source_channel_id):
                if self._user_banned(conn.user_id):
                    logger.debug(
                        "[⛔] Connection %s skipped: user %s is banned",
                        conn.id,
                        conn.user_id,
                    )
                    continue

                target = self.db.get_channel(conn.target_channel_id)
                if target is None:
                    continue
                if self._guild_banned(int(target["guild_id"]), guild_cache):
                    logger.debug(
                        "[⛔] Connection %s skipped: target guild %s is banned",
                        conn.id,
                        target["guild_id"],
                    )
                    continue

                routes.append(
                    RelayRoute(
                        connection_id=conn.id,
                        webhook_id=conn.webhook_id,
                        target_channel_id=conn.target_channel_id,
                        author_mention=self.services.mentions.lookup(
                            conn.target_channel_id, author_id, source_channel_id
                        ),
                    )
                )

        return routes
