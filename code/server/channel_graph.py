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
from typing import List, Optional

from common.db import DBManager
from common.errors import Conflict, NotFound
from common.models import Channel
from server import logctx
from server.cascade import CHANNEL_PLAN, CascadeReport, run_plan

logger = logging.getLogger("server.channels")


class ChannelGraph:
    def __init__(self, db: DBManager):
        self.db = db

    def create_channel(self, channel_id: int, guild_id: int, name: str) -> Channel:
        with self.db.transaction():
            if self.db.get_guild(guild_id) is None:
                raise NotFound("guild", guild_id)
            if self.db.get_channel(channel_id) is not None:
                raise Conflict(
                    f"channel {channel_id} already exists", existing_id=int(channel_id)
                )
            self.db.insert_channel(channel_id, guild_id, name)
        return Channel(id=int(channel_id), name=name, guild_id=int(guild_id))

    def get_channel(self, channel_id: int) -> Channel:
        row = self.db.get_channel(channel_id)
        if row is None:
            raise NotFound("channel", channel_id)
        return Channel.from_row(row)

    def find_channel(self, channel_id: int) -> Optional[Channel]:
        row = self.db.get_channel(channel_id)
        return Channel.from_row(row) if row is not None else None

    def list_channels(self, guild_id: int | None = None) -> List[Channel]:
        return [Channel.from_row(r) for r in self.db.list_channels(guild_id)]

    def rename_channel(self, channel_id: int, name: str) -> None:
        if not self.db.rename_channel(channel_id, name):
            raise NotFound("channel", channel_id)

    def delete_channel(self, channel_id: int) -> CascadeReport:
        """
        Remove a channel and everything that depends on it. Deleting a channel
        that is already gone is a no-op.
        """
        report = run_plan(self.db, CHANNEL_PLAN, [channel_id])
        if report.total:
            logger.info("[🗑️] Channel %s removed: %s", channel_id, report.deleted)
        return report

    def delete_guild(self, guild_id: int) -> CascadeReport:
        """
        Remove a guild with all of its channels in one transaction.
        Re-running against a half-removed or missing guild finishes the job.
        """
        report = CascadeReport()
        with self.db.transaction():
            row = self.db.get_guild(guild_id)
            label = row["name"] if row is not None else str(guild_id)
            with logctx.scope(guild=label):
                channel_ids = self.db.channel_ids_for_guild(guild_id)
                report.merge(run_plan(self.db, CHANNEL_PLAN, channel_ids))
                if row is not None:
                    report.add("guilds", self.db.delete_rows("guilds", [guild_id]))

        if report.total:
            logger.info("[🗑️] Guild %s removed: %s", guild_id, report.deleted)
        return report
