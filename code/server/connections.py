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
from typing import List

from common.db import DBManager
from common.errors import (
    BannedUser,
    Conflict,
    DuplicateConnection,
    InvalidConnection,
    NotFound,
    WebhookMismatch,
)
from common.models import Connection
from server.cascade import CONNECTIONS_BY_CHANNEL, CONNECTIONS_BY_WEBHOOK, run_plan

logger = logging.getLogger("server.connections")


class ConnectionManager:
    def __init__(self, db: DBManager, allow_self_connections: bool = False):
        self.db = db
        self.allow_self_connections = bool(allow_self_connections)

    def create_connection(
        self,
        source_channel_id: int,
        target_channel_id: int,
        webhook_id: int,
        user_id: int,
        *,
        exist_ok: bool = False,
    ) -> Connection:
        """
        Bridge `source_channel_id` into `target_channel_id` through
        `webhook_id` on behalf of `user_id`.

        Checks run in a fixed order and the first failure is raised:
        channels, webhook, user, duplicate. The (source, target, webhook,
        user) tuple is the idempotency key; with `exist_ok` the existing
        connection is returned instead of raising DuplicateConnection.
        """
        src, dst = int(source_channel_id), int(target_channel_id)
        wid, uid = int(webhook_id), int(user_id)

        conn = None
        with self.db.transaction():
            for cid in (src, dst):
                if self.db.get_channel(cid) is None:
                    raise NotFound("channel", cid)

            if src == dst and not self.allow_self_connections:
                raise InvalidConnection(f"channel {src} cannot relay into itself")

            hook = self.db.get_webhook(wid)
            if hook is None:
                raise NotFound("webhook", wid)
            if int(hook["target_channel_id"]) != dst:
                raise WebhookMismatch(wid, int(hook["target_channel_id"]), dst)

            user = self.db.get_user(uid)
            if user is None:
                raise NotFound("user", uid)
            if user["is_banned"]:
                raise BannedUser(uid)

            existing = self.db.find_connection(src, dst, wid, uid)
            if existing is None:
                try:
                    new_id = self.db.insert_connection(src, dst, wid, uid)
                except Conflict:
                    existing = self.db.find_connection(src, dst, wid, uid)
                    if existing is None:
                        raise
                else:
                    conn = Connection(
                        id=new_id,
                        source_channel_id=src,
                        target_channel_id=dst,
                        webhook_id=wid,
                        user_id=uid,
                    )

        if existing is not None:
            if exist_ok:
                return Connection.from_row(existing)
            raise DuplicateConnection(int(existing["id"]))

        logger.info(
            "[🔗] Connection %s: %s -> %s via webhook %s (user %s)",
            conn.id,
            src,
            dst,
            wid,
            uid,
        )
        return conn

    def get_connection(self, connection_id: int) -> Connection:
        row = self.db.get_connection(connection_id)
        if row is None:
            raise NotFound("connection", connection_id)
        return Connection.from_row(row)

    def list_connections(self, source_channel_id: int) -> List[Connection]:
        return [Connection.from_row(r) for r in self.db.connections_from(source_channel_id)]

    def list_connections_to(self, target_channel_id: int) -> List[Connection]:
        return [Connection.from_row(r) for r in self.db.connections_to(target_channel_id)]

    def list_all(self) -> List[Connection]:
        return [Connection.from_row(r) for r in self.db.list_connections()]

    def delete_connection(self, connection_id: int) -> bool:
        removed = self.db.delete_rows("connections", [connection_id])
        if removed:
            logger.info("[✂️] Connection %s removed", connection_id)
        return bool(removed)

    def on_channel_deleted(self, channel_id: int) -> int:
        report = run_plan(self.db, (CONNECTIONS_BY_CHANNEL,), [channel_id])
        return report.deleted.get("connections", 0)

    def on_webhook_deleted(self, webhook_id: int) -> int:
        report = run_plan(self.db, (CONNECTIONS_BY_WEBHOOK,), [webhook_id])
        return report.deleted.get("connections", 0)
