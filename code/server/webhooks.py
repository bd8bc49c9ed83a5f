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
from common.errors import BannedUser, Conflict, NotFound
from common.models import Webhook
from server.cascade import WEBHOOK_PLAN, CascadeReport, run_plan

logger = logging.getLogger("server.webhooks")


class WebhookRegistry:
    """
    Inbound delivery endpoints. A channel has at most one live webhook, and
    every connection into that channel routes through it.
    """

    def __init__(self, db: DBManager):
        self.db = db

    def create_webhook(
        self, webhook_id: int, target_channel_id: int, owner_user_id: int
    ) -> Webhook:
        with self.db.transaction():
            if self.db.get_channel(target_channel_id) is None:
                raise NotFound("channel", target_channel_id)

            owner = self.db.get_user(owner_user_id)
            if owner is None:
                raise NotFound("user", owner_user_id)
            if owner["is_banned"]:
                raise BannedUser(int(owner_user_id))

            existing = self.db.get_webhook_for_channel(target_channel_id)
            if existing is not None:
                raise Conflict(
                    f"channel {target_channel_id} already has webhook {existing['id']}",
                    existing_id=int(existing["id"]),
                )
            if self.db.get_webhook(webhook_id) is not None:
                raise Conflict(
                    f"webhook {webhook_id} already exists", existing_id=int(webhook_id)
                )

            self.db.insert_webhook(webhook_id, target_channel_id, owner_user_id)

        logger.info(
            "[🪝] Webhook %s registered for channel %s by user %s",
            webhook_id,
            target_channel_id,
            owner_user_id,
        )
        return Webhook(
            id=int(webhook_id),
            target_channel_id=int(target_channel_id),
            owner_user_id=int(owner_user_id),
        )

    def get_webhook(self, webhook_id: int) -> Webhook:
        row = self.db.get_webhook(webhook_id)
        if row is None:
            raise NotFound("webhook", webhook_id)
        return Webhook.from_row(row)

    def webhook_for_channel(self, channel_id: int) -> Optional[Webhook]:
        row = self.db.get_webhook_for_channel(channel_id)
        return Webhook.from_row(row) if row is not None else None

    def list_webhooks(self) -> List[Webhook]:
        return [Webhook.from_row(r) for r in self.db.list_webhooks()]

    def delete_webhook(self, webhook_id: int) -> bool:
        """
        Remove the webhook and the connections routed through it. Returns
        False when the webhook was already gone.
        """
        report = run_plan(self.db, WEBHOOK_PLAN, [webhook_id])
        if report.total:
            logger.info("[🗑️] Webhook %s removed: %s", webhook_id, report.deleted)
        return bool(report.deleted.get("webhooks"))

    def on_channel_deleted(self, channel_id: int) -> CascadeReport:
        """
        Drop the webhook that targets `channel_id` and the connections routed
        through it.
        """
        return run_plan(self.db, WEBHOOK_PLAN, self.db.webhook_ids_for_channels([channel_id]))
