# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


from __future__ import annotations

from dataclasses import dataclass

from common.config import Config
from common.db import DBManager
from server.channel_graph import ChannelGraph
from server.connections import ConnectionManager
from server.identity import IdentityStore
from server.mentions import MentionTranslator
from server.webhooks import WebhookRegistry


@dataclass
class RelayServices:
    db: DBManager
    identity: IdentityStore
    channels: ChannelGraph
    webhooks: WebhookRegistry
    connections: ConnectionManager
    mentions: MentionTranslator

    @classmethod
    def build(cls, db: DBManager, *, allow_self_connections: bool = False) -> "RelayServices":
        return cls(
            db=db,
            identity=IdentityStore(db),
            channels=ChannelGraph(db),
            webhooks=WebhookRegistry(db),
            connections=ConnectionManager(db, allow_self_connections=allow_self_connections),
            mentions=MentionTranslator(db),
        )

    @classmethod
    def from_config(cls, config: Config) -> "RelayServices":
        return cls.build(config.db, allow_self_connections=config.ALLOW_SELF_CONNECTIONS)
