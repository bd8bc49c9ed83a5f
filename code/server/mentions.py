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
from common.errors import InvalidMention, NotFound
from common.models import MentionMapping
from server.cascade import MENTIONS_BY_CHANNEL, run_plan

logger = logging.getLogger("server.mentions")

ANY = object()


class MentionTranslator:
    """
    Rewrites a relayed author's identity into text that reads correctly in
    the target channel. Mappings are append-only; the newest one for a
    (source, target, user) scope is authoritative.
    """

    def __init__(self, db: DBManager):
        self.db = db

    def record_mention(
        self,
        source_channel_id: Optional[int],
        target_channel_id: int,
        mention_text: str,
        user_id: int,
    ) -> MentionMapping:
        if not (mention_text or "").strip():
            raise InvalidMention("mention text must not be empty")

        with self.db.transaction():
            if self.db.get_channel(target_channel_id) is None:
                raise NotFound("channel", target_channel_id)
            if source_channel_id is not None and self.db.get_channel(source_channel_id) is None:
                raise NotFound("channel", source_channel_id)
            mid = self.db.insert_mention(
                source_channel_id, target_channel_id, mention_text, user_id
            )

        logger.debug(
            "[🏷️] Mention %s for user %s in channel %s (source %s)",
            mid,
            user_id,
            target_channel_id,
            source_channel_id,
        )
        return MentionMapping(
            id=mid,
            source_channel_id=int(source_channel_id) if source_channel_id is not None else None,
            target_channel_id=int(target_channel_id),
            mention_text=mention_text,
            user_id=int(user_id),
        )

    def resolve_mention(
        self,
        target_channel_id: int,
        user_id: int,
        source_channel_id: Optional[int] = None,
    ) -> str:
        row = self.db.best_mention(target_channel_id, user_id, source_channel_id)
        if row is None:
            raise NotFound("mention", (target_channel_id, user_id))
        return row["mention_text"]

    def lookup(
        self,
        target_channel_id: int,
        user_id: int,
        source_channel_id: Optional[int] = None,
    ) -> Optional[str]:
        row = self.db.best_mention(target_channel_id, user_id, source_channel_id)
        return row["mention_text"] if row is not None else None

    def list_mentions(self, target_channel_id: int) -> List[MentionMapping]:
        return [
            MentionMapping.from_row(r)
            for r in self.db.mentions_for_target(target_channel_id)
        ]

    def list_all(self) -> List[MentionMapping]:
        return [MentionMapping.from_row(r) for r in self.db.list_mentions()]

    def remove_mentions(
        self,
        target_channel_id: int,
        *,
        source_channel_id=ANY,
        user_id: Optional[int] = None,
    ) -> int:
        """
        Delete mappings in a target channel. Leave `source_channel_id` as ANY
        to match every scope, or pass None to hit only source-agnostic ones.
        """
        match_source = source_channel_id is not ANY
        n = self.db.delete_mentions(
            target_channel_id,
            match_source=match_source,
            source_channel_id=source_channel_id if match_source else None,
            user_id=user_id,
        )
        if n:
            logger.info("[🧹] Removed %d mention(s) from channel %s", n, target_channel_id)
        return n

    def on_channel_deleted(self, channel_id: int) -> int:
        report = run_plan(self.db, (MENTIONS_BY_CHANNEL,), [channel_id])
        return report.deleted.get("mentions", 0)
