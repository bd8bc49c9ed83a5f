# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

from common.errors import Conflict
from server.services import RelayServices

logger = logging.getLogger("server.snapshot")

SNAPSHOT_VERSION = 1


def export_snapshot(services: RelayServices) -> Dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "users": [asdict(u) for u in services.identity.list_users()],
        "guilds": [asdict(g) for g in services.identity.list_guilds()],
        "channels": [asdict(c) for c in services.channels.list_channels()],
        "webhooks": [asdict(w) for w in services.webhooks.list_webhooks()],
        "connections": [asdict(c) for c in services.connections.list_all()],
        "mentions": [asdict(m) for m in services.mentions.list_all()],
    }


def import_snapshot(services: RelayServices, data: Dict[str, Any]) -> Dict[str, int]:
    """
    Rebuild a snapshot through the service layer so every rule is checked
    again. Bans are applied last: a banned user's existing webhooks and
    connections are restored even though they could not be created anew.
    Connection and mention ids are reassigned; mention order is kept.
    """
    version = int(data.get("version", 0))
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {version}")

    db = services.db
    counts: Dict[str, int] = {}

    with db.transaction():
        if db.count_rows("users") or db.count_rows("guilds"):
            raise Conflict("snapshot import requires an empty store")

        for u in data.get("users", []):
            services.identity.create_user(u["id"], u["name"])
            if u.get("is_admin"):
                services.identity.set_admin(u["id"], True)
        for g in data.get("guilds", []):
            services.identity.create_guild(g["id"], g["name"])
        for c in data.get("channels", []):
            services.channels.create_channel(c["id"], c["guild_id"], c["name"])
        for w in data.get("webhooks", []):
            services.webhooks.create_webhook(
                w["id"], w["target_channel_id"], w["owner_user_id"]
            )
        for c in sorted(data.get("connections", []), key=lambda r: r["id"]):
            services.connections.create_connection(
                c["source_channel_id"],
                c["target_channel_id"],
                c["webhook_id"],
                c["user_id"],
                exist_ok=True,
            )
        for m in sorted(data.get("mentions", []), key=lambda r: r["id"]):
            services.mentions.record_mention(
                m["source_channel_id"],
                m["target_channel_id"],
                m["mention_text"],
                m["user_id"],
            )

        for u in data.get("users", []):
            if u.get("is_banned"):
                services.identity.set_banned(u["id"], True)
        for g in data.get("guilds", []):
            if g.get("is_banned"):
                services.identity.set_guild_banned(g["id"], True)

    for key in ("users", "guilds", "channels", "webhooks", "connections", "mentions"):
        counts[key] = len(data.get(key, []))
    logger.info("[📥] Snapshot imported: %s", counts)
    return counts


def save_snapshot(services: RelayServices, path: Path) -> None:
    path = Path(path)
    path.write_text(
        json.dumps(export_snapshot(services), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("[💾] Snapshot written to %s", path)


def load_snapshot(services: RelayServices, path: Path) -> Dict[str, int]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return import_snapshot(services, data)
