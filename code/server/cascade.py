# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================

"""
Ordered delete plans.

The store declares foreign keys without ON DELETE CASCADE, so dependents must
be removed before the row they reference. Each plan lists its steps leaf
first; every step collects the ids of one table from the plan's root ids and
deletes only rows that still exist, which makes a plan safe to re-run after an
interrupted attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

from common.db import DBManager

logger = logging.getLogger("server.cascade")

Collector = Callable[[DBManager, Sequence[int]], List[int]]


@dataclass(frozen=True)
class CascadeStep:
    table: str
    collect: Collector


@dataclass
class CascadeReport:
    deleted: Dict[str, int] = field(default_factory=dict)

    def add(self, table: str, count: int) -> None:
        self.deleted[table] = self.deleted.get(table, 0) + int(count)

    def merge(self, other: "CascadeReport") -> None:
        for table, count in other.deleted.items():
            self.add(table, count)

    @property
    def total(self) -> int:
        return sum(self.deleted.values())


CONNECTIONS_BY_CHANNEL = CascadeStep(
    "connections", lambda db, ids: db.connection_ids_for_channels(ids)
)
MENTIONS_BY_CHANNEL = CascadeStep(
    "mentions", lambda db, ids: db.mention_ids_for_channels(ids)
)
WEBHOOKS_BY_CHANNEL = CascadeStep(
    "webhooks", lambda db, ids: db.webhook_ids_for_channels(ids)
)
CHANNEL_ROWS = CascadeStep("channels", lambda db, ids: db.existing_channel_ids(ids))

CONNECTIONS_BY_WEBHOOK = CascadeStep(
    "connections", lambda db, ids: db.connection_ids_for_webhooks(ids)
)
WEBHOOK_ROWS = CascadeStep("webhooks", lambda db, ids: db.existing_webhook_ids(ids))

CHANNEL_PLAN: Tuple[CascadeStep, ...] = (
    CONNECTIONS_BY_CHANNEL,
    MENTIONS_BY_CHANNEL,
    WEBHOOKS_BY_CHANNEL,
    CHANNEL_ROWS,
)

WEBHOOK_PLAN: Tuple[CascadeStep, ...] = (
    CONNECTIONS_BY_WEBHOOK,
    WEBHOOK_ROWS,
)


def run_plan(
    db: DBManager, plan: Sequence[CascadeStep], root_ids: Sequence[int]
) -> CascadeReport:
    """
    Execute `plan` for `root_ids` inside one transaction. Any failure rolls
    the whole plan back.
    """
    report = CascadeReport()
    root_ids = [int(x) for x in root_ids]
    if not root_ids:
        return report

    with db.transaction():
        for step in plan:
            ids = step.collect(db, root_ids)
            if not ids:
                continue
            n = db.delete_rows(step.table, ids)
            report.add(step.table, n)
            logger.debug("[🧹] %s: removed %d row(s)", step.table, n)

    return report
