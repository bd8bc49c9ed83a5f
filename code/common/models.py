# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class User:
    id: int
    name: str
    is_admin: bool = False
    is_banned: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(
            id=int(row["id"]),
            name=row["name"],
            is_admin=bool(row["is_admin"]),
            is_banned=bool(row["is_banned"]),
        )


@dataclass(frozen=True)
class Guild:
    id: int
    name: str
    is_banned: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Guild":
        return cls(id=int(row["id"]), name=row["name"], is_banned=bool(row["is_banned"]))


@dataclass(frozen=True)
class Channel:
    id: int
    name: str
    guild_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Channel":
        return cls(id=int(row["id"]), name=row["name"], guild_id=int(row["guild_id"]))


@dataclass(frozen=True)
class Webhook:
    id: int
    target_channel_id: int
    owner_user_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Webhook":
        return cls(
            id=int(row["id"]),
            target_channel_id=int(row["target_channel_id"]),
            owner_user_id=int(row["owner_user_id"]),
        )


@dataclass(frozen=True)
class Connection:
    id: int
    source_channel_id: int
    target_channel_id: int
    webhook_id: int
    user_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Connection":
        return cls(
            id=int(row["id"]),
            source_channel_id=int(row["source_channel_id"]),
            target_channel_id=int(row["target_channel_id"]),
            webhook_id=int(row["webhook_id"]),
            user_id=int(row["user_id"]),
        )


@dataclass(frozen=True)
class MentionMapping:
    id: int
    source_channel_id: Optional[int]
    target_channel_id: int
    mention_text: str
    user_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MentionMapping":
        src = row["source_channel_id"]
        return cls(
            id=int(row["id"]),
            source_channel_id=int(src) if src is not None else None,
            target_channel_id=int(row["target_channel_id"]),
            mention_text=row["mention_text"],
            user_id=int(row["user_id"]),
        )
