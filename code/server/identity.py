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
from common.errors import Conflict, NotFound
from common.models import Guild, User

logger = logging.getLogger("server.identity")


class IdentityStore:
    """
    Users and guilds. `is_banned` is the single check point the rest of the
    relay consults before authorising anything on a user's behalf.
    """

    def __init__(self, db: DBManager):
        self.db = db

    # users

    def create_user(self, user_id: int, name: str) -> User:
        with self.db.transaction():
            if self.db.get_user(user_id) is not None:
                raise Conflict(f"user {user_id} already exists", existing_id=int(user_id))
            self.db.insert_user(user_id, name)
            user = self.get_user(user_id)
        logger.info("[👤] Registered user %s (%s)", name, user_id)
        return user

    def get_user(self, user_id: int) -> User:
        row = self.db.get_user(user_id)
        if row is None:
            raise NotFound("user", user_id)
        return User.from_row(row)

    def list_users(self) -> List[User]:
        return [User.from_row(r) for r in self.db.list_users()]

    def set_banned(self, user_id: int, banned: bool) -> None:
        if not self.db.set_user_flag(user_id, "is_banned", banned):
            raise NotFound("user", user_id)
        logger.info("[⛔] User %s %s", user_id, "banned" if banned else "unbanned")

    def set_admin(self, user_id: int, admin: bool) -> None:
        if not self.db.set_user_flag(user_id, "is_admin", admin):
            raise NotFound("user", user_id)

    def is_banned(self, user_id: int) -> bool:
        return self.get_user(user_id).is_banned

    def rename_user(self, user_id: int, name: str) -> None:
        if not self.db.rename_user(user_id, name):
            raise NotFound("user", user_id)

    # guilds

    def create_guild(self, guild_id: int, name: str) -> Guild:
        with self.db.transaction():
            if self.db.get_guild(guild_id) is not None:
                raise Conflict(f"guild {guild_id} already exists", existing_id=int(guild_id))
            self.db.insert_guild(guild_id, name)
            guild = self.get_guild(guild_id)
        logger.info("[🏠] Registered guild %s (%s)", name, guild_id)
        return guild

    def get_guild(self, guild_id: int) -> Guild:
        row = self.db.get_guild(guild_id)
        if row is None:
            raise NotFound("guild", guild_id)
        return Guild.from_row(row)

    def list_guilds(self) -> List[Guild]:
        return [Guild.from_row(r) for r in self.db.list_guilds()]

    def set_guild_banned(self, guild_id: int, banned: bool) -> None:
        if not self.db.set_guild_banned(guild_id, banned):
            raise NotFound("guild", guild_id)
        logger.info("[⛔] Guild %s %s", guild_id, "banned" if banned else "unbanned")

    def is_guild_banned(self, guild_id: int) -> bool:
        return self.get_guild(guild_id).is_banned

    def rename_guild(self, guild_id: int, name: str) -> None:
        if not self.db.rename_guild(guild_id, name):
            raise NotFound("guild", guild_id)
