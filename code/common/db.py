# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================

import contextlib
import itertools
import logging
import sqlite3, threading
from typing import Iterable, List, Optional, Sequence

from common.errors import (
    Conflict,
    ForeignKeyViolation,
    Internal,
    RelayError,
    StoreUnavailable,
)

logger = logging.getLogger("common.db")

SCHEMA_REVISION = "3"

_DELETABLE_TABLES = ("connections", "mentions", "webhooks", "channels", "guilds")
_USER_FLAGS = ("is_admin", "is_banned")


def _translate(exc: sqlite3.Error) -> RelayError:
    msg = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        if "FOREIGN KEY" in msg:
            return ForeignKeyViolation(msg)
        if "UNIQUE" in msg or "PRIMARY KEY" in msg:
            return Conflict(msg)
        return Internal(msg)
    if isinstance(exc, sqlite3.OperationalError):
        low = msg.lower()
        if "locked" in low or "busy" in low:
            return StoreUnavailable(msg)
    return Internal(msg)


# ids bound per IN (...) clause; stays well under SQLITE_MAX_VARIABLE_NUMBER
ID_CHUNK = 500


def _marks(ids: Sequence[int]) -> str:
    return ",".join("?" for _ in ids)


def _chunks(ids: Sequence[int]):
    ids = [int(x) for x in ids]
    for i in range(0, len(ids), ID_CHUNK):
        yield ids[i : i + ID_CHUNK]


class DBManager:
    def __init__(
        self, db_path: str, init_schema: bool = False, busy_timeout_ms: int = 5000
    ):
        self.path = db_path
        self.conn = sqlite3.connect(
            self.path,
            check_same_thread=False,
            isolation_level=None,
            timeout=max(busy_timeout_ms, 0) / 1000.0,
        )
        self.conn.row_factory = sqlite3.Row

        self.conn.execute("PRAGMA foreign_keys = ON;")
        self.conn.execute("PRAGMA journal_mode = DELETE;")
        self.conn.execute("PRAGMA synchronous = FULL;")
        self.conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")

        self.lock = threading.RLock()
        self._sp_seq = itertools.count(1)
        if init_schema:
            self._init_schema()

    def close(self) -> None:
        with self.lock:
            self.conn.close()

    # ------------------------------------------------------------------ txn

    @contextlib.contextmanager
    def transaction(self):
        """
        Run the block as one atomic unit. The outermost call takes the write
        lock up front with BEGIN IMMEDIATE; nested calls use a SAVEPOINT so an
        inner failure can be rolled back without aborting the caller.
        sqlite errors leave as RelayError subclasses.
        """
        with self.lock:
            nested = self.conn.in_transaction
            sp_name = f"sp_relay_{next(self._sp_seq)}"
            try:
                if nested:
                    self.conn.execute(f"SAVEPOINT {sp_name};")
                else:
                    self.conn.execute("BEGIN IMMEDIATE;")
            except sqlite3.Error as e:
                raise _translate(e) from e

            try:
                yield self.conn
            except BaseException as exc:
                if nested:
                    self.conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name};")
                    self.conn.execute(f"RELEASE SAVEPOINT {sp_name};")
                elif self.conn.in_transaction:
                    self.conn.execute("ROLLBACK;")
                if isinstance(exc, sqlite3.Error):
                    raise _translate(exc) from exc
                raise

            try:
                if nested:
                    self.conn.execute(f"RELEASE SAVEPOINT {sp_name};")
                else:
                    self.conn.execute("COMMIT;")
            except sqlite3.Error as e:
                if not nested and self.conn.in_transaction:
                    self.conn.execute("ROLLBACK;")
                raise _translate(e) from e

    def _fetchone(self, sql: str, params: Iterable = ()) -> Optional[sqlite3.Row]:
        with self.lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchone()
            except sqlite3.Error as e:
                raise _translate(e) from e

    def _fetchall(self, sql: str, params: Iterable = ()) -> List[sqlite3.Row]:
        with self.lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                raise _translate(e) from e

    def _collect_ids(self, sql: str, ids: Sequence[int], repeat: int = 1) -> list[int]:
        """
        Run an id query whose `{m}` placeholders take the ids, one chunk at a
        time. Each placeholder gets the chunk, hence `repeat`. Result ids are
        deduplicated in first-seen order.
        """
        found: dict[int, None] = {}
        for chunk in _chunks(ids):
            rows = self._fetchall(sql.format(m=_marks(chunk)), chunk * repeat)
            for r in rows:
                found[int(r[0])] = None
        return list(found)

    # --------------------------------------------------------------- schema

    def _init_schema(self):
        """
        Creates the relay tables, rebuilding any table left over from an
        earlier schema revision, then drops rows whose references did not
        survive the rebuild.
        """
        c = self.conn.cursor()

        c.execute(
            """
        CREATE TABLE IF NOT EXISTS app_config(
        key           TEXT PRIMARY KEY,
        value         TEXT NOT NULL DEFAULT '',
        last_updated  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """
        )
        c.execute(
            """
        CREATE TABLE IF NOT EXISTS settings(
        id            INTEGER PRIMARY KEY CHECK (id = 1),
        version       TEXT NOT NULL DEFAULT '',
        last_updated  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """
        )

        self._ensure_table(
            name="users",
            create_sql_template="""
                CREATE TABLE {table} (
                    id            INTEGER PRIMARY KEY NOT NULL,
                    name          TEXT    NOT NULL,
                    is_admin      BOOLEAN NOT NULL DEFAULT 0,
                    is_banned     BOOLEAN NOT NULL DEFAULT 0,
                    last_updated  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """,
            required_columns={"id", "name", "is_admin", "is_banned", "last_updated"},
            copy_map={
                "id": "id",
                "name": "name",
                "is_admin": ("is_admin", "0"),
                "is_banned": ("is_banned", "0"),
                "last_updated": "last_updated",
            },
        )

        self._ensure_table(
            name="guilds",
            create_sql_template="""
                CREATE TABLE {table} (
                    id            INTEGER PRIMARY KEY NOT NULL,
                    name          TEXT    NOT NULL,
                    is_banned     BOOLEAN NOT NULL DEFAULT 0,
                    last_updated  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """,
            required_columns={"id", "name", "is_banned", "last_updated"},
            copy_map={
                "id": "id",
                "name": "name",
                "is_banned": ("is_banned", "0"),
                "last_updated": "last_updated",
            },
        )

        self._ensure_table(
            name="webhooks",
            create_sql_template="""
                CREATE TABLE {table} (
                    id                 INTEGER PRIMARY KEY NOT NULL,
                    target_channel_id  INTEGER NOT NULL UNIQUE REFERENCES channels(id),
                    owner_user_id      INTEGER NOT NULL REFERENCES users(id),
                    last_updated       TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """,
            required_columns={"id", "target_channel_id", "owner_user_id", "last_updated"},
            copy_map={
                "id": "id",
                "target_channel_id": ("target_channel_id", "target", "channel"),
                "owner_user_id": ("owner_user_id", "user"),
                "last_updated": "last_updated",
            },
            post_sql=[
                "CREATE INDEX IF NOT EXISTS ix_webhooks_owner ON webhooks(owner_user_id);",
            ],
        )

        self._carry_legacy_webhooks()

        self._ensure_table(
            name="channels",
            create_sql_template="""
                CREATE TABLE {table} (
                    id            INTEGER PRIMARY KEY NOT NULL,
                    name          TEXT    NOT NULL,
                    guild_id      INTEGER NOT NULL REFERENCES guilds(id),
                    last_updated  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """,
            required_columns={"id", "name", "guild_id", "last_updated"},
            forbidden_columns={"webhook"},
            copy_map={
                "id": "id",
                "name": "name",
                "guild_id": ("guild_id", "guild"),
                "last_updated": "last_updated",
            },
            post_sql=[
                "CREATE INDEX IF NOT EXISTS ix_channels_guild ON channels(guild_id);",
            ],
        )

        self._ensure_table(
            name="connections",
            create_sql_template="""
                CREATE TABLE {table} (
                    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_channel_id  INTEGER NOT NULL REFERENCES channels(id),
                    target_channel_id  INTEGER NOT NULL REFERENCES channels(id),
                    user_id            INTEGER NOT NULL REFERENCES users(id),
                    webhook_id         INTEGER NOT NULL REFERENCES webhooks(id),
                    last_updated       TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (source_channel_id, target_channel_id, user_id, webhook_id)
                );
            """,
            required_columns={
                "id",
                "source_channel_id",
                "target_channel_id",
                "user_id",
                "webhook_id",
                "last_updated",
            },
            copy_map={
                "id": "id",
                "source_channel_id": ("source_channel_id", "source"),
                "target_channel_id": ("target_channel_id", "target"),
                "user_id": ("user_id", "user"),
                "webhook_id": ("webhook_id", "webhook"),
                "last_updated": "last_updated",
            },
            post_sql=[
                "CREATE INDEX IF NOT EXISTS ix_connections_source  ON connections(source_channel_id);",
                "CREATE INDEX IF NOT EXISTS ix_connections_target  ON connections(target_channel_id);",
                "CREATE INDEX IF NOT EXISTS ix_connections_webhook ON connections(webhook_id);",
            ],
        )

        self._ensure_table(
            name="mentions",
            create_sql_template="""
                CREATE TABLE {table} (
                    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_channel_id  INTEGER REFERENCES channels(id),
                    target_channel_id  INTEGER NOT NULL REFERENCES channels(id),
                    mention_text       TEXT    NOT NULL,
                    user_id            INTEGER NOT NULL,
                    last_updated       TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """,
            required_columns={
                "id",
                "source_channel_id",
                "target_channel_id",
                "mention_text",
                "user_id",
                "last_updated",
            },
            copy_map={
                "id": "id",
                "source_channel_id": ("source_channel_id", "source"),
                "target_channel_id": ("target_channel_id", "target"),
                "mention_text": ("mention_text", "mention"),
                "user_id": ("user_id", "user"),
                "last_updated": "last_updated",
            },
            post_sql=[
                "CREATE INDEX IF NOT EXISTS ix_mentions_target_user ON mentions(target_channel_id, user_id);",
                "CREATE INDEX IF NOT EXISTS ix_mentions_source      ON mentions(source_channel_id);",
            ],
        )

        self._purge_dangling_rows()
        self._drop_misrouted_connections()

        if self.get_version() != SCHEMA_REVISION:
            self.set_version(SCHEMA_REVISION)

    def _table_exists(self, name: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name=? COLLATE NOCASE",
            (name,),
        ).fetchone()
        return row is not None

    def _table_columns(self, name: str) -> set[str]:
        return {
            r[1] for r in self.conn.execute(f"PRAGMA table_info({name})").fetchall()
        }

    def _ensure_table(
        self,
        *,
        name: str,
        create_sql_template: str,
        required_columns: set[str],
        copy_map: dict,
        post_sql: list[str] | None = None,
        forbidden_columns: set[str] | None = None,
    ):
        """
        Create or rebuild table `name` to match the target schema.

        Each `copy_map` value is one source expression or a tuple of
        candidates; the first candidate that is a column of the old table (or
        is not a bare identifier at all) wins.
        """
        post_sql = post_sql or []
        forbidden_columns = forbidden_columns or set()

        exists = self._table_exists(name)

        if not exists:
            self.conn.execute(create_sql_template.replace("{table}", name))
            for stmt in post_sql:
                self.conn.execute(stmt)
            return

        existing_cols = self._table_columns(name)

        missing_required = not required_columns.issubset(existing_cols)
        has_forbidden = bool(forbidden_columns.intersection(existing_cols))

        if (not missing_required) and (not has_forbidden):
            for stmt in post_sql:
                self.conn.execute(stmt)
            return

        logger.info("[🛠️] Rebuilding table %s for schema revision %s", name, SCHEMA_REVISION)

        temp = f"_{name}_new"

        prev_fk = self.conn.execute("PRAGMA foreign_keys").fetchone()[0]
        self.conn.execute("PRAGMA foreign_keys = OFF;")

        in_txn = self.conn.in_transaction
        sp_name = f"sp_rebuild_{name}"

        try:
            if in_txn:
                self.conn.execute(f"SAVEPOINT {sp_name};")
            else:
                self.conn.execute("BEGIN;")

            self.conn.execute(create_sql_template.replace("{table}", temp))

            new_cols = list(copy_map.keys())
            select_exprs = []
            for new_col in new_cols:
                candidates = copy_map[new_col]
                if isinstance(candidates, str):
                    candidates = (candidates,)

                expr = None
                for cand in candidates:
                    cand = cand.strip()
                    if cand in existing_cols:
                        expr = f'"{cand}"'
                        break
                    if not cand.isidentifier():
                        expr = cand
                        break
                if expr is None:
                    expr = "CURRENT_TIMESTAMP" if new_col == "last_updated" else "NULL"

                select_exprs.append(expr)

            self.conn.execute(
                f"INSERT OR IGNORE INTO {temp} ({', '.join(new_cols)}) "
                f"SELECT {', '.join(select_exprs)} FROM {name}"
            )

            self.conn.execute(f"DROP TABLE {name};")
            self.conn.execute(f"ALTER TABLE {temp} RENAME TO {name};")

            for stmt in post_sql:
                self.conn.execute(stmt)

            if in_txn:
                self.conn.execute(f"RELEASE SAVEPOINT {sp_name};")
            else:
                self.conn.execute("COMMIT;")

        except Exception:

            if in_txn:
                self.conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name};")
                self.conn.execute(f"RELEASE SAVEPOINT {sp_name};")
            else:
                self.conn.execute("ROLLBACK;")
            raise
        finally:

            self.conn.execute(f"PRAGMA foreign_keys = {1 if prev_fk else 0};")

    def _carry_legacy_webhooks(self) -> int:
        """
        The earlier revision kept each channel's webhook id on the channel
        row. Before that column is dropped, turn every such id into a webhook
        targeting its channel, owned by the first registered user that
        connected through it. Webhooks nobody connected through have no owner
        and are not carried.
        """
        if not self._table_exists("channels"):
            return 0
        if "webhook" not in self._table_columns("channels"):
            return 0
        if not self._table_exists("connections"):
            return 0

        conn_cols = self._table_columns("connections")
        user_col = "user_id" if "user_id" in conn_cols else "user"
        hook_col = "webhook_id" if "webhook_id" in conn_cols else "webhook"

        with self.transaction():
            cur = self.conn.execute(
                f"""
                INSERT OR IGNORE INTO webhooks (id, target_channel_id, owner_user_id)
                SELECT hook, channel_id, owner FROM (
                    SELECT ch."webhook" AS hook,
                           ch.id        AS channel_id,
                           (SELECT c."{user_col}" FROM connections c
                             WHERE c."{hook_col}" = ch."webhook"
                               AND c."{user_col}" IN (SELECT id FROM users)
                             ORDER BY c.id
                             LIMIT 1) AS owner
                    FROM channels ch
                )
                WHERE owner IS NOT NULL
                """
            )
            carried = cur.rowcount
        if carried:
            logger.info("[🪝] Carried %d webhooks over from channel rows", carried)
        return carried

    def _drop_misrouted_connections(self) -> int:
        """
        A connection must deliver through the webhook of its target channel;
        rows carried from the earlier revision may not.
        """
        with self.transaction():
            cur = self.conn.execute(
                """
                DELETE FROM connections
                WHERE target_channel_id != (
                    SELECT w.target_channel_id FROM webhooks w
                    WHERE w.id = connections.webhook_id
                )
                """
            )
            dropped = cur.rowcount
        if dropped:
            logger.warning("[🧹] Dropped %d connections routed through a foreign webhook", dropped)
        return dropped

    def _purge_dangling_rows(self, max_rounds: int = 8) -> int:
        """
        Delete rows that reference a missing parent. Removing a channel can
        orphan its dependents, so repeat until the check comes back clean.
        """
        removed = 0
        with self.transaction():
            for _ in range(max_rounds):
                bad = self.conn.execute("PRAGMA foreign_key_check").fetchall()
                if not bad:
                    break
                for table, rowid in {(r[0], r[1]) for r in bad}:
                    self.conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (rowid,))
                    removed += 1
        if removed:
            logger.warning("[🧹] Dropped %d rows with dangling references", removed)
        return removed

    # --------------------------------------------------------------- config

    def set_config(self, key: str, value: str) -> None:
        with self.transaction():
            self.conn.execute(
                "INSERT INTO app_config(key,value) VALUES(?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
                "last_updated=CURRENT_TIMESTAMP",
                (key, value),
            )

    def get_config(self, key: str, default: str = "") -> str:
        row = self._fetchone("SELECT value FROM app_config WHERE key=?", (key,))
        return row["value"] if row else default

    def get_all_config(self) -> dict[str, str]:
        return {
            r["key"]: r["value"]
            for r in self._fetchall("SELECT key, value FROM app_config")
        }

    def delete_config(self, key: str) -> None:
        with self.transaction():
            self.conn.execute("DELETE FROM app_config WHERE key=?", (key,))

    def get_version(self) -> str:
        """
        Schema revision recorded by the last successful `_init_schema`.
        """
        row = self._fetchone("SELECT version FROM settings WHERE id = 1")
        return row[0] if row else ""

    def set_version(self, version: str):
        with self.transaction():
            self.conn.execute(
                """
                INSERT INTO settings (id, version) VALUES (1, ?)
                ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                              last_updated = CURRENT_TIMESTAMP
                """,
                (version,),
            )

    # --------------------------------------------------------------- users

    def insert_user(self, user_id: int, name: str) -> None:
        with self.transaction():
            self.conn.execute(
                "INSERT INTO users (id, name) VALUES (?, ?)", (int(user_id), name)
            )

    def get_user(self, user_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone("SELECT * FROM users WHERE id = ?", (int(user_id),))

    def list_users(self) -> List[sqlite3.Row]:
        return self._fetchall("SELECT * FROM users ORDER BY id")

    def set_user_flag(self, user_id: int, flag: str, value: bool) -> int:
        if flag not in _USER_FLAGS:
            raise ValueError(f"unknown user flag {flag!r}")
        with self.transaction():
            cur = self.conn.execute(
                f"UPDATE users SET {flag} = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
                (1 if value else 0, int(user_id)),
            )
            return cur.rowcount

    def rename_user(self, user_id: int, name: str) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "UPDATE users SET name = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
                (name, int(user_id)),
            )
            return cur.rowcount

    # --------------------------------------------------------------- guilds

    def insert_guild(self, guild_id: int, name: str) -> None:
        with self.transaction():
            self.conn.execute(
                "INSERT INTO guilds (id, name) VALUES (?, ?)", (int(guild_id), name)
            )

    def get_guild(self, guild_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone("SELECT * FROM guilds WHERE id = ?", (int(guild_id),))

    def list_guilds(self) -> List[sqlite3.Row]:
        return self._fetchall("SELECT * FROM guilds ORDER BY LOWER(name) ASC, id")

    def set_guild_banned(self, guild_id: int, banned: bool) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "UPDATE guilds SET is_banned = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
                (1 if banned else 0, int(guild_id)),
            )
            return cur.rowcount

    def rename_guild(self, guild_id: int, name: str) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "UPDATE guilds SET name = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
                (name, int(guild_id)),
            )
            return cur.rowcount

    # ------------------------------------------------------------- channels

    def insert_channel(self, channel_id: int, guild_id: int, name: str) -> None:
        with self.transaction():
            self.conn.execute(
                "INSERT INTO channels (id, name, guild_id) VALUES (?, ?, ?)",
                (int(channel_id), name, int(guild_id)),
            )

    def get_channel(self, channel_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone(
            "SELECT * FROM channels WHERE id = ?", (int(channel_id),)
        )

    def list_channels(self, guild_id: int | None = None) -> List[sqlite3.Row]:
        if guild_id is None:
            return self._fetchall("SELECT * FROM channels ORDER BY guild_id, id")
        return self._fetchall(
            "SELECT * FROM channels WHERE guild_id = ? ORDER BY id", (int(guild_id),)
        )

    def channel_ids_for_guild(self, guild_id: int) -> list[int]:
        rows = self._fetchall(
            "SELECT id FROM channels WHERE guild_id = ?", (int(guild_id),)
        )
        return [int(r[0]) for r in rows]

    def rename_channel(self, channel_id: int, name: str) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "UPDATE channels SET name = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
                (name, int(channel_id)),
            )
            return cur.rowcount

    def existing_channel_ids(self, channel_ids: Sequence[int]) -> list[int]:
        return self._collect_ids("SELECT id FROM channels WHERE id IN ({m})", channel_ids)

    # ------------------------------------------------------------- webhooks

    def insert_webhook(
        self, webhook_id: int, target_channel_id: int, owner_user_id: int
    ) -> None:
        with self.transaction():
            self.conn.execute(
                "INSERT INTO webhooks (id, target_channel_id, owner_user_id) VALUES (?, ?, ?)",
                (int(webhook_id), int(target_channel_id), int(owner_user_id)),
            )

    def get_webhook(self, webhook_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone(
            "SELECT * FROM webhooks WHERE id = ?", (int(webhook_id),)
        )

    def get_webhook_for_channel(self, channel_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone(
            "SELECT * FROM webhooks WHERE target_channel_id = ?", (int(channel_id),)
        )

    def list_webhooks(self) -> List[sqlite3.Row]:
        return self._fetchall("SELECT * FROM webhooks ORDER BY id")

    def webhook_ids_for_channels(self, channel_ids: Sequence[int]) -> list[int]:
        return self._collect_ids(
            "SELECT id FROM webhooks WHERE target_channel_id IN ({m})", channel_ids
        )

    def existing_webhook_ids(self, webhook_ids: Sequence[int]) -> list[int]:
        return self._collect_ids("SELECT id FROM webhooks WHERE id IN ({m})", webhook_ids)

    # ---------------------------------------------------------- connections

    def insert_connection(
        self,
        source_channel_id: int,
        target_channel_id: int,
        webhook_id: int,
        user_id: int,
    ) -> int:
        with self.transaction():
            cur = self.conn.execute(
                """
                INSERT INTO connections
                    (source_channel_id, target_channel_id, user_id, webhook_id)
                VALUES (?, ?, ?, ?)
                """,
                (
                    int(source_channel_id),
                    int(target_channel_id),
                    int(user_id),
                    int(webhook_id),
                ),
            )
            return int(cur.lastrowid)

    def get_connection(self, connection_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone(
            "SELECT * FROM connections WHERE id = ?", (int(connection_id),)
        )

    def find_connection(
        self,
        source_channel_id: int,
        target_channel_id: int,
        webhook_id: int,
        user_id: int,
    ) -> Optional[sqlite3.Row]:
        return self._fetchone(
            """
            SELECT * FROM connections
            WHERE source_channel_id = ?
              AND target_channel_id = ?
              AND webhook_id = ?
              AND user_id = ?
            """,
            (
                int(source_channel_id),
                int(target_channel_id),
                int(webhook_id),
                int(user_id),
            ),
        )

    def connections_from(self, source_channel_id: int) -> List[sqlite3.Row]:
        return self._fetchall(
            "SELECT * FROM connections WHERE source_channel_id = ? ORDER BY id",
            (int(source_channel_id),),
        )

    def connections_to(self, target_channel_id: int) -> List[sqlite3.Row]:
        return self._fetchall(
            "SELECT * FROM connections WHERE target_channel_id = ? ORDER BY id",
            (int(target_channel_id),),
        )

    def list_connections(self) -> List[sqlite3.Row]:
        return self._fetchall("SELECT * FROM connections ORDER BY id")

    def connection_ids_for_channels(self, channel_ids: Sequence[int]) -> list[int]:
        """
        Connections touching any of the channels, either as an endpoint or
        through a webhook that targets one of them.
        """
        return self._collect_ids(
            """
            SELECT id FROM connections
            WHERE source_channel_id IN ({m})
               OR target_channel_id IN ({m})
               OR webhook_id IN (SELECT id FROM webhooks WHERE target_channel_id IN ({m}))
            """,
            channel_ids,
            repeat=3,
        )

    def connection_ids_for_webhooks(self, webhook_ids: Sequence[int]) -> list[int]:
        return self._collect_ids(
            "SELECT id FROM connections WHERE webhook_id IN ({m})", webhook_ids
        )

    # ------------------------------------------------------------- mentions

    def insert_mention(
        self,
        source_channel_id: int | None,
        target_channel_id: int,
        mention_text: str,
        user_id: int,
    ) -> int:
        with self.transaction():
            cur = self.conn.execute(
                """
                INSERT INTO mentions
                    (source_channel_id, target_channel_id, mention_text, user_id)
                VALUES (?, ?, ?, ?)
                """,
                (
                    int(source_channel_id) if source_channel_id is not None else None,
                    int(target_channel_id),
                    mention_text,
                    int(user_id),
                ),
            )
            return int(cur.lastrowid)

    def get_mention(self, mention_id: int) -> Optional[sqlite3.Row]:
        return self._fetchone("SELECT * FROM mentions WHERE id = ?", (int(mention_id),))

    def best_mention(
        self,
        target_channel_id: int,
        user_id: int,
        source_channel_id: int | None = None,
    ) -> Optional[sqlite3.Row]:
        """
        Source-scoped mappings sort ahead of source-agnostic ones; ties go to
        the newest row.
        """
        if source_channel_id is None:
            return self._fetchone(
                """
                SELECT * FROM mentions
                WHERE target_channel_id = ? AND user_id = ? AND source_channel_id IS NULL
                ORDER BY id DESC
                LIMIT 1
                """,
                (int(target_channel_id), int(user_id)),
            )
        return self._fetchone(
            """
            SELECT * FROM mentions
            WHERE target_channel_id = ?
              AND user_id = ?
              AND (source_channel_id IS NULL OR source_channel_id = ?)
            ORDER BY
                CASE WHEN source_channel_id IS NULL THEN 1 ELSE 0 END,
                id DESC
            LIMIT 1
            """,
            (int(target_channel_id), int(user_id), int(source_channel_id)),
        )

    def mentions_for_target(self, target_channel_id: int) -> List[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT * FROM mentions
            WHERE target_channel_id = ?
            ORDER BY
                CASE WHEN source_channel_id IS NULL THEN 0 ELSE 1 END,
                source_channel_id,
                id ASC
            """,
            (int(target_channel_id),),
        )

    def list_mentions(self) -> List[sqlite3.Row]:
        return self._fetchall("SELECT * FROM mentions ORDER BY id")

    def delete_mentions(
        self,
        target_channel_id: int,
        *,
        match_source: bool = False,
        source_channel_id: int | None = None,
        user_id: int | None = None,
    ) -> int:
        clauses = ["target_channel_id = ?"]
        params: list = [int(target_channel_id)]
        if match_source:
            if source_channel_id is None:
                clauses.append("source_channel_id IS NULL")
            else:
                clauses.append("source_channel_id = ?")
                params.append(int(source_channel_id))
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(int(user_id))

        with self.transaction():
            cur = self.conn.execute(
                f"DELETE FROM mentions WHERE {' AND '.join(clauses)}", params
            )
            return cur.rowcount

    def mention_ids_for_channels(self, channel_ids: Sequence[int]) -> list[int]:
        return self._collect_ids(
            "SELECT id FROM mentions WHERE source_channel_id IN ({m}) OR target_channel_id IN ({m})",
            channel_ids,
            repeat=2,
        )

    # --------------------------------------------------------------- delete

    def delete_rows(self, table: str, ids: Sequence[int]) -> int:
        """
        Delete rows by primary key. No implicit cascade: a row that is still
        referenced raises ForeignKeyViolation.
        """
        if table not in _DELETABLE_TABLES:
            raise ValueError(f"table {table!r} is not deletable")
        if not ids:
            return 0
        removed = 0
        with self.transaction():
            for chunk in _chunks(ids):
                cur = self.conn.execute(
                    f"DELETE FROM {table} WHERE id IN ({_marks(chunk)})", chunk
                )
                removed += cur.rowcount
        return removed

    def count_rows(self, table: str) -> int:
        if table not in _DELETABLE_TABLES + ("users",):
            raise ValueError(f"unknown table {table!r}")
        return int(self._fetchone(f"SELECT COUNT(*) FROM {table}")[0])
