# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================

"""Operator console for the relay store."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from common.common_helpers import parse_id
from common.config import Config, CURRENT_VERSION
from common.errors import RelayError
from server import logctx
from server.services import RelayServices
from server.snapshot import load_snapshot, save_snapshot

logger = logging.getLogger("server.relayctl")


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-5s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(level)
    if any(getattr(h, "_relayctl", False) for h in root.handlers):
        return

    ch = logging.StreamHandler()
    ch._relayctl = True
    ch.setFormatter(formatter)
    ch.setLevel(level)
    ch.addFilter(logctx.ContextPrefixFilter())
    root.addHandler(ch)


def _status_lines(services: RelayServices) -> List[str]:
    names = {c.id: c.name for c in services.channels.list_channels()}

    def label(cid: int) -> str:
        return f"#{names.get(cid, '?')} ({cid})"

    lines: List[str] = []
    conns = services.connections.list_all()
    if not conns:
        return ["No connections."]
    for c in conns:
        lines.append(
            f"[{c.id}] {label(c.source_channel_id)} -> {label(c.target_channel_id)}"
            f"  webhook={c.webhook_id} user={c.user_id}"
        )
    return lines


def cmd_init(services: RelayServices, args: argparse.Namespace) -> None:
    print(f"Store ready at {services.db.path} (schema {services.db.get_version()})")


def cmd_status(services: RelayServices, args: argparse.Namespace) -> None:
    if args.json:
        print(json.dumps([asdict(c) for c in services.connections.list_all()], indent=2))
        return
    print("\n".join(_status_lines(services)))


def cmd_export(services: RelayServices, args: argparse.Namespace) -> None:
    save_snapshot(services, args.path)


def cmd_import(services: RelayServices, args: argparse.Namespace) -> None:
    counts = load_snapshot(services, args.path)
    print(json.dumps(counts))


def cmd_delete_guild(services: RelayServices, args: argparse.Namespace) -> None:
    report = services.channels.delete_guild(args.guild_id)
    print(json.dumps(report.deleted))


def cmd_delete_channel(services: RelayServices, args: argparse.Namespace) -> None:
    report = services.channels.delete_channel(args.channel_id)
    print(json.dumps(report.deleted))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relayctl", description=f"Relay store console ({CURRENT_VERSION})."
    )
    parser.add_argument("--db", dest="db_path", help="SQLite path (default: $DB_PATH).")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create or upgrade the schema.")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("status", help="List every connection.")
    p.add_argument("--json", action="store_true", help="Emit JSON output.")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("export", help="Write the store to a JSON snapshot.")
    p.add_argument("path", type=Path)
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Load a JSON snapshot into an empty store.")
    p.add_argument("path", type=Path)
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("delete-guild", help="Remove a guild and everything under it.")
    p.add_argument("guild_id", type=parse_id)
    p.set_defaults(func=cmd_delete_guild)

    p = sub.add_parser("delete-channel", help="Remove a channel and its dependents.")
    p.add_argument("channel_id", type=parse_id)
    p.set_defaults(func=cmd_delete_channel)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = Config(db_path=args.db_path)
    _configure_logging(config.LOG_LEVEL)
    services = RelayServices.from_config(config)
    try:
        args.func(services, args)
    except RelayError as e:
        logger.error("[⛔] %s", e)
        return 1
    finally:
        config.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
