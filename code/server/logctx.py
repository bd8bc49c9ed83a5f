# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


import contextlib
import contextvars
import logging

guild_name = contextvars.ContextVar("guild_name", default=None)
channel_label = contextvars.ContextVar("channel_label", default=None)


def format_prefix() -> str:
    """
    Build a prefix like:
      - "[<guild>][#<channel>] " when both are set,
      - "[<guild>] " or "[#<channel>] " when only one is,
      - "" otherwise.
    """
    g = guild_name.get()
    ch = channel_label.get()

    parts = []
    if g:
        parts.append(f"[{g}]")
    if ch:
        parts.append(f"[#{ch}]")

    return "".join(parts) + " " if parts else ""


@contextlib.contextmanager
def scope(*, guild: str | None = None, channel: str | None = None):
    """
    Set the guild/channel labels for the duration of the block.
    """
    g_tok = guild_name.set(guild) if guild is not None else None
    c_tok = channel_label.set(channel) if channel is not None else None
    try:
        yield
    finally:
        if c_tok is not None:
            channel_label.reset(c_tok)
        if g_tok is not None:
            guild_name.reset(g_tok)


class ContextPrefixFilter(logging.Filter):
    """
    Prepend the current guild/channel labels to every log line.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        prefix = format_prefix()

        if prefix and not getattr(record, "_ctx_prefix_injected", False):
            record.msg = prefix + str(record.msg)
            record._ctx_prefix_injected = True
        return True
