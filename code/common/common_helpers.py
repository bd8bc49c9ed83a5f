# =============================================================================
#  Copycord
#  Copyright (C) 2021 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n", ""}


def as_bool(raw, default: bool = False) -> bool:
    """
    Lenient boolean parsing for env/app_config values. Unknown strings fall
    back to `default`.
    """
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return default
    s = str(raw).strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def as_int(raw, default: int = 0) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def parse_id(raw) -> int:
    """
    Accepts a plain snowflake or a Discord-style mention (<#123>, <@!123>).
    """
    s = str(raw).strip()
    if s.startswith("<") and s.endswith(">"):
        s = s[1:-1].lstrip("#@!&")
    return int(s)
