# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================

import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from common.common_helpers import as_bool, as_int
from common.db import DBManager

logger = logging.getLogger(__name__)
CURRENT_VERSION = "v0.3.0"

BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    """
    Runtime settings. A non-empty value in the store's app_config table wins
    over the environment (after `.env` is loaded), which wins over defaults.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        db_path: Optional[str] = None,
        env_file: Optional[Path] = None,
    ):
        load_dotenv(env_file or BASE_DIR / ".env")

        self.logger = (logger or logging.getLogger(__name__)).getChild(
            self.__class__.__name__
        )

        self.DB_PATH = db_path or os.getenv("DB_PATH", "/data/data.db")
        self.DB_BUSY_TIMEOUT_MS = as_int(os.getenv("DB_BUSY_TIMEOUT_MS", "5000"), 5000)
        self.db = DBManager(
            self.DB_PATH, init_schema=True, busy_timeout_ms=self.DB_BUSY_TIMEOUT_MS
        )

        def _get_from_db(key: str):
            try:
                return self.db.get_config(key)
            except Exception:
                self.logger.debug("app_config lookup failed for %s", key, exc_info=True)
                return None

        def _str(key: str, env_default: Optional[str] = None) -> Optional[str]:
            v = _get_from_db(key)
            if v is None or (isinstance(v, str) and v.strip() == ""):
                v = os.getenv(key, env_default)
            return v

        self.LOG_LEVEL = (_str("LOG_LEVEL", "INFO") or "INFO").upper()
        self.ALLOW_SELF_CONNECTIONS = as_bool(_str("ALLOW_SELF_CONNECTIONS", "false"))

    def close(self) -> None:
        self.db.close()
