from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger("maltier.api")
APP_VERSION = "0.1.0"

MAL_API_BASE_URL = "https://api.myanimelist.net/v2"
DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_PAGES = 100
DEFAULT_API_TIMEOUT = 10.0

SESSION_COOKIE_NAME = "session_id"
ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
