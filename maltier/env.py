from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationError

from .constants import ENV_FILE, LOGGER

REQUIRED_ENV = (
    "MAL_CLIENT_ID",
    "MAL_CLIENT_SECRET",
    "MAL_REDIRECT_URI",
)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    if not ENV_FILE.exists():
        return
    load_dotenv(ENV_FILE, override=True)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    redirect_uri = os.getenv("MAL_REDIRECT_URI", "").strip()
    try:
        AnyHttpUrl(redirect_uri)
    except ValidationError as error:
        raise RuntimeError(
            "MAL_REDIRECT_URI must be a valid http(s) URL (for example: "
            "https://tiers.example.com/oauth/callback)."
        ) from error

    if get_env_float("MAL_API_TIMEOUT", 1.0) <= 0:
        raise RuntimeError("MAL_API_TIMEOUT must be greater than zero.")
    for key in ("MAL_LIST_PAGE_SIZE", "MAL_CHALLENGE_TTL_SECONDS"):
        if get_env_int(key, 1) <= 0:
            raise RuntimeError(f"{key} must be greater than zero.")


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("MALTIER_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
