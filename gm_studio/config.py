"""Runtime settings for GM Studio.

Values come from environment variables, falling back to a .env file in
the working directory. Recognised keys:

    GEMINI_API_KEY / GOOGLE_API_KEY / API_KEY   Gemini API key
    GM_STUDIO_MODEL                             Gemini model name
    LICHESS_BASE_URL                            lichess origin
    LICHESS_TIMEOUT_SECONDS                     HTTP timeout for lichess
    GM_STUDIO_LOG_LEVEL                         logging level name
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_LICHESS_URL = "https://lichess.org"
DEFAULT_TIMEOUT_SECONDS = 20.0

_API_KEY_NAMES = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    lichess_base_url: str = DEFAULT_LICHESS_URL
    lichess_timeout: float = DEFAULT_TIMEOUT_SECONDS
    log_level: str = "WARNING"


def read_env_file(path: Path) -> dict[str, str]:
    """Parse KEY=VALUE lines from a .env file.

    Blank lines and '#' comments are skipped; surrounding quotes are
    stripped from values. A missing file yields an empty dict.
    """
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        values[key] = value.strip().strip("'\"")
    return values


def load_settings(
    env: Mapping[str, str] | None = None,
    env_file: Path | None = None,
) -> Settings:
    """Build Settings from the environment with .env fallback.

    Args:
        env: Mapping to read instead of os.environ.
        env_file: Path of the .env file (default: ./.env).

    Returns:
        Populated Settings.
    """
    environ = dict(os.environ if env is None else env)
    file_values = read_env_file(env_file or Path.cwd() / ".env")

    def _get(name: str, default: str = "") -> str:
        value = environ.get(name)
        if value is None or not value.strip():
            value = file_values.get(name, default)
        return value.strip()

    api_key = ""
    for name in _API_KEY_NAMES:
        api_key = _get(name)
        if api_key:
            break

    timeout_raw = _get("LICHESS_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))
    try:
        timeout = float(timeout_raw)
    except ValueError:
        timeout = DEFAULT_TIMEOUT_SECONDS

    return Settings(
        api_key=api_key,
        model=_get("GM_STUDIO_MODEL", DEFAULT_MODEL),
        lichess_base_url=_get("LICHESS_BASE_URL", DEFAULT_LICHESS_URL).rstrip("/"),
        lichess_timeout=timeout,
        log_level=_get("GM_STUDIO_LOG_LEVEL", "WARNING").upper(),
    )
