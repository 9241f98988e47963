"""
Configuration and environment loading for GPT Chess.

- Loads settings.yml (YAML) from repo root if present; falls back to environment variables.
- Exposes SETTINGS with keys used across the project (API key, model, sampling knobs).
"""
from dataclasses import dataclass
import logging
import os
from typing import Any, Callable

import yaml
from dotenv import load_dotenv

load_dotenv()

log = logging.getLogger("config")


def _repo_root() -> str:
    # this file: src/gptchess/config.py → repo root is two levels up
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def _load_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        log.exception("Failed to read %s; using environment only", path)
        return {}
    return data if isinstance(data, dict) else {}


_cfg = _load_yaml(os.path.join(_repo_root(), "settings.yml"))


def _get(name: str, default: Any, cast: Callable[[Any], Any] | None = None) -> Any:
    if name in _cfg:
        val = _cfg[name]
        return cast(val) if cast else val
    env = os.environ.get(name)
    if env is not None:
        return cast(env) if cast else env
    return default


@dataclass(frozen=True)
class Settings:
    # Auth / endpoint (OpenAI-compatible wire format)
    llm_api_key: str
    api_base: str

    # Opponent request shape
    model: str
    temperature: float
    max_tokens: int
    history_limit: int

    # Transport / server knobs
    timeout_s: float
    game_ttl_s: int


SETTINGS = Settings(
    llm_api_key=_get("GPTCHESS_API_KEY", _get("OPENAI_API_KEY", "")),
    api_base=_get("GPTCHESS_BASE_URL", ""),
    model=_get("GPTCHESS_MODEL", "gpt-4o"),
    temperature=float(_get("GPTCHESS_TEMPERATURE", 0.2, cast=float)),
    max_tokens=int(_get("GPTCHESS_MAX_TOKENS", 500, cast=int)),
    history_limit=int(_get("GPTCHESS_HISTORY_LIMIT", 5, cast=int)),
    timeout_s=float(_get("GPTCHESS_TIMEOUT_S", 60.0, cast=float)),
    game_ttl_s=int(_get("GPTCHESS_GAME_TTL_S", 3600, cast=int)),
)
