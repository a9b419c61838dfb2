"""Environment-driven bot configuration.

Secrets and deployment-specific values live in the environment (``.env`` is
loaded by ``__main__``). Everything is validated once at startup; a bad
configuration raises :class:`ConfigurationError` and the bot refuses to start.
"""

from __future__ import annotations

import enum
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from telence.errors import ConfigurationError

DEFAULT_DB = Path("data") / "chat_history.db"


class Provider(str, enum.Enum):
    OPENAI = "openai"
    GEMINI = "gemini"


@dataclass(frozen=True)
class BotConfig:
    discord_token: str
    provider: Provider
    model_name: str
    context_size: int = 20
    max_messages: int = 100
    bot_name: str = "Telence"
    relative_time_threshold_seconds: int = 600
    openai_api_key: str | None = None
    gemini_enable_grounding: bool = False
    google_project_id: str | None = None
    google_location: str | None = None
    google_application_credentials: Path | None = None
    http_retries: int = 3
    http_retry_delay: float = 1.0
    http_timeout: float = 30.0
    db_path: Path = DEFAULT_DB
    log_file: Path | None = None


def _as_bool(raw: str | None, default: bool = False) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _as_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _optional(env: Mapping[str, str], name: str) -> str | None:
    value = (env.get(name) or "").strip()
    return value or None


def load_config(env: Mapping[str, str] | None = None) -> BotConfig:
    """Build a validated :class:`BotConfig` from ``env`` (defaults to ``os.environ``)."""
    if env is None:
        env = os.environ

    token = _optional(env, "DISCORD_TOKEN")
    if not token:
        raise ConfigurationError("Missing required environment variable: DISCORD_TOKEN")

    provider_name = (env.get("LLM_PROVIDER") or "gemini").strip().lower() or "gemini"
    try:
        provider = Provider(provider_name)
    except ValueError as exc:
        choices = ", ".join(p.value for p in Provider)
        raise ConfigurationError(
            f"Invalid LLM_PROVIDER {provider_name!r}; expected one of: {choices}"
        ) from exc

    openai_key = _optional(env, "OPENAI_API_KEY")
    project = _optional(env, "GOOGLE_PROJECT_ID")
    location = _optional(env, "GOOGLE_LOCATION")
    credentials = _optional(env, "GOOGLE_APPLICATION_CREDENTIALS")

    if provider is Provider.OPENAI and not openai_key:
        raise ConfigurationError("Missing OPENAI_API_KEY, required for the openai provider.")
    if provider is Provider.GEMINI:
        missing = [
            name
            for name, value in (
                ("GOOGLE_PROJECT_ID", project),
                ("GOOGLE_LOCATION", location),
                ("GOOGLE_APPLICATION_CREDENTIALS", credentials),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Missing environment variables required for Gemini (Vertex AI): "
                + ", ".join(missing)
            )

    default_model = "gpt-4o" if provider is Provider.OPENAI else "gemini-2.5-pro"
    log_file = _optional(env, "LOG_FILE")

    return BotConfig(
        discord_token=token,
        provider=provider,
        model_name=_optional(env, "MODEL_NAME") or default_model,
        context_size=_as_int(env, "CONTEXT_SIZE", 20),
        max_messages=_as_int(env, "MAX_MESSAGES", 100),
        bot_name=_optional(env, "BOT_NAME") or "Telence",
        relative_time_threshold_seconds=_as_int(
            env, "RELATIVE_TIME_THRESHOLD_SECONDS", 600, minimum=0
        ),
        openai_api_key=openai_key,
        gemini_enable_grounding=_as_bool(env.get("GEMINI_ENABLE_GROUNDING")),
        google_project_id=project,
        google_location=location,
        google_application_credentials=Path(credentials).expanduser() if credentials else None,
        http_retries=_as_int(env, "HTTP_RETRIES", 3),
        http_retry_delay=_as_float(env, "HTTP_RETRY_DELAY", 1.0),
        http_timeout=_as_float(env, "HTTP_TIMEOUT", 30.0),
        db_path=Path(_optional(env, "MESSAGE_DB_PATH") or DEFAULT_DB).expanduser(),
        log_file=Path(log_file).expanduser() if log_file else None,
    )
