# text_generators/__init__.py
from __future__ import annotations

from telence.auth import ServiceAccountCredentials
from telence.config import BotConfig, Provider
from telence.errors import ConfigurationError
from telence.http_retry import HttpTransport

from .base import (
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
    NoContent,
    TextGeneratorAPI,
)
from .gemini import GeminiTextGenerator
from .openai_chatgpt import OpenAIChatTextGenerator

__all__ = [
    "TextGeneratorAPI",
    "GenerationResult",
    "GenerationSuccess",
    "GenerationFailure",
    "NoContent",
    "GeminiTextGenerator",
    "OpenAIChatTextGenerator",
    "get_text_generator",
]


def get_text_generator(config: BotConfig, transport: HttpTransport) -> TextGeneratorAPI:
    """Return the text generator selected by ``config``."""
    if config.provider is Provider.OPENAI:
        if not config.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for the openai provider")
        return OpenAIChatTextGenerator(
            config.model_name,
            transport,
            api_key=config.openai_api_key,
        )
    if config.provider is Provider.GEMINI:
        if not (
            config.google_project_id
            and config.google_location
            and config.google_application_credentials
        ):
            raise ConfigurationError(
                "GOOGLE_PROJECT_ID, GOOGLE_LOCATION and GOOGLE_APPLICATION_CREDENTIALS are required for gemini"
            )
        credentials = ServiceAccountCredentials(config.google_application_credentials, transport)
        return GeminiTextGenerator(
            config.model_name,
            transport,
            credentials=credentials,
            project=config.google_project_id,
            location=config.google_location,
            enable_grounding=config.gemini_enable_grounding,
        )
    raise ConfigurationError(f"Unknown LLM provider: {config.provider}")
