# text_generators/openai_chatgpt.py
from __future__ import annotations

import logging
from typing import Any

from telence.context.window import ContextWindow
from telence.errors import ResponseDecodeError
from telence.http_retry import HttpTransport

from .base import GenerationSuccess, NoContent, TextGeneratorAPI, as_int, first_item

_LOG = logging.getLogger(__name__)

CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIChatTextGenerator(TextGeneratorAPI):
    """Text-generation backend for OpenAI chat models.

    Sends the window's turns unchanged as ``messages`` to the Chat
    Completions endpoint, authenticated with a static API key.
    """

    provider = "openai"

    def __init__(
        self,
        model: str,
        transport: HttpTransport,
        *,
        api_key: str,
        url: str = CHAT_COMPLETIONS_URL,
    ) -> None:
        super().__init__(model, transport)
        self.api_key = api_key
        self.url = url

    async def build_request(self, window: ContextWindow) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {"model": self.model, "messages": window.to_payload()}
        return self.url, headers, body

    def parse_response(self, data: Any) -> GenerationSuccess | NoContent:
        choice = first_item(data, "choices")
        usage = data.get("usage")
        tokens = as_int(usage.get("total_tokens")) if isinstance(usage, dict) else None
        if choice is None:
            return NoContent(tokens)

        message = choice.get("message")
        if message is None:
            return NoContent(tokens)
        if not isinstance(message, dict):
            raise ResponseDecodeError("'choices[0].message' is not an object")
        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise ResponseDecodeError("'choices[0].message.content' is not a string")
        text = (content or "").strip()
        if not text:
            return NoContent(tokens)
        return GenerationSuccess(text, tokens)
