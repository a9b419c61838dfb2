# text_generators/gemini.py
"""Gemini on Vertex AI via the REST ``generateContent`` endpoint."""
from __future__ import annotations

import logging
from typing import Any

from telence.auth import ServiceAccountCredentials
from telence.context.window import ContextWindow
from telence.errors import ResponseDecodeError, TransportError
from telence.http_retry import HttpTransport

from .base import GenerationSuccess, NoContent, TextGeneratorAPI, as_int, first_item

_LOG = logging.getLogger(__name__)

VERTEX_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google/models/{model}:generateContent"
)


class GeminiTextGenerator(TextGeneratorAPI):
    """Text-generation backend for Gemini models served by Vertex AI.

    Authenticates with a service-account bearer token. System turns become
    the request's ``systemInstruction``; ``assistant`` turns are sent with
    Gemini's ``model`` role. With grounding enabled, Google Search is attached
    as a tool.
    """

    provider = "gemini"

    def __init__(
        self,
        model: str,
        transport: HttpTransport,
        *,
        credentials: ServiceAccountCredentials,
        project: str,
        location: str,
        enable_grounding: bool = False,
    ) -> None:
        super().__init__(model, transport)
        self.credentials = credentials
        self.project = project
        self.location = location
        self.enable_grounding = enable_grounding

    @property
    def url(self) -> str:
        return VERTEX_URL.format(location=self.location, project=self.project, model=self.model)

    @staticmethod
    def convert_turns(window: ContextWindow) -> tuple[str | None, list[dict[str, Any]]]:
        """Convert turns to ``(system_instruction, contents)``.

        Consecutive turns of the same role are merged into one content with
        several parts.
        """
        system_parts: list[str] = []
        contents: list[dict[str, Any]] = []
        for turn in window.turns:
            if turn.role == "system":
                system_parts.append(turn.content)
                continue
            # Map roles: user stays user, assistant becomes model
            role = "model" if turn.role == "assistant" else "user"
            part = {"text": turn.content}
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].append(part)
            else:
                contents.append({"role": role, "parts": [part]})
        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents

    async def build_request(self, window: ContextWindow) -> tuple[str, dict[str, str], dict[str, Any]]:
        token = await self.credentials.get_token()
        system_instruction, contents = self.convert_turns(window)
        body: dict[str, Any] = {"contents": contents}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if self.enable_grounding:
            body["tools"] = [{"googleSearch": {}}]
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        return self.url, headers, body

    async def on_transport_error(self, exc: TransportError) -> None:
        if exc.status in (401, 403):
            _LOG.warning("Vertex AI rejected the access token (HTTP %s); dropping it", exc.status)
            self.credentials.invalidate()

    def parse_response(self, data: Any) -> GenerationSuccess | NoContent:
        candidate = first_item(data, "candidates")
        usage = data.get("usageMetadata")
        tokens = as_int(usage.get("totalTokenCount")) if isinstance(usage, dict) else None
        if candidate is None:
            feedback = data.get("promptFeedback")
            if feedback:
                _LOG.warning("Gemini returned no candidates: %s", feedback)
            return NoContent(tokens)

        content = candidate.get("content")
        if content is None:
            _LOG.warning("Gemini candidate has no content (finishReason=%s)", candidate.get("finishReason"))
            return NoContent(tokens)
        if not isinstance(content, dict):
            raise ResponseDecodeError("'candidates[0].content' is not an object")
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise ResponseDecodeError("'candidates[0].content.parts' is not a list")

        text_parts: list[str] = []
        for part in parts:
            if not isinstance(part, dict):
                raise ResponseDecodeError("content part is not an object")
            text = part.get("text")
            if isinstance(text, str) and text:
                text_parts.append(text)
        reply = "".join(text_parts).strip()
        if not reply:
            return NoContent(tokens)
        return GenerationSuccess(reply, tokens)
