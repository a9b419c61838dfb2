from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Union

from telence.context.window import ContextWindow
from telence.errors import (
    AuthenticationError,
    ResponseDecodeError,
    TelenceError,
    TransportError,
)
from telence.http_retry import HttpTransport

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationSuccess:
    text: str
    tokens_used: int | None = None


@dataclass(frozen=True)
class NoContent:
    """The provider answered but the first candidate carried no text."""

    tokens_used: int | None = None


@dataclass(frozen=True)
class GenerationFailure:
    error: TelenceError


GenerationResult = Union[GenerationSuccess, NoContent, GenerationFailure]


class TextGeneratorAPI(ABC):
    """Abstract base class for text generator providers.

    Subclasses describe the provider's request and response shapes; the
    shared :meth:`generate` sends the request through the retrying transport
    and turns every expected failure into a :class:`GenerationFailure`.
    """

    provider: str = ""

    def __init__(self, model: str, transport: HttpTransport) -> None:
        self.model = model
        self.transport = transport

    @abstractmethod
    async def build_request(self, window: ContextWindow) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return ``(url, headers, json_body)`` for one generation call."""
        raise NotImplementedError

    @abstractmethod
    def parse_response(self, data: Any) -> GenerationSuccess | NoContent:
        """Decode the provider body; raise ResponseDecodeError if it is malformed."""
        raise NotImplementedError

    async def on_transport_error(self, exc: TransportError) -> None:
        """Hook for providers that need to react to HTTP failures."""

    async def generate(self, window: ContextWindow) -> GenerationResult:
        _LOG.info(
            "Generating with provider=%s model=%s turns=%d",
            self.provider,
            self.model,
            len(window),
        )
        try:
            url, headers, body = await self.build_request(window)
            data = await self.transport.post_json(url, body, headers=headers)
            return self.parse_response(data)
        except AuthenticationError as exc:
            _LOG.error("%s authentication failed: %s", self.provider, exc)
            return GenerationFailure(exc)
        except TransportError as exc:
            await self.on_transport_error(exc)
            _LOG.error("%s request failed: %s", self.provider, exc)
            return GenerationFailure(exc)
        except ResponseDecodeError as exc:
            _LOG.error("%s returned an undecodable response: %s", self.provider, exc)
            return GenerationFailure(exc)


def first_item(data: Any, key: str) -> Any | None:
    """Return ``data[key][0]`` or None when the list is absent or empty.

    A present value that is not a list is a decode error.
    """
    if not isinstance(data, dict):
        raise ResponseDecodeError(f"expected a JSON object, got {type(data).__name__}")
    items = data.get(key)
    if items is None:
        return None
    if not isinstance(items, list):
        raise ResponseDecodeError(f"'{key}' is not a list")
    if not items:
        return None
    if not isinstance(items[0], dict):
        raise ResponseDecodeError(f"'{key}[0]' is not an object")
    return items[0]


def as_int(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None
