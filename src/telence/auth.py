"""Short-lived OAuth tokens for Vertex AI from a service-account key file.

The token is obtained with the JWT-bearer grant: a signed assertion built
from the key file is exchanged at the token endpoint for a bearer token.
The token is cached in memory and refreshed shortly before it expires.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from google.auth import crypt, jwt

from telence.errors import AuthenticationError, ResponseDecodeError, TransportError
from telence.http_retry import HttpTransport

_LOG = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_BUFFER_SECONDS = 60
ASSERTION_LIFETIME = 3600


@dataclass(frozen=True)
class CachedCredential:
    token: str
    expires_at: float  # epoch seconds

    def is_fresh(self, now: float, buffer_seconds: float) -> bool:
        return now + buffer_seconds < self.expires_at


class ServiceAccountCredentials:
    """Process-wide bearer token cache for one service account.

    States: empty (nothing cached), valid, expiring (within
    ``buffer_seconds`` of expiry, computed on read). Any acquisition failure
    drops the cache entirely and raises :class:`AuthenticationError`; the
    next call starts over. Concurrent callers share one in-flight refresh.
    """

    def __init__(
        self,
        key_path: str | Path,
        transport: HttpTransport,
        *,
        scope: str = CLOUD_PLATFORM_SCOPE,
        buffer_seconds: float = DEFAULT_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key_path = Path(key_path)
        self.transport = transport
        self.scope = scope
        self.buffer_seconds = buffer_seconds
        self._clock = clock
        self._cached: CachedCredential | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        if self._cached is None:
            return "empty"
        if self._cached.is_fresh(self._clock(), self.buffer_seconds):
            return "valid"
        return "expiring"

    def invalidate(self) -> None:
        self._cached = None

    async def get_token(self) -> str:
        """Return a bearer token that is not within the expiry buffer."""
        cached = self._cached
        if cached is not None and cached.is_fresh(self._clock(), self.buffer_seconds):
            return cached.token

        async with self._lock:
            # Another caller may have refreshed while we waited for the lock.
            cached = self._cached
            if cached is not None and cached.is_fresh(self._clock(), self.buffer_seconds):
                return cached.token
            try:
                fresh = await self._acquire()
            except AuthenticationError:
                self._cached = None
                raise
            self._cached = fresh
            _LOG.info("Obtained access token for %s, expires in %.0fs", self.key_path.name, fresh.expires_at - self._clock())
            return fresh.token

    async def _acquire(self) -> CachedCredential:
        info = await self._load_key()
        now = self._clock()
        assertion = self._sign_assertion(info, now)
        token_uri = info.get("token_uri") or TOKEN_URI

        try:
            data = await self.transport.post_form(
                token_uri,
                {"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except (TransportError, ResponseDecodeError) as exc:
            raise AuthenticationError(f"token exchange failed: {exc}") from exc

        if not isinstance(data, dict):
            raise AuthenticationError("token endpoint returned an unexpected body")
        token = data.get("access_token")
        expires_in = data.get("expires_in", ASSERTION_LIFETIME)
        if not isinstance(token, str) or not token:
            raise AuthenticationError("token endpoint response has no access_token")
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError) as exc:
            raise AuthenticationError(f"invalid expires_in: {expires_in!r}") from exc
        if lifetime <= self.buffer_seconds:
            raise AuthenticationError(
                f"token lifetime {lifetime:.0f}s does not exceed the {self.buffer_seconds:.0f}s refresh buffer"
            )
        return CachedCredential(token=token, expires_at=now + lifetime)

    async def _load_key(self) -> dict[str, Any]:
        try:
            raw = await asyncio.to_thread(self.key_path.read_text, "utf-8")
            info = json.loads(raw)
        except (OSError, ValueError) as exc:
            raise AuthenticationError(f"cannot read service account key {self.key_path}: {exc}") from exc
        if not isinstance(info, dict) or "client_email" not in info or "private_key" not in info:
            raise AuthenticationError(f"{self.key_path} is not a service account key file")
        return info

    def _sign_assertion(self, info: dict[str, Any], now: float) -> str:
        issued_at = int(now)
        payload = {
            "iss": info["client_email"],
            "scope": self.scope,
            "aud": info.get("token_uri") or TOKEN_URI,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME,
        }
        try:
            signer = crypt.RSASigner.from_service_account_info(info)
            encoded = jwt.encode(signer, payload)
        except Exception as exc:  # noqa: BLE001 - key parsing errors vary by crypto backend
            raise AuthenticationError(f"cannot sign assertion: {exc}") from exc
        return encoded.decode("utf-8") if isinstance(encoded, bytes) else encoded
