"""Bearer token issuance and verification.

Two interchangeable services bind a request to a user id:

* :class:`LocalTokenService` signs and verifies JWTs with ``SECRET_KEY``.
* :class:`JwksTokenService` verifies JWTs issued by an external identity
  provider against the provider's key set, cached by key id.

``AUTH_PROVIDER`` selects which one :func:`get_token_service` returns.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import httpx
from jose import JWTError, jwt

from .core import Settings, get_settings
from .errors import BadRequestError, ServiceUnavailableError, UnauthorizedError

logger = logging.getLogger(__name__)

LOCAL_SIGN_IN_DISABLED = "Local sign-in is disabled; authenticate with the identity provider"


class TokenService(ABC):
    """Contract shared by both token variants."""

    #: Whether this service can mint tokens for local sign-in
    can_issue = False

    def issue(self, user_id: str) -> str:
        raise BadRequestError(LOCAL_SIGN_IN_DISABLED)

    @abstractmethod
    async def verify(self, token: str) -> str:
        """Return the user id bound to ``token`` or raise ``UnauthorizedError``."""


class LocalTokenService(TokenService):
    """HMAC-signed access tokens."""

    can_issue = True

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str) -> str:
        """Create a signed JWT access token for ``user_id``."""
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        claims = {"sub": str(user_id), "scope": "access", "exp": expire}
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    async def verify(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            raise UnauthorizedError("Invalid token")
        user_id = payload.get("sub")
        if not user_id or payload.get("scope", "access") != "access":
            raise UnauthorizedError("Invalid token")
        return str(user_id)


@dataclass
class CachedKey:
    jwk: dict
    expires_at: float


class JwksCache:
    """
    Time-based, size-bounded cache of signing keys indexed by key id.

    A lookup that misses or finds an expired key refreshes the whole set,
    at most once per ``refresh_cooldown`` seconds, so unknown key ids
    cannot turn every request into a network round trip.
    """

    def __init__(
        self,
        url: str,
        ttl: float = 600,
        max_keys: int = 16,
        refresh_cooldown: float = 10,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock=time.monotonic,
    ):
        self.url = url
        self.ttl = ttl
        self.max_keys = max_keys
        self.refresh_cooldown = refresh_cooldown
        self.timeout = timeout
        self.transport = transport
        self.clock = clock
        self._keys: dict[str, CachedKey] = {}
        self._last_refresh: float | None = None
        self._refresh_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def _fresh(self, kid: str) -> dict | None:
        entry = self._keys.get(kid)
        if entry is None:
            return None
        if entry.expires_at <= self.clock():
            del self._keys[kid]
            return None
        return entry.jwk

    async def get(self, kid: str) -> dict | None:
        """Return the JWK for ``kid``, fetching the key set when needed."""
        jwk = self._fresh(kid)
        if jwk is not None:
            return jwk
        # concurrent misses wait for the refresh already in flight
        async with self._refresh_lock:
            jwk = self._fresh(kid)
            if jwk is not None:
                return jwk
            now = self.clock()
            if self._last_refresh is None or now - self._last_refresh >= self.refresh_cooldown:
                await self.refresh()
        return self._fresh(kid)

    async def refresh(self) -> None:
        """
        Reload the key set from ``url``.

        Raises:
            ServiceUnavailableError: If the provider cannot be reached.
        """
        self._last_refresh = self.clock()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                document = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Fetching key set from %s failed: %s", self.url, exc)
            raise ServiceUnavailableError("Identity provider unavailable") from exc

        expires_at = self.clock() + self.ttl
        for jwk in document.get("keys", []):
            kid = jwk.get("kid")
            if not kid:
                continue
            self._keys.pop(kid, None)
            self._keys[kid] = CachedKey(jwk=jwk, expires_at=expires_at)
        # dicts keep insertion order, so the oldest entries go first
        while len(self._keys) > self.max_keys:
            del self._keys[next(iter(self._keys))]


class JwksTokenService(TokenService):
    """Verification of provider-issued tokens; the ``sub`` claim is the user id."""

    def __init__(
        self,
        keys: JwksCache,
        audience: str | None = None,
        issuer: str | None = None,
    ):
        self.keys = keys
        self.audience = audience
        self.issuer = issuer

    async def verify(self, token: str) -> str:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise UnauthorizedError("Invalid token")
        kid = header.get("kid")
        if not kid:
            raise UnauthorizedError("Invalid token")
        jwk = await self.keys.get(kid)
        if jwk is None:
            raise UnauthorizedError("Invalid token")
        algorithm = jwk.get("alg") or header.get("alg")
        try:
            payload = jwt.decode(
                token,
                jwk,
                algorithms=[algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError:
            raise UnauthorizedError("Invalid token")
        user_id = payload.get("sub")
        if not user_id:
            raise UnauthorizedError("Invalid token")
        return str(user_id)


def build_token_service(settings: Settings) -> TokenService:
    if settings.AUTH_PROVIDER == "jwks":
        cache = JwksCache(
            settings.JWKS_URL,
            ttl=settings.JWKS_CACHE_TTL_SECONDS,
            max_keys=settings.JWKS_CACHE_MAX_KEYS,
            refresh_cooldown=settings.JWKS_REFRESH_COOLDOWN_SECONDS,
            timeout=settings.HTTP_TIMEOUT,
        )
        return JwksTokenService(
            cache, audience=settings.JWT_AUDIENCE, issuer=settings.JWT_ISSUER
        )
    return LocalTokenService(
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


@lru_cache()
def get_token_service() -> TokenService:
    """Return the process-wide token service selected by ``AUTH_PROVIDER``."""
    return build_token_service(get_settings())
