"""Email one-time codes kept in Redis.

Each record lives under ``otp:<email>`` with a native TTL, so every process
instance sees the same codes and expiry needs no sweeping.
"""

import hmac
import secrets

from .errors import BadRequestError

KEY_PREFIX = "otp:"


def otp_key(email: str) -> str:
    return f"{KEY_PREFIX}{email.strip().lower()}"


def generate_code() -> str:
    """Return a random 6-digit numeric code."""
    return str(100000 + secrets.randbelow(900000))


class OtpStore:
    """Issue and consume one-time codes."""

    def __init__(self, redis, ttl_seconds: int = 600):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def issue(self, email: str) -> str:
        """Create a code for ``email``, replacing any earlier one."""
        code = generate_code()
        await self.redis.set(otp_key(email), code, ex=self.ttl_seconds)
        return code

    async def discard(self, email: str) -> None:
        await self.redis.delete(otp_key(email))

    async def verify(self, email: str, code: str) -> None:
        """
        Consume the code for ``email``.

        A wrong code leaves the record in place. A matching code is deleted,
        and only the caller whose delete removed it succeeds.

        Raises:
            BadRequestError: If no live code exists or ``code`` does not match.
        """
        key = otp_key(email)
        stored = await self.redis.get(key)
        if stored is None:
            raise BadRequestError("OTP expired or not requested")
        if not hmac.compare_digest(str(stored).encode(), str(code).strip().encode()):
            raise BadRequestError("Invalid OTP")
        if await self.redis.delete(key) != 1:
            raise BadRequestError("OTP expired or not requested")
