"""Authentication routes and the request gate."""

import logging

from fastapi import APIRouter, Depends
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from fastapi_limiter.depends import RateLimiter
from fastapi_mail import FastMail
from fastapi_mail.errors import ConnectionErrors
from passlib.context import CryptContext

from . import schemas, crud
from .core import get_settings
from .database import get_redis
from .errors import BadRequestError, NoteChatError, UnauthorizedError
from .mail import get_mailer, send_otp_email
from .otp import OtpStore
from .store import Store, get_store
from .tokens import LOCAL_SIGN_IN_DISABLED, TokenService, get_token_service

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)
token_header = APIKeyHeader(name="auth-token", auto_error=False)
router = APIRouter(prefix="/api/auth", tags=["auth"])

settings = get_settings()
otp_rate_limiter = RateLimiter(
    times=settings.OTP_RATE_LIMIT, seconds=settings.OTP_RATE_WINDOW_SECONDS
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def extract_token(
    bearer: HTTPAuthorizationCredentials | None, custom: str | None
) -> str | None:
    """Pick the credential of a request: the Bearer header wins over ``auth-token``."""
    if bearer is not None and bearer.credentials:
        return bearer.credentials
    return custom or None


async def get_current_user_id(
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    custom: str | None = Depends(token_header),
    tokens: TokenService = Depends(get_token_service),
) -> str:
    """Dependency that verifies the request credential and returns the user id."""
    token = extract_token(bearer, custom)
    if not token:
        raise UnauthorizedError("No token provided")
    return await tokens.verify(token)


def get_current_user(
    user_id: str = Depends(get_current_user_id), store: Store = Depends(get_store)
) -> dict:
    """Dependency that returns the authenticated user's public fields."""
    user = crud.get_user_by_id(store, user_id)
    if user is None:
        raise UnauthorizedError("Invalid token")
    return user


async def get_otp_store(redis=Depends(get_redis)) -> OtpStore:
    return OtpStore(redis, ttl_seconds=get_settings().OTP_TTL_SECONDS)


@router.post("/createuser", response_model=schemas.SignupResponse)
def create_user(
    user_in: schemas.UserCreate,
    store: Store = Depends(get_store),
    tokens: TokenService = Depends(get_token_service),
):
    """Register a new user and return an access token."""

    if not tokens.can_issue:
        raise BadRequestError(LOCAL_SIGN_IN_DISABLED)
    user = crud.create_user(
        store,
        name=user_in.name,
        uname=user_in.uname,
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
    )
    logger.info("Registered user %s", user["id"])
    return schemas.SignupResponse(token=tokens.issue(user["id"]))


@router.post("/login", response_model=schemas.LoginResponse)
def login(
    credentials: schemas.LoginRequest,
    store: Store = Depends(get_store),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Authenticate with email and password.

    Unknown emails and wrong passwords fail with the same message, and an
    unknown email still pays for one hash verification.
    """

    if not tokens.can_issue:
        raise BadRequestError(LOCAL_SIGN_IN_DISABLED)
    user = crud.get_user_by_email(store, credentials.email)
    if user is None or not user["password"]:
        pwd_context.dummy_verify()
        raise BadRequestError("Invalid credentials")
    if not verify_password(credentials.password, user["password"]):
        raise BadRequestError("Invalid credentials")
    return schemas.LoginResponse(
        token=tokens.issue(user["id"]), uname=user["uname"], id=user["id"]
    )


@router.post(
    "/send-email-otp",
    response_model=schemas.StatusResponse,
    dependencies=[Depends(otp_rate_limiter)],
)
async def send_email_otp(
    request: schemas.EmailRequest,
    otps: OtpStore = Depends(get_otp_store),
    mailer: FastMail = Depends(get_mailer),
):
    """Email a one-time code to the requested address."""

    code = await otps.issue(request.email)
    try:
        await send_otp_email(
            mailer, request.email, code, ttl_minutes=otps.ttl_seconds // 60
        )
    except ConnectionErrors as exc:
        logger.error("Sending OTP email failed: %s", exc)
        await otps.discard(request.email)
        raise NoteChatError("Failed to send OTP")
    return schemas.StatusResponse(message="OTP sent")


@router.post(
    "/verify-email-otp",
    response_model=schemas.StatusResponse,
    dependencies=[Depends(otp_rate_limiter)],
)
async def verify_email_otp(
    request: schemas.OtpVerifyRequest, otps: OtpStore = Depends(get_otp_store)
):
    """Consume a one-time code."""

    await otps.verify(request.email, request.otp)
    return schemas.StatusResponse(message="OTP verified")
