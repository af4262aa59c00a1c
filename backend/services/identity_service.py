"""Identity - passwordless sign-in with single-use email links.

A magic link carries a random token; only its SHA-256 hash is stored, with an
expiry (MongoDB TTL index removes stale rows). Verifying consumes the token
atomically, creates the user on first sign-in and issues a session JWT.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from urllib.parse import urlencode
import logging
import os

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import create_access_token, generate_secure_token, hash_token
from database import database
from models import User, UserResponse, TokenResponse, AuthProvider
from services.email_service import email_service
from utils.errors import UnauthorizedError, UserNotFoundError, DeliveryFailedError
from utils.rate_limiter import rate_limiter

logger = logging.getLogger(__name__)

MAGIC_LINK_TTL_MINUTES = int(os.getenv("MAGIC_LINK_TTL_MINUTES", "15"))
MAGIC_LINK_MAX_REQUESTS = 5
MAGIC_LINK_WINDOW_MINUTES = 15

GENERIC_MAGIC_LINK_MESSAGE = "If the address is valid, a sign-in link is on its way."


def _app_url() -> str:
    return os.getenv("APP_URL", "https://fwdlink.io").rstrip("/")


def build_sign_in_link(email: str, token: str) -> str:
    return f"{_app_url()}/auth/verify?{urlencode({'email': email, 'token': token})}"


async def request_magic_link(email: str) -> Dict[str, Any]:
    """Issue and email a sign-in link. The answer is the same whether or not the user exists."""
    email = email.strip().lower()

    allowed, error = await rate_limiter.check_rate_limit(
        key=f"magic_link:{email}",
        max_attempts=MAGIC_LINK_MAX_REQUESTS,
        window_minutes=MAGIC_LINK_WINDOW_MINUTES,
    )
    if not allowed:
        logger.warning(f"Magic link throttled for {email}: {error}")
        return {"success": True, "message": GENERIC_MAGIC_LINK_MESSAGE}

    token = generate_secure_token()
    now = datetime.now(timezone.utc)
    await database.get_db().magic_links.insert_one({
        "token_hash": hash_token(token),
        "email": email,
        "expires_at": now + timedelta(minutes=MAGIC_LINK_TTL_MINUTES),
        "used_at": None,
        "created_at": now,
    })

    log = await email_service.send_magic_link_email(
        recipient=email,
        sign_in_link=build_sign_in_link(email, token),
        ttl_minutes=MAGIC_LINK_TTL_MINUTES,
    )
    if log.status != "sent":
        raise DeliveryFailedError("Could not send the sign-in email. Please try again.")

    logger.info(f"Magic link issued for {email}")
    return {"success": True, "message": GENERIC_MAGIC_LINK_MESSAGE}


async def _get_or_create_user(email: str, now: datetime):
    """Returns (user_doc, is_new). A concurrent first sign-in resolves to the same record."""
    db = database.get_db()
    existing = await db.users.find_one_and_update(
        {"email": email},
        {"$set": {"last_login_at": now, "updated_at": now}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if existing:
        return existing, False

    user = User(
        email=email,
        name=email.split("@")[0],
        provider=AuthProvider.EMAIL,
        email_verified_at=now,
        last_login_at=now,
    )
    doc = user.model_dump()
    try:
        await db.users.insert_one(doc)
    except DuplicateKeyError:
        existing = await db.users.find_one({"email": email}, {"_id": 0})
        return existing, False
    doc.pop("_id", None)
    logger.info(f"New user {user.user_id} created for {email}")
    return doc, True


async def verify_magic_link(email: str, token: str) -> TokenResponse:
    """Consume a sign-in token and open a session."""
    email = email.strip().lower()
    now = datetime.now(timezone.utc)

    link = await database.get_db().magic_links.find_one_and_update(
        {
            "token_hash": hash_token(token),
            "email": email,
            "used_at": None,
            "expires_at": {"$gt": now},
        },
        {"$set": {"used_at": now}},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if not link:
        logger.warning(f"Invalid or expired magic link for {email}")
        raise UnauthorizedError("Invalid or expired sign-in link")

    user, is_new = await _get_or_create_user(email, now)
    access_token = create_access_token({"sub": user["user_id"], "email": email})
    return TokenResponse(
        access_token=access_token,
        user=UserResponse(**user),
        is_new_user=is_new,
    )


async def get_me(session_email: Optional[str]) -> UserResponse:
    if not session_email:
        raise UnauthorizedError()
    user = await database.get_db().users.find_one({"email": session_email.lower()}, {"_id": 0})
    if not user:
        raise UserNotFoundError()
    return UserResponse(**user)
