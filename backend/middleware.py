from fastapi import Request
from typing import Optional
import logging
from auth import decode_access_token

logger = logging.getLogger(__name__)

async def get_current_user(request: Request) -> Optional[dict]:
    """Extract and validate current user from JWT token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ", 1)[1].strip()
    payload = decode_access_token(token)

    if not payload:
        return None

    return payload

async def get_session_email(request: Request) -> Optional[str]:
    """Session provider: the signed-in email, or None for anonymous requests."""
    user = await get_current_user(request)
    if not user or not user.get("email"):
        return None
    return user["email"].strip().lower()
