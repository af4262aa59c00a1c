"""Auth Routes - passwordless sign-in.

POST /api/auth/magic-link - email a single-use sign-in link
POST /api/auth/verify     - exchange email + token for a session JWT
GET  /api/auth/me         - current user, usage and plan
"""
from fastapi import APIRouter, Request
from middleware import get_session_email
from models import MagicLinkRequest, MagicLinkVerify, TokenResponse, UserResponse
from services import identity_service

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/magic-link")
async def request_magic_link(body: MagicLinkRequest):
    return await identity_service.request_magic_link(body.email)


@router.post("/verify", response_model=TokenResponse)
async def verify_magic_link(body: MagicLinkVerify):
    return await identity_service.verify_magic_link(body.email, body.token)


@router.get("/me", response_model=UserResponse)
async def get_me(request: Request):
    return await identity_service.get_me(await get_session_email(request))
