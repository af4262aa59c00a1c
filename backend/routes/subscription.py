from fastapi import APIRouter, Request
from middleware import get_session_email
from services.quota_gate import get_subscription_summary

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/status")
async def subscription_status(request: Request):
    """Plan, usage and remaining free quotations (-1 = unlimited)."""
    return await get_subscription_summary(await get_session_email(request))
