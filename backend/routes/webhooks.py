"""Webhook Routes - billing provider subscription events.

POST /api/webhooks/billing - HMAC-signed (X-Signature) subscription events.

Responses: 200 applied, 400 malformed payload, 403 bad signature,
404 unknown user, 500 missing secret or processing error.
"""
from fastapi import APIRouter, Header, Request
from services.subscription_sync import apply_webhook
from typing import Optional

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/billing")
async def billing_webhook(
    request: Request,
    x_signature: Optional[str] = Header(None, alias="X-Signature"),
):
    # Signature covers the exact bytes received
    raw_body = await request.body()
    return await apply_webhook(raw_body, x_signature)
