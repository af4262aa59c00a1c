from fastapi import APIRouter, Request
from middleware import get_session_email
from models import BrandingUpdate
from services import branding_service

router = APIRouter(prefix="/api/branding", tags=["branding"])


@router.get("")
async def get_branding(request: Request):
    return await branding_service.get_branding(await get_session_email(request))


@router.put("")
async def update_branding(body: BrandingUpdate, request: Request):
    return await branding_service.update_branding(await get_session_email(request), body)


@router.delete("/logo")
async def remove_logo(request: Request):
    return await branding_service.remove_logo(await get_session_email(request))
