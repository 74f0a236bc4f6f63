"""User settings API routes"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from smart_product.core.deps import Services, get_services
from smart_product.core.security import Ticket, get_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/settings", tags=["settings"])


@router.get("/config/{setting_id}")
async def get_setting(
    setting_id: str,
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    logger.info(f"Attempting to get setting for a setting {setting_id}")
    return await services.user_settings.get_setting(ticket, setting_id)


@router.put("/config/{setting_id}")
async def update_setting(
    setting_id: str,
    setting: Any = Body(None),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """Replace the alert settings document"""
    logger.info(f"Attempting to update a setting {setting_id}")
    return await services.user_settings.update_setting(ticket, setting_id, setting)


@router.post("/sign-up")
async def confirm_sign_up(
    event: Any = Body(None),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """Post-confirmation trigger forwarded from the user pool"""
    logger.info("Processing a sign-up confirmation")
    return await services.user_settings.confirm_sign_up(ticket, event)
