"""Device command API routes"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from smart_product.api.schemas import PageResponse
from smart_product.core.deps import Services, get_services
from smart_product.core.security import Ticket, get_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["commands"])


@router.post("/{device_id}/commands", status_code=201)
async def create_command(
    device_id: str,
    payload: Any = Body(None),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """
    Send a set-temp or set-mode command to a device
    The command is stored as pending, written to the device shadow and
    published on the device command topic
    """
    logger.info(f"Attempting to create command information for a device {device_id}")
    return await services.commands.create_command(ticket, device_id, payload)


@router.get("/{device_id}/commands", response_model=PageResponse)
async def list_commands(
    device_id: str,
    lastevalkey: Optional[str] = None,
    command_status: Optional[str] = Query(None, alias="commandStatus"),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """List a device's commands, newest first, optionally by status"""
    page = await services.commands.get_commands(ticket, device_id, lastevalkey, command_status)
    return page.to_dict()


@router.get("/{device_id}/commands/{command_id}")
async def get_command(
    device_id: str,
    command_id: str,
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    return await services.commands.get_command(ticket, device_id, command_id)
