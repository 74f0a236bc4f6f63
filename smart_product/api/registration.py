"""Device registration API routes"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from smart_product.core.deps import Services, get_services
from smart_product.core.security import Ticket, get_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registration", tags=["registration"])


@router.post("")
async def create_registration(
    registration: Any = Body(None),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """
    Register a device to the caller
    Body: {deviceId, deviceName, modelNumber}; the device must be listed in
    the manufacturer reference table and not registered to anyone else
    """
    logger.info("Attempting to create a registration")
    return await services.registrations.create_registration(ticket, registration)


@router.get("")
async def list_registrations(
    ticket: Ticket = Depends(get_ticket), services: Services = Depends(get_services)
):
    return await services.registrations.list_registrations(ticket)
