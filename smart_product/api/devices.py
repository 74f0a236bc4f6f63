"""Device API routes"""

import logging

from fastapi import APIRouter, Depends

from smart_product.core.deps import Services, get_services
from smart_product.core.security import Ticket, get_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["devices"])


@router.get("")
async def list_devices(
    ticket: Ticket = Depends(get_ticket), services: Services = Depends(get_services)
):
    """Things owned by the caller"""
    return await services.devices.get_devices(ticket)


@router.get("/{device_id}")
async def get_device(
    device_id: str,
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    return await services.devices.get_device(ticket, device_id)


@router.delete("/{device_id}")
async def delete_device(
    device_id: str,
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """
    Remove a device
    The registration is kept with status deleted; the thing, its
    certificates and policies are deleted
    """
    logger.info(f"Attempting to delete device {device_id}")
    return await services.devices.delete_device(ticket, device_id)


@router.get("/{device_id}/status")
async def get_device_status(
    device_id: str,
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """Current shadow of a device and whether it is connected"""
    return await services.devices.get_device_status(ticket, device_id)
