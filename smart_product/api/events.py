"""Device event and alert API routes

Mounted before the device routes so that /devices/events and
/devices/alerts are not read as device ids.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from smart_product.api.schemas import AlertsCountResponse, PageResponse
from smart_product.core.deps import Services, get_services
from smart_product.core.security import Ticket, get_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["events"])


@router.get("/events", response_model=PageResponse)
async def list_event_history(
    lastevalkey: Optional[str] = None,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    event_type: Optional[str] = Query(None, alias="eventType"),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """Events of all the caller's devices"""
    page = await services.events.get_event_history(ticket, lastevalkey, device_id, event_type)
    return page.to_dict()


@router.get("/alerts", response_model=PageResponse)
async def list_alerts(
    lastevalkey: Optional[str] = None,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """Unacknowledged events of the types the caller subscribed to"""
    page = await services.alerts.get_alerts(ticket, lastevalkey, device_id)
    return page.to_dict()


@router.get("/alerts/count", response_model=AlertsCountResponse)
async def get_alerts_count(
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    logger.info("Attempting to get the count of alerts")
    return await services.alerts.get_alerts_count(ticket)


@router.get("/{device_id}/events", response_model=PageResponse)
async def list_events(
    device_id: str,
    lastevalkey: Optional[str] = None,
    event_type: Optional[str] = Query(None, alias="eventType"),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    page = await services.events.get_events(ticket, device_id, lastevalkey, event_type)
    return page.to_dict()


@router.get("/{device_id}/events/{event_id}")
async def get_event(
    device_id: str,
    event_id: str,
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    return await services.events.get_event(ticket, device_id, event_id)


@router.put("/{device_id}/events/{event_id}")
async def update_event(
    device_id: str,
    event_id: str,
    changes: Any = Body(None),
    ticket: Ticket = Depends(get_ticket),
    services: Services = Depends(get_services),
):
    """Acknowledge or suppress an event"""
    logger.info(f"Attempting to update event {event_id} for a device {device_id}")
    return await services.events.update_event(ticket, device_id, event_id, changes)
