"""Pydantic schemas for API responses"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PageResponse(BaseModel):
    """One page of a paginated listing plus the filters that produced it"""

    model_config = ConfigDict(extra="allow")

    Items: List[Dict[str, Any]]
    LastEvaluatedKey: Optional[str] = Field(
        None, description="Continuation token, pass back as lastevalkey"
    )


class AlertsCountResponse(BaseModel):
    alertsCount: int


class HealthResponse(BaseModel):
    """Health check response"""

    status: str
    mqtt_connected: bool
    database_connected: bool
    version: str
