from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.schemas.enums import AppStateStatus, PermissionStatus


class DeviceStateUpdate(BaseModel):
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)
    app_state: Optional[AppStateStatus] = None
    foreground_permission: Optional[PermissionStatus] = None
    background_permission: Optional[PermissionStatus] = None


class LocationCoords(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class LocationObject(BaseModel):
    """Location fix as reported by the host runtime (timestamp in epoch ms)."""

    coords: LocationCoords
    timestamp: float


class TaskError(BaseModel):
    message: str
    code: Optional[str] = None


class LocationTaskData(BaseModel):
    locations: List[LocationObject] = []


class BackgroundTaskBody(BaseModel):
    data: Optional[LocationTaskData] = None
    error: Optional[TaskError] = None


class PushRegisterRequest(BaseModel):
    token: str  # Expo push token


class NotificationActionRequest(BaseModel):
    action: str
    data: Dict[str, Any] = {}


class NotificationSettingsUpdate(BaseModel):
    venue_transitions: Optional[bool] = None
    proximity_alerts: Optional[bool] = None
    status_changes: Optional[bool] = None
