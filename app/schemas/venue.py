from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import Field

from app.schemas.base import WireSchema
from app.schemas.enums import EntryStatus, ExitReason, QrScanOutcome, VenueState


# ---------- location ----------
class LocationCoordinates(WireSchema):
    lat: float
    lng: float
    accuracy: float = 0.0
    timestamp: datetime


class UserLocation(WireSchema):
    latitude: float
    longitude: float
    accuracy: float = 10.0
    timestamp: datetime


# ---------- ping session ----------
class VenueEventSession(WireSchema):
    event_id: Optional[str] = None
    venue_id: str = Field(..., min_length=1)
    qr_code_id: str = ""
    event_name: str
    venue_name: str
    joined_at: datetime
    session_nonce: Optional[str] = None
    is_active: bool = True


class VenuePingResult(WireSchema):
    venue_id: str
    success: bool
    current_state: VenueState
    state_changed: bool = False
    profile_visible: bool = False
    next_ping_interval: int = 60
    user_message: Optional[str] = None
    distance: Optional[float] = None
    accuracy: Optional[float] = None


class PingLocation(WireSchema):
    lat: float
    lng: float
    accuracy: float


class PingVenue(WireSchema):
    venue_id: str
    location: PingLocation


class VenuePingRequest(WireSchema):
    venues: List[PingVenue]
    battery_level: float
    movement_speed: float
    session_id: str


class VenuePingResponse(WireSchema):
    success: bool
    results: List[VenuePingResult] = []


class PingStats(WireSchema):
    total_pings: int = 0
    successful_pings: int = 0
    average_ping_interval: float = 60
    last_reset_time: float = 0.0


# ---------- venues / hooked hours ----------
class HoursWindow(WireSchema):
    open: str
    close: str
    closed: bool = False


class Venue(WireSchema):
    id: str
    name: str
    coordinates: Tuple[float, float]  # (lng, lat)
    hooked_hours: Optional[Dict[str, HoursWindow]] = None
    opening_hours: Optional[Dict[str, HoursWindow]] = None


# ---------- foreground store ----------
class EntryLocation(WireSchema):
    latitude: float
    longitude: float
    accuracy: float


class VenueEventEntry(WireSchema):
    venue_id: str
    venue_name: str
    event_name: str
    nonce: str
    joined_at: datetime
    last_ping_at: Optional[datetime] = None
    status: EntryStatus = EntryStatus.active
    location: Optional[EntryLocation] = None
    session_id: str


class VenueStatus(WireSchema):
    is_active: bool
    last_checked: datetime
    status_text: str


class QrScanResult(WireSchema):
    venue_id: str
    result: QrScanOutcome
    timestamp: datetime
    message: Optional[str] = None


class NotificationSettings(WireSchema):
    venue_transitions: bool = True
    proximity_alerts: bool = True
    status_changes: bool = True


class VenueHistoryItem(WireSchema):
    venue_id: str
    venue_name: str
    joined_at: datetime
    left_at: Optional[datetime] = None
    duration: Optional[int] = None  # minutes


# ---------- local API ----------
class VenueExitRequest(WireSchema):
    reason: ExitReason = ExitReason.manual
