from enum import Enum

class VenueState(str, Enum):
    active = "active"
    paused = "paused"
    inactive = "inactive"

class AppStateStatus(str, Enum):
    active = "active"
    background = "background"
    inactive = "inactive"

class EntryStatus(str, Enum):
    active = "active"
    expired = "expired"
    left = "left"

class ExitReason(str, Enum):
    manual = "manual"
    expired = "expired"
    location = "location"

class PermissionStatus(str, Enum):
    granted = "granted"
    denied = "denied"
    undetermined = "undetermined"

class QrScanOutcome(str, Enum):
    success = "success"
    error = "error"
    pending = "pending"

class NotificationType(str, Enum):
    venue_opening = "venue_opening"
    venue_closing = "venue_closing"
    venue_status_change = "venue_status_change"
    venue_state_message = "venue_state_message"
    proximity_alert = "proximity_alert"
