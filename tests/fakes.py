from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.schemas.enums import VenueState
from app.schemas.venue import LocationCoordinates, VenueEventSession, VenuePingRequest, VenuePingResponse, VenuePingResult

PUSH_TOKEN = "ExponentPushToken[test-device]"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePingClient:
    """Answers every venue as active unless a response or error is queued."""

    def __init__(self):
        self.requests: List[VenuePingRequest] = []
        self.queued: List[Any] = []

    def queue(self, item: Any) -> None:
        self.queued.append(item)

    async def ping(self, request: VenuePingRequest) -> VenuePingResponse:
        self.requests.append(request)
        if self.queued:
            item = self.queued.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return VenuePingResponse(
            success=True,
            results=[
                VenuePingResult(
                    venue_id=v.venue_id,
                    success=True,
                    current_state=VenueState.active,
                    profile_visible=True,
                    distance=20,
                )
                for v in request.venues
            ],
        )


class FakeSender:
    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def __call__(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None, category=None):
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.sent.append({"token": token, "title": title, "body": body, "data": data})
        return {"data": [{"status": "ok"}]}


def make_fix(lat: float = 40.7128, lng: float = -74.0060, accuracy: float = 15, ts: float = 1_700_000_000.0):
    return LocationCoordinates(
        lat=lat,
        lng=lng,
        accuracy=accuracy,
        timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
    )


def make_session(venue_id: str = "venue-1", name: str = "The Anchor") -> VenueEventSession:
    return VenueEventSession(
        venue_id=venue_id,
        event_name="Hooked Night",
        venue_name=name,
        joined_at=datetime(2026, 10, 16, 20, 0, tzinfo=timezone.utc),
    )
