import asyncio
import json

import httpx
import pytest

from app.schemas.enums import VenueState
from app.schemas.venue import PingLocation, PingVenue, VenuePingRequest
from app.services.venue_ping_client import VenuePingClient, VenuePingError

BASE_URL = "https://functions.test/hooked/us-central1"


def request() -> VenuePingRequest:
    return VenuePingRequest(
        venues=[PingVenue(venue_id="venue-1", location=PingLocation(lat=40.7128, lng=-74.006, accuracy=12))],
        battery_level=64,
        movement_speed=0.5,
        session_id="1700000000000abc",
    )


def client_for(handler, **kwargs) -> VenuePingClient:
    return VenuePingClient(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


def test_sends_callable_envelope_and_parses_result():
    seen = {}

    def handler(req: httpx.Request) -> httpx.Response:
        seen["url"] = str(req.url)
        seen["auth"] = req.headers.get("authorization")
        seen["app_check"] = req.headers.get("x-firebase-appcheck")
        seen["body"] = json.loads(req.content)
        return httpx.Response(
            200,
            json={
                "result": {
                    "success": True,
                    "results": [
                        {
                            "venueId": "venue-1",
                            "success": True,
                            "currentState": "active",
                            "stateChanged": False,
                            "profileVisible": True,
                            "nextPingInterval": 60,
                            "distance": 18.5,
                        }
                    ],
                }
            },
        )

    client = client_for(handler, id_token="id-token", app_check_token="app-check")
    response = asyncio.run(client.ping(request()))

    assert seen["url"] == f"{BASE_URL}/venueLocationPing"
    assert seen["auth"] == "Bearer id-token"
    assert seen["app_check"] == "app-check"
    assert seen["body"] == {
        "data": {
            "venues": [{"venueId": "venue-1", "location": {"lat": 40.7128, "lng": -74.006, "accuracy": 12.0}}],
            "batteryLevel": 64.0,
            "movementSpeed": 0.5,
            "sessionId": "1700000000000abc",
        }
    }
    assert response.success is True
    assert response.results[0].current_state == VenueState.active
    assert response.results[0].distance == 18.5


def test_callable_error_raises():
    def handler(req):
        return httpx.Response(400, json={"error": {"status": "UNAUTHENTICATED", "message": "no auth"}})

    with pytest.raises(VenuePingError):
        asyncio.run(client_for(handler).ping(request()))


def test_non_json_raises():
    def handler(req):
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(VenuePingError):
        asyncio.run(client_for(handler).ping(request()))


def test_transport_error_raises():
    def handler(req):
        raise httpx.ConnectError("offline", request=req)

    with pytest.raises(VenuePingError):
        asyncio.run(client_for(handler).ping(request()))


def test_malformed_result_raises():
    def handler(req):
        return httpx.Response(200, json={"result": {"success": True, "results": [{"venueId": "venue-1"}]}})

    with pytest.raises(VenuePingError):
        asyncio.run(client_for(handler).ping(request()))
