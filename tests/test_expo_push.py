import asyncio
import json

import httpx
import pytest

from app.services.expo_push import ExpoPushError, is_expo_token, send_expo_push

from fakes import PUSH_TOKEN


def test_is_expo_token():
    assert is_expo_token(PUSH_TOKEN)
    assert is_expo_token("ExpoPushToken[abc]")
    assert not is_expo_token("fcm:abc")


def test_send_expo_push_builds_message():
    seen = {}

    def handler(req: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(req.content)
        return httpx.Response(200, json={"data": [{"status": "ok", "id": "r-1"}]})

    result = asyncio.run(
        send_expo_push(
            PUSH_TOKEN,
            title="The Anchor",
            body="Hooked Hours paused",
            data={"venueId": "venue-1"},
            category="venue_event",
            transport=httpx.MockTransport(handler),
        )
    )

    message = seen["body"][0]
    assert message["to"] == PUSH_TOKEN
    assert message["categoryId"] == "venue_event"
    assert message["data"] == {"venueId": "venue-1"}
    assert result["data"][0]["status"] == "ok"


def test_send_expo_push_raises_on_error_status():
    def handler(req):
        return httpx.Response(500, json={"errors": [{"code": "INTERNAL"}]})

    with pytest.raises(ExpoPushError):
        asyncio.run(send_expo_push(PUSH_TOKEN, "t", "b", transport=httpx.MockTransport(handler)))
