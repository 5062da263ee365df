from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from app.core.config import EXPO_PUSH_URL


class ExpoPushError(Exception):
    pass


def is_expo_token(token: str) -> bool:
    return token.startswith("ExponentPushToken[") or token.startswith("ExpoPushToken[")


async def send_expo_messages(
    messages: List[Dict[str, Any]],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=15, transport=transport) as client:
        resp = await client.post(EXPO_PUSH_URL, json=messages)

        try:
            data = resp.json()
        except ValueError:
            raise ExpoPushError(f"Expo returned non-JSON: {resp.text[:200]}")

        if resp.status_code >= 400:
            raise ExpoPushError(f"Expo push failed: {data}")

        return data


async def send_expo_push(
    token: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
    category: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "to": token,
        "title": title,
        "body": body,
        "sound": "default",
        "priority": "high",
        "data": data or {},
    }
    if category:
        message["categoryId"] = category
    return await send_expo_messages([message], transport=transport)
