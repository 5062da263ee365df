from __future__ import annotations

from typing import Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from app.core.config import (
    APP_CHECK_TOKEN,
    FUNCTIONS_BASE_URL,
    FUNCTIONS_ID_TOKEN,
    FUNCTIONS_TIMEOUT_SECONDS,
)
from app.schemas.venue import VenuePingRequest, VenuePingResponse

VENUE_LOCATION_PING = "venueLocationPing"


class VenuePingError(Exception):
    pass


class VenuePingClient:
    """Calls the ``venueLocationPing`` callable function."""

    def __init__(
        self,
        base_url: str = FUNCTIONS_BASE_URL,
        id_token: Optional[str] = FUNCTIONS_ID_TOKEN,
        app_check_token: Optional[str] = APP_CHECK_TOKEN,
        timeout: float = FUNCTIONS_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = f"{base_url.rstrip('/')}/{VENUE_LOCATION_PING}"
        self._id_token = id_token
        self._app_check_token = app_check_token
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._id_token:
            headers["Authorization"] = f"Bearer {self._id_token}"
        if self._app_check_token:
            headers["X-Firebase-AppCheck"] = self._app_check_token
        return headers

    async def ping(self, request: VenuePingRequest) -> VenuePingResponse:
        body = {"data": request.to_wire()}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise VenuePingError(f"venueLocationPing transport error: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            raise VenuePingError(f"venueLocationPing returned non-JSON: HTTP {resp.status_code}")

        if not isinstance(data, dict):
            raise VenuePingError(f"venueLocationPing returned unexpected payload: {data!r}")

        if resp.status_code >= 400 or "error" in data:
            raise VenuePingError(f"venueLocationPing failed: HTTP {resp.status_code} {data.get('error') or data}")

        try:
            result = VenuePingResponse.model_validate(data.get("result", data))
        except ValidationError as e:
            raise VenuePingError(f"venueLocationPing returned unexpected payload: {e}") from e

        logger.debug(f"venueLocationPing ok | venues={len(request.venues)} results={len(result.results)}")
        return result
