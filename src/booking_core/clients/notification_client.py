"""HTTP client for the notification service (push / email fan-out)."""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class NotificationClient:
    """
    Client for posting events to the notification service.

    Handles the X-Internal-API-Key header and timeout; raises on non-2xx.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers: Dict[str, str] = {}
        if api_key:
            self._headers["X-Internal-API-Key"] = api_key

    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    async def post(self, path: str, json: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Make a POST request.

        Raises:
            httpx.HTTPStatusError: If response status code indicates an error
            httpx.RequestError: If request fails
        """
        url = self._build_url(path)
        logger.debug(f"POST {url}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=json, headers=self._headers)
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return None
            return response.json()
