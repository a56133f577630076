# /flowbot/services/http_service.py

import logging
from typing import Dict, Optional

import httpx

from flowbot.config.settings import settings
from flowbot.services.interfaces import HttpResponse

# Outbound HTTP for http_request nodes. Timeouts are enforced here, not by the
# flow engine.

logger = logging.getLogger(__name__)


class HttpService:
    def __init__(self, timeout: float):
        self.http_client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def fetch(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Optional[str],
    ) -> HttpResponse:
        """
        Issues one request and returns its status and body text.

        Non-2xx responses are returned, not raised; the flow decides what to do
        with `_httpStatus`. Transport errors propagate to the caller.
        """
        response = await self.http_client.request(
            method,
            url,
            headers=headers,
            content=body.encode("utf-8") if body is not None else None,
        )
        logger.info(f"http_request {method} {url} -> {response.status_code}")
        return HttpResponse(status=response.status_code, body_text=response.text)

    async def close(self):
        await self.http_client.aclose()


# Globally accessible instance
http_service = HttpService(settings.http_request_timeout)
