"""
Server-side extraction: the backend loads the page and applies the selectors.
"""

import logging
from typing import List, Optional, Sequence

import httpx

from .config import get_settings
from .errors import LoadError
from .loader import HEADERS
from .models import LoadOptions, ScrapedRecord, Selector

logger = logging.getLogger(__name__)


class RemoteExtractor:
    def __init__(self, endpoint: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.endpoint = endpoint or get_settings().extract_url
        self._client = client

    async def extract(
        self,
        url: str,
        selectors: Sequence[Selector],
        options: Optional[LoadOptions] = None,
    ) -> List[ScrapedRecord]:
        options = options or LoadOptions()
        body = {
            "url": url,
            "selectors": [s.wire() for s in selectors],
            "options": {"javascript": options.javascript_enabled, "timeout": options.timeout_ms},
        }
        timeout = httpx.Timeout(options.timeout_ms / 1000)

        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json=body, timeout=timeout)
            else:
                async with httpx.AsyncClient(headers=HEADERS) as client:
                    response = await client.post(self.endpoint, json=body, timeout=timeout)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LoadError(url, f"extraction service failed: {e}") from e

        if not isinstance(payload, dict) or not payload.get("success"):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise LoadError(url, message or "extraction service reported failure")

        data = payload.get("data") or []
        if isinstance(data, dict):
            data = [data]
        records = [r for r in data if isinstance(r, dict) and r]
        logger.debug("remote extraction", extra={"url": url, "records": len(records)})
        return records
