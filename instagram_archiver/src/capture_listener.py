"""
Capture Listener - feeds Instagram GraphQL responses into the Response Cache
Attached to every page for the lifetime of the session; a bad response is
logged and dropped, never raised.
"""

import re
from typing import Any, Optional

from loguru import logger

from .config import GRAPHQL_QUERY_PATTERN
from .response_cache import ResponseCache

QUERY_NAME_PREFIX = "xdt_api"


def classify_query_name(payload: Any) -> Optional[str]:
    """
    Query name of a GraphQL payload: the first key of payload['data'] that
    follows the xdt_api naming convention, else its first key.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict) or not data:
        return None
    keys = list(data)
    return next((key for key in keys if key.startswith(QUERY_NAME_PREFIX)), keys[0])


class CaptureListener:
    """Classifies JSON responses from the GraphQL endpoint and records them"""

    def __init__(self, cache: ResponseCache, url_pattern: str = GRAPHQL_QUERY_PATTERN):
        self.cache = cache
        self.url_pattern = re.compile(url_pattern)
        self.accepted = 0
        self.dropped = 0

    def attach(self, page) -> None:
        """Listen for responses on a Playwright page"""
        page.on("response", self.on_response)

    def accepts(self, url: str, content_type: str) -> bool:
        return "application/json" in content_type and bool(self.url_pattern.search(url))

    async def on_response(self, response) -> None:
        """Handle one network response"""
        url = response.url
        try:
            content_type = response.headers.get("content-type", "")
            if not self.accepts(url, content_type):
                return

            payload = await response.json()
            query_name = classify_query_name(payload)
            if not query_name:
                self.dropped += 1
                return

            self.cache.record(query_name, payload)
            self.accepted += 1
            logger.info(f"Received graphql response: {query_name} ({response.status})")
        except Exception as e:
            self.dropped += 1
            logger.warning(f"⚠️ Could not capture response from {url}: {e}")

