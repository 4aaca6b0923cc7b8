from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from .vehicle_parser import is_useful_payload

logger = logging.getLogger("plate_assistant.interceptor")


class ResponseInterceptor:
    """Watch page responses and keep the first JSON payload that carries vehicle data."""

    def __init__(self, api_marker: str, registration: str = "") -> None:
        """Purpose: Initialize an interceptor scoped to one browser session.
        Inputs/Outputs: Inputs are the API URL marker and the registration for logs.
        Side Effects / State: Holds the captured payload and candidate counters.
        Dependencies: Uses is_useful_payload from the parser module.
        Failure Modes: None at init.
        If Removed: Lookup payloads sent by the site's API are never observed.
        Testing Notes: Feed fake responses and verify the first useful one is captured.
        """
        # One interceptor per browser session; counters start at zero.
        self._api_marker = api_marker.lower()
        self._registration = registration
        self.captured: Optional[Dict[str, Any]] = None
        self.captured_url: str = ""
        self.candidates = 0
        self.ignored = 0

    def matches(self, url: str, content_type: str) -> bool:
        return self._api_marker in (url or "").lower() and "json" in (content_type or "").lower()

    async def on_response(self, response: Any) -> None:
        """Purpose: Handle one network response raised by the page.
        Inputs/Outputs: Input is a Playwright Response; no return value.
        Side Effects / State: May set captured/captured_url; bumps counters.
        Dependencies: Uses response.url, response.headers and response.text().
        Failure Modes: Body read or JSON decode errors are logged and ignored.
        If Removed: The browser session returns no payload to parse.
        Testing Notes: A malformed body must not stop a later valid payload from capture.
        """
        # Only JSON responses from the lookup API are decoded.
        url = getattr(response, "url", "")
        headers = getattr(response, "headers", None) or {}
        content_type = headers.get("content-type", "")
        if not self.matches(url, content_type):
            return

        try:
            body = await response.text()
            payload = json.loads(body)
        except Exception as exc:
            logger.warning("registration=%s url=%s decode_failed=%s", self._registration, url, exc)
            return

        self.candidates += 1
        keys = sorted(payload.keys())[:12] if isinstance(payload, dict) else type(payload).__name__
        useful = is_useful_payload(payload)
        logger.info(
            "registration=%s candidate=%s url=%s keys=%s useful=%s",
            self._registration,
            self.candidates,
            url,
            keys,
            useful,
        )
        if not useful:
            return
        if self.captured is not None:
            self.ignored += 1
            logger.info("registration=%s url=%s ignored=already_captured", self._registration, url)
            return
        self.captured = payload
        self.captured_url = url
        logger.info("registration=%s captured_url=%s", self._registration, url)
