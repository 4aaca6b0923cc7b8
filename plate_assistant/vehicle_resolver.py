from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .browser_session import BrowserSessionController, LookupResult
from .registration import RegistrationToken
from .vehicle_parser import parse_vehicle_payload
from .vehicle_record import VehicleRecord, synthesize_demo_record

logger = logging.getLogger("plate_assistant.resolver")


class VehicleResolver:
    """Resolve a registration to a VehicleRecord, degrading to demo data on failure."""

    def __init__(self, controller: BrowserSessionController, lookup_timeout: Optional[float] = 90.0) -> None:
        self._controller = controller
        self._lookup_timeout = lookup_timeout

    async def lookup(self, token: RegistrationToken) -> LookupResult:
        """Purpose: Run the browser lookup bounded by the outer timeout.
        Inputs/Outputs: Input is a token; output is a LookupResult (never raises).
        Side Effects / State: One browser session per call.
        Dependencies: Uses BrowserSessionController.lookup and asyncio.wait_for.
        Failure Modes: Outer timeout cancels the lookup and returns a failed result
            that still carries any payload captured before the cancel.
        If Removed: A hung site could block the chat request indefinitely.
        Testing Notes: Capture a payload early, then time out during the settle waits.
        """
        # The interceptor lives here so a cancelled lookup does not lose its capture.
        interceptor = self._controller.new_interceptor(token)
        try:
            if self._lookup_timeout is None:
                return await self._controller.lookup(token, interceptor)
            return await asyncio.wait_for(
                self._controller.lookup(token, interceptor),
                timeout=self._lookup_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "registration=%s lookup=timeout seconds=%s captured=%s",
                token.value,
                self._lookup_timeout,
                interceptor.captured is not None,
            )
            return LookupResult(
                registration=token.value,
                payload=interceptor.captured,
                captured_url=interceptor.captured_url,
                candidates=interceptor.candidates,
                error=f"lookup timed out after {self._lookup_timeout}s",
            )

    async def resolve(self, token: RegistrationToken) -> VehicleRecord:
        """Purpose: Produce a usable VehicleRecord for a registration.
        Inputs/Outputs: Input is a token; output is a resolved or demo VehicleRecord.
        Side Effects / State: Browser lookup; logs the outcome.
        Dependencies: Uses lookup, parse_vehicle_payload, and synthesize_demo_record.
        Failure Modes: None surface; all lookup failures end in the demo record.
        If Removed: The chat flow has no vehicle context to attach.
        Testing Notes: No captured payload -> data_source "demo".
        """
        # A captured payload is parsed even when the lookup itself reported an error.
        result = await self.lookup(token)
        record = parse_vehicle_payload(result.payload, token.value)
        if record.found:
            logger.info(
                "registration=%s resolved make=%s model=%s year=%s generation=%s",
                token.value,
                record.make,
                record.model,
                record.year,
                record.generation,
            )
            return record
        logger.info(
            "registration=%s unresolved error=%s candidates=%s fallback=demo",
            token.value,
            result.error,
            result.candidates,
        )
        return synthesize_demo_record(token.value)
