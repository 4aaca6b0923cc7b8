from __future__ import annotations

"""Headless browser lookup of a registration number on the lookup site.

Each lookup owns one Playwright instance, one browser, and one isolated context.
The page script is an ordered list of bounded steps:

    navigate       goto base URL, wait for network idle (timeout tolerated)
    submit_search  fill the registration input and click search
                   (fallback: fill the same input and press Enter)
    settle         fixed wait for asynchronous API responses
    confirm        shorter fixed wait before the session is released

The ResponseInterceptor listens to every page response while the steps run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import async_playwright

from .config import Settings
from .registration import RegistrationToken
from .response_interceptor import ResponseInterceptor
from .step_runner import BoundedStep, StepRunner, continue_anyway

logger = logging.getLogger("plate_assistant.browser")

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
VIEWPORT = {"width": 1280, "height": 720}
LOCALE = "fi-FI"
STEP_GRACE_SECONDS = 5.0


def navigate_bound(settings: Settings) -> float:
    return settings.navigation_timeout_ms / 1000 + STEP_GRACE_SECONDS


def submit_bound(settings: Settings) -> float:
    # fill + click (or fill + Enter), each bounded by the control timeout
    return 2 * settings.control_timeout_ms / 1000 + STEP_GRACE_SECONDS


def lookup_step_budget(settings: Settings) -> float:
    """Worst-case seconds the page steps can take, excluding browser launch."""
    return (
        navigate_bound(settings)
        # the Enter fallback gets its own submit bound
        + 2 * submit_bound(settings)
        + settings.settle_window_seconds
        + settings.confirm_window_seconds
    )


@dataclass
class LookupResult:
    """Outcome of one browser lookup attempt."""
    registration: str
    payload: Optional[Dict[str, Any]] = None
    captured_url: str = ""
    candidates: int = 0
    error: Optional[str] = None
    steps: List[Dict[str, object]] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.error is not None


class BrowserSession:
    """One Playwright browser session, released at most once."""

    def __init__(self, settings: Settings, playwright_factory: Callable[[], Any]) -> None:
        self._settings = settings
        self._factory = playwright_factory
        self._playwright: Any = None
        self._browser: Any = None
        self.release_count = 0

    async def open(self, on_response: Callable[[Any], Any]) -> Any:
        """Purpose: Start Playwright, launch Chromium, and open an isolated page.
        Inputs/Outputs: Input is the response handler; output is the Playwright page.
        Side Effects / State: Holds the playwright and browser handles for close().
        Dependencies: Uses the injected playwright factory (async_playwright by default).
        Failure Modes: Launch errors propagate; the controller still calls close().
        If Removed: No browser is available for the lookup steps.
        Testing Notes: Use a fake factory and assert the handler is registered.
        """
        # Fresh driver, browser and context per lookup.
        self._playwright = await self._factory().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._settings.browser_headless,
            args=LAUNCH_ARGS,
        )
        context = await self._browser.new_context(
            user_agent=self._settings.lookup_user_agent,
            viewport=VIEWPORT,
            locale=LOCALE,
        )
        page = await context.new_page()
        page.on("response", on_response)
        return page

    async def close(self) -> None:
        """Purpose: Release the browser and Playwright driver exactly once.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Closes the browser (and its contexts) and stops Playwright.
        Dependencies: Uses handles set by open().
        Failure Modes: Close errors are logged and not raised.
        If Removed: Every lookup leaks a Chromium process.
        Testing Notes: Calling close() twice must release only once.
        """
        # Guard so repeated calls release nothing twice.
        if self.release_count:
            return
        self.release_count += 1
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                logger.warning("browser_close_failed=%s", exc)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                logger.warning("playwright_stop_failed=%s", exc)


class BrowserSessionController:
    """Run one lookup per call in its own browser session."""

    def __init__(self, settings: Settings, playwright_factory: Optional[Callable[[], Any]] = None) -> None:
        self._settings = settings
        self._factory = playwright_factory or async_playwright

    def build_steps(self, token: RegistrationToken) -> List[BoundedStep]:
        """Purpose: Declare the ordered page steps for a registration lookup.
        Inputs/Outputs: Input is the registration token; output is a list of BoundedStep.
        Side Effects / State: None until the steps are run.
        Dependencies: Uses selectors, URLs, and waits from Settings.
        Failure Modes: None at build time.
        If Removed: The lookup site is never navigated or searched.
        Testing Notes: Run the steps against a fake page and check calls and fallbacks.
        """
        # Steps close over the token and settings; nothing runs until StepRunner.run.
        settings = self._settings
        control_timeout = settings.control_timeout_ms

        async def navigate(page: Any) -> None:
            await page.goto(
                settings.lookup_base_url,
                wait_until="networkidle",
                timeout=settings.navigation_timeout_ms,
            )

        async def submit_search(page: Any) -> None:
            field_locator = page.locator(settings.lookup_input_selector).first
            await field_locator.fill(token.formatted, timeout=control_timeout)
            await page.locator(settings.lookup_search_selector).first.click(timeout=control_timeout)

        async def submit_with_enter(page: Any) -> None:
            field_locator = page.locator(settings.lookup_input_selector).first
            await field_locator.fill(token.formatted, timeout=control_timeout)
            await field_locator.press("Enter", timeout=control_timeout)

        async def settle(_: Any) -> None:
            await asyncio.sleep(settings.settle_window_seconds)

        async def confirm(_: Any) -> None:
            await asyncio.sleep(settings.confirm_window_seconds)

        return [
            BoundedStep(
                "navigate",
                navigate,
                timeout=navigate_bound(settings),
                fallback=continue_anyway,
            ),
            BoundedStep("submit_search", submit_search, timeout=submit_bound(settings), fallback=submit_with_enter),
            BoundedStep("settle", settle),
            BoundedStep("confirm", confirm),
        ]

    def new_interceptor(self, token: RegistrationToken) -> ResponseInterceptor:
        return ResponseInterceptor(self._settings.lookup_api_marker, token.value)

    async def lookup(
        self,
        token: RegistrationToken,
        interceptor: Optional[ResponseInterceptor] = None,
    ) -> LookupResult:
        """Purpose: Look up one registration number and return the captured payload.
        Inputs/Outputs: Inputs are a RegistrationToken and an optional interceptor owned
            by the caller; output is a LookupResult.
        Side Effects / State: Launches and always releases one browser session.
        Dependencies: Uses BrowserSession, ResponseInterceptor, and StepRunner.
        Failure Modes: Unhandled errors become LookupResult.error; never raised.
            Cancellation (outer timeout) still releases the session; a caller-owned
            interceptor keeps whatever was captured before the cancel.
        If Removed: Vehicle resolution has no data source and always falls back to demo.
        Testing Notes: Assert release_count == 1 on success, launch failure, and step errors.
        """
        # Launch, run the page steps, and release the browser on every path.
        if interceptor is None:
            interceptor = self.new_interceptor(token)
        session = BrowserSession(self._settings, self._factory)
        runner = StepRunner(self.build_steps(token), label=f"registration={token.value}")
        logger.info("registration=%s formatted=%s lookup=start", token.value, token.formatted)
        try:
            page = await session.open(interceptor.on_response)
            await runner.run(page)
        except Exception as exc:
            logger.exception("registration=%s lookup=failed", token.value)
            return LookupResult(
                registration=token.value,
                candidates=interceptor.candidates,
                error=f"{type(exc).__name__}: {exc}",
                steps=[outcome.to_dict() for outcome in runner.outcomes],
            )
        finally:
            await session.close()

        logger.info(
            "registration=%s lookup=done captured=%s candidates=%s",
            token.value,
            interceptor.captured is not None,
            interceptor.candidates,
        )
        return LookupResult(
            registration=token.value,
            payload=interceptor.captured,
            captured_url=interceptor.captured_url,
            candidates=interceptor.candidates,
            steps=[outcome.to_dict() for outcome in runner.outcomes],
        )
