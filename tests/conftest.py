import json
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import pytest

from plate_assistant.config import load_settings


class FakeResponse:
    def __init__(self, url: str, body: Any, content_type: str = "application/json") -> None:
        self.url = url
        self.headers = {"content-type": content_type}
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self._body


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self._page = page
        self._selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def _check(self, action: str) -> None:
        self._page.calls.append((action, self._selector))
        if self._selector in self._page.missing_selectors:
            raise RuntimeError(f"locator {self._selector} not found")

    async def fill(self, value: str, timeout: Optional[int] = None) -> None:
        self._check("fill")
        self._page.filled.append(value)

    async def click(self, timeout: Optional[int] = None) -> None:
        self._check("click")
        await self._page.emit(self._page.search_responses)

    async def press(self, key: str, timeout: Optional[int] = None) -> None:
        self._check(f"press:{key}")
        await self._page.emit(self._page.search_responses)


class FakePage:
    def __init__(self) -> None:
        self.handlers: Dict[str, List[Callable[[Any], Any]]] = {}
        self.calls: List[tuple] = []
        self.filled: List[str] = []
        self.missing_selectors: set = set()
        self.goto_error: Optional[Exception] = None
        self.goto_responses: List[FakeResponse] = []
        self.search_responses: List[FakeResponse] = []

    def on(self, event: str, handler: Callable[[Any], Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def emit(self, responses: List[FakeResponse]) -> None:
        for response in responses:
            for handler in self.handlers.get("response", []):
                await handler(response)

    async def goto(self, url: str, wait_until: str = "load", timeout: Optional[int] = None) -> None:
        self.calls.append(("goto", url))
        await self.emit(self.goto_responses)
        if self.goto_error is not None:
            raise self.goto_error

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self._page = page

    async def new_page(self) -> FakePage:
        return self._page


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self._page = page
        self.context_kwargs: Dict[str, Any] = {}
        self.close_count = 0
        self.close_error: Optional[Exception] = None

    async def new_context(self, **kwargs: Any) -> FakeContext:
        self.context_kwargs = kwargs
        return FakeContext(self._page)

    async def close(self) -> None:
        self.close_count += 1
        if self.close_error is not None:
            raise self.close_error


class FakeChromium:
    def __init__(self, browser: FakeBrowser) -> None:
        self._browser = browser
        self.launch_kwargs: Dict[str, Any] = {}
        self.launch_error: Optional[Exception] = None

    async def launch(self, **kwargs: Any) -> FakeBrowser:
        self.launch_kwargs = kwargs
        if self.launch_error is not None:
            raise self.launch_error
        return self._browser


class FakePlaywright:
    """Stand-in for the object returned by async_playwright()."""

    def __init__(self) -> None:
        self.page = FakePage()
        self.browser = FakeBrowser(self.page)
        self.chromium = FakeChromium(self.browser)
        self.start_count = 0
        self.stop_count = 0

    async def start(self) -> "FakePlaywright":
        self.start_count += 1
        return self

    async def stop(self) -> None:
        self.stop_count += 1

    def factory(self) -> "FakePlaywright":
        return self


@pytest.fixture
def settings():
    return replace(
        load_settings(),
        lookup_base_url="https://lookup.example",
        lookup_api_marker="lookup.example/api",
        navigation_timeout_ms=1000,
        control_timeout_ms=500,
        settle_window_seconds=0,
        confirm_window_seconds=0,
        lookup_timeout_seconds=5,
    )


@pytest.fixture
def fake_playwright():
    return FakePlaywright()


@pytest.fixture
def vehicle_payload():
    return {
        "name": "BMW 3 Series (E90) 320i (2010)",
        "vin": "WBAPH71060A123456",
        "chassis": {"manufacturer": "BMW", "model": "3 Series"},
    }


@pytest.fixture
def make_response():
    return FakeResponse
