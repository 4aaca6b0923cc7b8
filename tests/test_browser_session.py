import asyncio

import pytest

from plate_assistant.browser_session import BrowserSessionController
from plate_assistant.registration import canonicalize

API = "https://lookup.example/api/vehicles/ABC-123"


@pytest.fixture
def token():
    return canonicalize("ABC-123")


@pytest.mark.asyncio
async def test_lookup_fills_searches_and_captures(settings, fake_playwright, make_response, token, vehicle_payload):
    page = fake_playwright.page
    page.search_responses = [make_response(API, vehicle_payload)]
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert not result.failed
    assert result.payload == vehicle_payload
    assert result.captured_url == API
    assert page.filled == ["ABC-123"]
    assert ("goto", "https://lookup.example") in page.calls
    assert ("click", settings.lookup_search_selector) in page.calls
    assert [step["step"] for step in result.steps] == ["navigate", "submit_search", "settle", "confirm"]
    assert all(step["status"] == "success" for step in result.steps)
    assert fake_playwright.chromium.launch_kwargs["headless"] is settings.browser_headless
    assert fake_playwright.browser.context_kwargs["user_agent"] == settings.lookup_user_agent
    assert fake_playwright.browser.close_count == 1
    assert fake_playwright.stop_count == 1


@pytest.mark.asyncio
async def test_navigation_timeout_is_not_fatal(settings, fake_playwright, make_response, token, vehicle_payload):
    page = fake_playwright.page
    page.goto_error = TimeoutError("Timeout 30000ms exceeded")
    page.search_responses = [make_response(API, vehicle_payload)]
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert result.payload == vehicle_payload
    assert result.steps[0]["step"] == "navigate"
    assert result.steps[0]["status"] == "fallback"
    assert fake_playwright.browser.close_count == 1


@pytest.mark.asyncio
async def test_missing_search_button_falls_back_to_enter(settings, fake_playwright, make_response, token, vehicle_payload):
    page = fake_playwright.page
    page.missing_selectors = {settings.lookup_search_selector}
    page.search_responses = [make_response(API, vehicle_payload)]
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert ("press:Enter", settings.lookup_input_selector) in page.calls
    assert result.steps[1]["status"] == "fallback"
    assert result.payload == vehicle_payload


@pytest.mark.asyncio
async def test_missing_input_skips_search_but_keeps_passive_capture(
    settings, fake_playwright, make_response, token, vehicle_payload
):
    page = fake_playwright.page
    page.missing_selectors = {settings.lookup_input_selector}
    page.goto_responses = [make_response(API, vehicle_payload)]
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert result.steps[1]["status"] == "skipped"
    assert [step["step"] for step in result.steps][2:] == ["settle", "confirm"]
    assert result.payload == vehicle_payload
    assert fake_playwright.browser.close_count == 1


@pytest.mark.asyncio
async def test_no_payload_returns_empty_result(settings, fake_playwright, token):
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert result.payload is None
    assert not result.failed
    assert fake_playwright.browser.close_count == 1


@pytest.mark.asyncio
async def test_launch_failure_is_reported_not_raised(settings, fake_playwright, token):
    fake_playwright.chromium.launch_error = RuntimeError("chromium missing")
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert result.failed
    assert "chromium missing" in result.error
    assert result.payload is None
    assert fake_playwright.browser.close_count == 0
    assert fake_playwright.stop_count == 1


@pytest.mark.asyncio
async def test_close_failure_is_swallowed(settings, fake_playwright, make_response, token, vehicle_payload):
    fake_playwright.browser.close_error = RuntimeError("already gone")
    fake_playwright.page.search_responses = [make_response(API, vehicle_payload)]
    controller = BrowserSessionController(settings, playwright_factory=fake_playwright.factory)

    result = await controller.lookup(token)

    assert result.payload == vehicle_payload
    assert fake_playwright.browser.close_count == 1
    assert fake_playwright.stop_count == 1


@pytest.mark.asyncio
async def test_cancellation_still_releases_once(settings, fake_playwright, token):
    from dataclasses import replace

    slow_settings = replace(settings, settle_window_seconds=30)
    controller = BrowserSessionController(slow_settings, playwright_factory=fake_playwright.factory)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(controller.lookup(token), timeout=0.05)

    assert fake_playwright.browser.close_count == 1
    assert fake_playwright.stop_count == 1
