import pytest

from plate_assistant.response_interceptor import ResponseInterceptor

API = "https://lookup.example/api/vehicle"


@pytest.mark.asyncio
async def test_first_useful_payload_wins(make_response):
    interceptor = ResponseInterceptor("lookup.example/api", "ABC123")
    first = {"name": "BMW 3 Series (E90) 320i (2010)"}
    second = {"name": "BMW 5 Series (F10) 520d (2014)"}

    await interceptor.on_response(make_response(API + "/1", first))
    await interceptor.on_response(make_response(API + "/2", second))

    assert interceptor.captured == first
    assert interceptor.captured_url == API + "/1"
    assert interceptor.candidates == 2
    assert interceptor.ignored == 1


@pytest.mark.asyncio
async def test_malformed_json_is_ignored_and_later_payload_captured(make_response):
    interceptor = ResponseInterceptor("lookup.example/api", "ABC123")

    await interceptor.on_response(make_response(API, "{not json"))
    assert interceptor.captured is None

    await interceptor.on_response(make_response(API, {"chassis": {"manufacturer": "BMW", "model": "X3"}}))
    assert interceptor.captured == {"chassis": {"manufacturer": "BMW", "model": "X3"}}
    assert interceptor.candidates == 1


@pytest.mark.asyncio
async def test_unrelated_urls_and_content_types_are_skipped(make_response):
    interceptor = ResponseInterceptor("lookup.example/api", "ABC123")
    payload = {"name": "BMW 320d (2015)"}

    await interceptor.on_response(make_response("https://tracker.example/collect", payload))
    await interceptor.on_response(make_response(API, "<html></html>", content_type="text/html"))

    assert interceptor.captured is None
    assert interceptor.candidates == 0


@pytest.mark.asyncio
async def test_payload_without_vehicle_data_is_not_captured(make_response):
    interceptor = ResponseInterceptor("lookup.example/api", "ABC123")

    await interceptor.on_response(make_response(API, {"status": "pending"}))
    await interceptor.on_response(make_response(API, [1, 2, 3]))

    assert interceptor.captured is None
    assert interceptor.candidates == 2


def test_matches_is_case_insensitive():
    interceptor = ResponseInterceptor("Lookup.Example/API")
    assert interceptor.matches("https://LOOKUP.example/api/x", "application/json; charset=utf-8")
    assert not interceptor.matches("https://lookup.example/static/x.js", "application/json")
