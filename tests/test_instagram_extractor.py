import httpx
import pytest

from recipe_importer.app.services.url_parsing.extractors import instagram
from recipe_importer.app.services.url_parsing.extractors.instagram import InstagramExtractor
from recipe_importer.app.services.url_parsing.models import (
    ExtractionSuccess,
    ImportErrorCode,
    RecipeAttributes,
    failure,
)

REEL_URL = "https://www.instagram.com/reel/abc123/"


def make_extractor(handler, token="apify-token"):
    transport = httpx.MockTransport(handler)

    def client_factory(**kwargs):
        return httpx.AsyncClient(transport=transport, **kwargs)

    return InstagramExtractor(api_token=token, client_factory=client_factory)


def json_handler(payload, status=200, seen=None):
    async def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)

    return handler


@pytest.fixture
def text_calls(monkeypatch):
    calls = []

    async def fake_extract(text, hint, source_url=None):
        calls.append({"text": text, "hint": hint, "source_url": source_url})
        return ExtractionSuccess(attributes=RecipeAttributes(name="Reel Pasta", source_url=source_url), strategy="llm")

    monkeypatch.setattr(instagram, "extract_recipe_from_text", fake_extract)
    return calls


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.instagram.com/reel/abc/", True),
        ("https://instagram.com/p/xyz/", True),
        ("https://m.instagram.com/p/xyz", True),
        ("https://www.instagram.com/someuser/", False),
        ("https://notinstagram.com/reel/abc/", False),
        ("https://example.com/instagram.com/reel/", False),
    ],
)
def test_supports_url(url, expected):
    assert InstagramExtractor(api_token="t").supports_url(url) is expected


@pytest.mark.asyncio
async def test_extracts_recipe_from_caption(text_calls):
    seen = []
    handler = json_handler([{"caption": "Pasta! 200g spaghetti...", "displayUrl": "https://cdn.ig/p.jpg"}], seen=seen)
    result = await make_extractor(handler).extract(REEL_URL)

    assert result.success
    assert result.attributes.name == "Reel Pasta"
    assert result.cover_image_url == "https://cdn.ig/p.jpg"
    assert text_calls[0]["text"] == "Pasta! 200g spaghetti..."
    assert text_calls[0]["hint"] == instagram.PromptHint.RAW_TEXT
    assert seen[0].url.params["token"] == "apify-token"


@pytest.mark.asyncio
async def test_caption_failure_keeps_cover_image(monkeypatch):
    async def fake_extract(text, hint, source_url=None):
        return failure(ImportErrorCode.EXTRACTION_FAILED, "Could not identify recipe name")

    monkeypatch.setattr(instagram, "extract_recipe_from_text", fake_extract)
    handler = json_handler([{"caption": "Just vibes", "displayUrl": "https://cdn.ig/v.jpg"}])
    result = await make_extractor(handler).extract(REEL_URL)
    assert result.code == ImportErrorCode.EXTRACTION_FAILED
    assert result.cover_image_url == "https://cdn.ig/v.jpg"


@pytest.mark.asyncio
async def test_missing_token(text_calls, monkeypatch):
    extractor = make_extractor(json_handler([]), token=None)
    monkeypatch.setattr(InstagramExtractor, "api_token", property(lambda self: None))
    result = await extractor.extract(REEL_URL)
    assert result.code == ImportErrorCode.APIFY_MISSING_TOKEN


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload,code",
    [
        ([], ImportErrorCode.INSTAGRAM_EMPTY_RESULT),
        ({"error": "x"}, ImportErrorCode.INSTAGRAM_EMPTY_RESULT),
        ([{"caption": "  ", "displayUrl": "https://cdn.ig/x.jpg"}], ImportErrorCode.INSTAGRAM_NO_CAPTION),
    ],
)
async def test_unusable_payloads(text_calls, payload, code):
    result = await make_extractor(json_handler(payload)).extract(REEL_URL)
    assert result.code == code
    assert text_calls == []


@pytest.mark.asyncio
async def test_http_error_status(text_calls):
    result = await make_extractor(json_handler({"error": "bad"}, status=500)).extract(REEL_URL)
    assert result.code == ImportErrorCode.APIFY_FAILED


@pytest.mark.asyncio
async def test_invalid_json(text_calls):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    result = await make_extractor(handler).extract(REEL_URL)
    assert result.code == ImportErrorCode.APIFY_INVALID_RESPONSE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc_type,code",
    [
        (httpx.ReadTimeout, ImportErrorCode.APIFY_TIMEOUT),
        (httpx.ConnectError, ImportErrorCode.APIFY_CONNECTION_FAILED),
        (httpx.RemoteProtocolError, ImportErrorCode.APIFY_FAILED),
    ],
)
async def test_transport_errors(text_calls, exc_type, code):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("failure", request=request)

    result = await make_extractor(handler).extract(REEL_URL)
    assert result.code == code
