import json

import httpx
import pytest

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.services import llm_client
from recipe_importer.app.services.url_parsing.extractors import llm as llm_extractor
from recipe_importer.app.services.url_parsing.extractors.image import extract_recipe_from_image
from recipe_importer.app.services.url_parsing.models import FetchedDocument, ImportErrorCode


def fake_completion(content=None, exc=None, calls=None):
    async def _complete(messages, model, **kwargs):
        if calls is not None:
            calls.append({"messages": messages, "model": model})
        if exc is not None:
            raise exc
        return content

    return _complete


RECIPE = {
    "name": "Pancakes",
    "ingredients": ["1 cup flour", "1 egg"],
    "instructions": ["Whisk", "Fry"],
    "prep_time_minutes": 5,
    "cook_time_minutes": "10",
    "servings": 4,
    "notes": "",
}


@pytest.mark.asyncio
async def test_builds_recipe_from_completion(monkeypatch):
    monkeypatch.setattr(llm_client, "request_structured_completion", fake_completion(RECIPE))
    result = await llm_extractor.extract_recipe_from_text("Pancakes: flour, egg. Whisk and fry.")
    assert result.success
    assert result.attributes.name == "Pancakes"
    assert result.attributes.cook_time_minutes == 10
    assert result.attributes.notes is None
    assert result.strategy == "llm"


@pytest.mark.asyncio
async def test_blank_name_is_extraction_failed(monkeypatch):
    content = dict(RECIPE, name="")
    monkeypatch.setattr(llm_client, "request_structured_completion", fake_completion(content))
    result = await llm_extractor.extract_recipe_from_text("some text")
    assert not result.success
    assert result.code == ImportErrorCode.EXTRACTION_FAILED


@pytest.mark.asyncio
async def test_empty_text_skips_model(monkeypatch):
    calls = []
    monkeypatch.setattr(llm_client, "request_structured_completion", fake_completion(RECIPE, calls=calls))
    result = await llm_extractor.extract_recipe_from_text("   ")
    assert result.code == ImportErrorCode.EXTRACTION_FAILED
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc,code",
    [
        (llm_client.LlmTimeoutError("slow"), ImportErrorCode.LLM_TIMEOUT),
        (llm_client.LlmProviderError("LLM API error: status 500"), ImportErrorCode.LLM_ERROR),
        (llm_client.LlmResponseError("not json"), ImportErrorCode.EXTRACTION_FAILED),
        (ValueError("boom"), ImportErrorCode.EXTRACTION_FAILED),
    ],
)
async def test_failure_classification(monkeypatch, exc, code):
    monkeypatch.setattr(llm_client, "request_structured_completion", fake_completion(exc=exc))
    result = await llm_extractor.extract_recipe_from_text("text")
    assert result.code == code


@pytest.mark.asyncio
async def test_webpage_hint_strips_markup_and_truncates(monkeypatch):
    calls = []
    monkeypatch.setattr(llm_client, "request_structured_completion", fake_completion(RECIPE, calls=calls))
    html = (
        "<html><head><script>var secret = 1;</script><style>p{}</style></head>"
        "<body><nav>Menu</nav><p>Real   recipe\n text</p>" + "<p>" + "x" * 20000 + "</p></body></html>"
    )
    document = FetchedDocument(body=html.encode(), content_type="text/html", final_url="https://example.com/")
    result = await llm_extractor.FreeTextExtractor().extract(document, "https://example.com/soup")
    assert result.attributes.source_url == "https://example.com/soup"

    prompt = calls[0]["messages"][1]["content"]
    assert "secret" not in prompt
    assert "Menu" not in prompt
    assert "Real recipe text" in prompt
    assert "webpage content" in prompt
    assert "x" * llm_extractor.MAX_TEXT_LENGTH not in prompt


def test_prepare_text_caps_length():
    text = "a" * (llm_extractor.MAX_TEXT_LENGTH + 100)
    assert len(llm_extractor.prepare_text(text, llm_extractor.PromptHint.RAW_TEXT)) == llm_extractor.MAX_TEXT_LENGTH


@pytest.mark.asyncio
async def test_image_extraction_sends_data_url(monkeypatch):
    calls = []
    monkeypatch.setattr(llm_client, "request_structured_completion", fake_completion(RECIPE, calls=calls))
    result = await extract_recipe_from_image(b"\xff\xd8fake", "image/jpeg")
    assert result.success
    parts = calls[0]["messages"][1]["content"]
    assert parts[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert calls[0]["model"] == get_settings().llm_vision_model_name


@pytest.mark.asyncio
async def test_image_extraction_rejects_non_images():
    result = await extract_recipe_from_image(b"%PDF", "application/pdf")
    assert result.code == ImportErrorCode.EXTRACTION_FAILED


@pytest.fixture
def llm_settings(monkeypatch):
    settings = get_settings().model_copy(update={"llm_base_url": "https://llm.example.com", "llm_api_key": "k"})
    monkeypatch.setattr(llm_client, "get_settings", lambda: settings)
    return settings


@pytest.mark.asyncio
async def test_request_structured_completion_parses_fenced_content(llm_settings):
    seen = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        content = "```json\n" + json.dumps(RECIPE) + "\n```"
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    data = await llm_client.request_structured_completion(
        [{"role": "user", "content": "hi"}], model="m", transport=httpx.MockTransport(handler)
    )
    assert data["name"] == "Pancakes"
    assert seen["url"] == "https://llm.example.com/v1/chat/completions"
    assert seen["auth"] == "Bearer k"
    assert seen["body"]["response_format"]["type"] == "json_schema"


@pytest.mark.asyncio
async def test_request_structured_completion_http_error(llm_settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(llm_client.LlmProviderError):
        await llm_client.request_structured_completion([], model="m", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_request_structured_completion_error_object(llm_settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": {"message": "model overloaded"}})

    with pytest.raises(llm_client.LlmProviderError, match="model overloaded"):
        await llm_client.request_structured_completion([], model="m", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_request_structured_completion_timeout(llm_settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(llm_client.LlmTimeoutError):
        await llm_client.request_structured_completion([], model="m", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_missing_base_url_is_provider_error(monkeypatch):
    settings = get_settings().model_copy(update={"llm_base_url": None})
    monkeypatch.setattr(llm_client, "get_settings", lambda: settings)
    with pytest.raises(llm_client.LlmProviderError):
        await llm_client.request_structured_completion([], model="m")
