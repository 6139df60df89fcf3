import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from recipe_importer.app.core.config import get_settings

logger = logging.getLogger(__name__)


class LlmTimeoutError(Exception):
    """The provider did not answer in time or could not be reached."""


class LlmProviderError(Exception):
    """The provider answered with an API-level error."""


class LlmResponseError(Exception):
    """The provider answered, but not with usable structured content."""


RECIPE_SCHEMA: Dict[str, Any] = {
    "name": "recipe",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "name": {"type": "string", "description": "Recipe title"},
            "ingredients": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of ingredients with quantities",
            },
            "instructions": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Step-by-step cooking instructions",
            },
            "prep_time_minutes": {
                "type": ["integer", "null"],
                "description": "Preparation time in minutes",
            },
            "cook_time_minutes": {
                "type": ["integer", "null"],
                "description": "Cooking time in minutes",
            },
            "servings": {"type": ["integer", "null"], "description": "Number of servings"},
            "notes": {"type": ["string", "null"], "description": "Recipe description or notes"},
        },
        "required": [
            "name",
            "ingredients",
            "instructions",
            "prep_time_minutes",
            "cook_time_minutes",
            "servings",
            "notes",
        ],
    },
}


def _strip_code_fence(text: str) -> str:
    txt = text.strip()
    if txt.startswith("```"):
        txt = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", txt, count=1)
        txt = re.sub(r"\s*```$", "", txt, count=1).strip()
    return txt


def parse_json_content(raw: str) -> Dict[str, Any]:
    """Parse assistant content into a JSON object, tolerating code fences."""
    cleaned = _strip_code_fence(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise LlmResponseError("LLM response was not valid JSON")
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise LlmResponseError("LLM response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise LlmResponseError("LLM response is not a JSON object")
    return data


def _assistant_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices") or []
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        content = message.get("content")
        if isinstance(content, str):
            return content
    return None


async def request_structured_completion(
    messages: List[Dict[str, Any]],
    model: str,
    schema: Dict[str, Any] = RECIPE_SCHEMA,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """POST a chat completion constrained to a JSON schema and return the parsed object."""
    settings = get_settings()
    if not settings.llm_base_url:
        raise LlmProviderError("LLM_BASE_URL is not configured")

    payload = {
        "model": model,
        "temperature": 0.0,
        "response_format": {"type": "json_schema", "json_schema": schema},
        "messages": messages,
        "stream": False,
    }
    headers = {"Content-Type": "application/json"}
    if settings.llm_api_key:
        headers["Authorization"] = f"Bearer {settings.llm_api_key}"

    timeout = httpx.Timeout(settings.llm_timeout_seconds, connect=10.0)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(
                f"{settings.llm_base_url.rstrip('/')}/v1/chat/completions", json=payload, headers=headers
            )
    except (httpx.TimeoutException, httpx.ConnectError) as exc:
        raise LlmTimeoutError(f"LLM request timed out: {exc.__class__.__name__}") from exc

    if response.status_code >= 400:
        logger.error("LLM provider returned status %s: %s", response.status_code, response.text[:500])
        raise LlmProviderError(f"LLM API error: status {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        raise LlmResponseError("LLM response body was not JSON") from exc

    if isinstance(data, dict) and data.get("error"):
        error_info = data["error"]
        message = error_info.get("message", "Unknown error") if isinstance(error_info, dict) else str(error_info)
        logger.error("LLM provider returned error: %s", message[:500])
        raise LlmProviderError(f"LLM API error: {message}")

    content = _assistant_content(data)
    if not content or not content.strip():
        raise LlmResponseError("LLM response missing assistant content")
    logger.debug("LLM raw content (truncated): %s", content[:1000])
    return parse_json_content(content)
