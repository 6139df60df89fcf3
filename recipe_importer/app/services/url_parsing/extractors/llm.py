"""LLM-based recipe extraction from free text and web page content."""

import asyncio
import enum
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.services import llm_client
from recipe_importer.app.services.url_parsing.extractors.base import DocumentExtractor
from recipe_importer.app.services.url_parsing.models import (
    ExtractionResult,
    ExtractionSuccess,
    FetchedDocument,
    ImportErrorCode,
    RecipeAttributes,
    failure,
)
from recipe_importer.app.services.url_parsing.parsing_utils import clean_text, coerce_optional_int

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 15_000
NON_CONTENT_TAGS = ["script", "style", "nav", "header", "footer", "aside", "noscript", "iframe", "svg"]


class PromptHint(str, enum.Enum):
    WEBPAGE = "webpage"
    RAW_TEXT = "raw_text"


WEBPAGE_PROMPT = """Extract recipe information from the following webpage content.
Find the recipe name, ingredients list, and cooking instructions.

If you cannot find recipe content, return an empty name field.

Webpage content:
---
{text}
---
"""

RAW_TEXT_PROMPT = """Extract recipe information from the following text.
Parse the recipe name, ingredients list, and cooking instructions.

If the text does not contain a valid recipe, return an empty name field.

Recipe text:
---
{text}
---
"""

SYSTEM_PROMPT = "You extract recipes into JSON that matches the provided schema exactly."


def html_to_text(html: str) -> str:
    """Drop non-content elements and collapse whitespace."""
    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup.find_all(NON_CONTENT_TAGS):
        tag.decompose()
    return clean_text(soup.get_text(" "))


def prepare_text(text: str, hint: PromptHint) -> str:
    content = html_to_text(text) if hint == PromptHint.WEBPAGE else (text or "").strip()
    return content[:MAX_TEXT_LENGTH]


def build_prompt(text: str, hint: PromptHint) -> str:
    template = WEBPAGE_PROMPT if hint == PromptHint.WEBPAGE else RAW_TEXT_PROMPT
    return template.format(text=text)


def build_result(content: Optional[Dict[str, Any]], source_url: Optional[str] = None) -> ExtractionResult:
    """Turn a schema-constrained completion into an ExtractionResult."""
    if not content:
        return failure(ImportErrorCode.EXTRACTION_FAILED, "No recipe data returned")

    name = str(content.get("name") or "").strip()
    if not name:
        return failure(ImportErrorCode.EXTRACTION_FAILED, "Could not identify recipe name")

    ingredients = content.get("ingredients")
    instructions = content.get("instructions")
    attributes = RecipeAttributes(
        name=name,
        ingredients=ingredients if isinstance(ingredients, list) else [],
        instructions=instructions if isinstance(instructions, list) else [],
        prep_time_minutes=coerce_optional_int(content.get("prep_time_minutes")),
        cook_time_minutes=coerce_optional_int(content.get("cook_time_minutes")),
        servings=coerce_optional_int(content.get("servings")),
        notes=content.get("notes") if isinstance(content.get("notes"), str) else None,
        source_url=source_url or None,
    )
    return ExtractionSuccess(attributes=attributes, strategy="llm")


async def run_structured_extraction(
    messages: List[Dict[str, Any]], model: str, source_url: Optional[str] = None
) -> ExtractionResult:
    """Call the completion endpoint and classify every failure into an error code."""
    settings = get_settings()
    try:
        content = await asyncio.wait_for(
            llm_client.request_structured_completion(messages, model=model),
            timeout=settings.llm_timeout_seconds + 5,
        )
        return build_result(content, source_url)
    except (asyncio.TimeoutError, llm_client.LlmTimeoutError) as exc:
        logger.warning("LLM request timed out: %s", exc.__class__.__name__)
        return failure(ImportErrorCode.LLM_TIMEOUT, "LLM request timed out")
    except llm_client.LlmProviderError as exc:
        logger.warning("LLM provider error: %s", exc)
        return failure(ImportErrorCode.LLM_ERROR, str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.warning("LLM extraction failed: %s", exc)
        return failure(ImportErrorCode.EXTRACTION_FAILED, f"Extraction failed: {exc}")


async def extract_recipe_from_text(
    text: str, hint: PromptHint = PromptHint.RAW_TEXT, source_url: Optional[str] = None
) -> ExtractionResult:
    """Extract a recipe from prose or page HTML. The hint only selects the prompt."""
    prepared = prepare_text(text, hint)
    if not prepared:
        return failure(ImportErrorCode.EXTRACTION_FAILED, "No text content provided")

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_prompt(prepared, hint)},
    ]
    return await run_structured_extraction(messages, get_settings().llm_model_name, source_url)


class FreeTextExtractor(DocumentExtractor):
    name = "llm"

    def __init__(self, hint: PromptHint = PromptHint.WEBPAGE):
        self.hint = hint

    async def extract(self, document: FetchedDocument, source_url: str) -> ExtractionResult:
        return await extract_recipe_from_text(document.text, self.hint, source_url)
