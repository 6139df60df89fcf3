"""Recipe extraction from Instagram posts and reels via the Apify scraper."""

import json
import logging
from typing import Callable, Optional
from urllib.parse import urlsplit

import httpx

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.services.url_parsing.extractors.base import PlatformExtractor
from recipe_importer.app.services.url_parsing.extractors.llm import PromptHint, extract_recipe_from_text
from recipe_importer.app.services.url_parsing.models import (
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    ImportErrorCode,
    failure,
)
from recipe_importer.app.services.url_parsing.parsing_utils import sanitize_url

logger = logging.getLogger(__name__)

APIFY_ENDPOINT = "https://api.apify.com/v2/acts/apify~instagram-reel-scraper/run-sync-get-dataset-items"
USER_AGENT = "Mozilla/5.0 (compatible; RecipeImporter Instagram)"
PLATFORM_TIMEOUT_SECONDS = 20.0
PLATFORM_CONNECT_TIMEOUT_SECONDS = 5.0


def _default_client_factory(**kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(**kwargs)


class InstagramExtractor(PlatformExtractor):
    name = "instagram"

    def __init__(
        self,
        api_token: Optional[str] = None,
        client_factory: Callable[..., httpx.AsyncClient] = _default_client_factory,
    ):
        self._api_token = api_token
        self.client_factory = client_factory

    def supports_url(self, url: str) -> bool:
        try:
            parts = urlsplit(str(url or ""))
            host = (parts.hostname or "").lower()
        except ValueError:
            return False
        if host != "instagram.com" and not host.endswith(".instagram.com"):
            return False
        return "/reel/" in parts.path or "/p/" in parts.path

    @property
    def api_token(self) -> Optional[str]:
        return self._api_token or get_settings().apify_api_key

    async def extract(self, url: str) -> ExtractionResult:
        if not url or not url.strip():
            return failure(ImportErrorCode.BLANK_URL, "Please enter a URL")

        token = self.api_token
        if not token:
            return failure(ImportErrorCode.APIFY_MISSING_TOKEN, "Instagram import is not configured")

        timeout = httpx.Timeout(PLATFORM_TIMEOUT_SECONDS, connect=PLATFORM_CONNECT_TIMEOUT_SECONDS)
        try:
            async with self.client_factory(timeout=timeout, headers={"User-Agent": USER_AGENT}) as client:
                response = await client.post(
                    APIFY_ENDPOINT,
                    params={"token": token},
                    json={"username": [url], "resultsLimit": 1},
                )
        except httpx.TimeoutException:
            return failure(ImportErrorCode.APIFY_TIMEOUT, "Instagram import timed out")
        except httpx.ConnectError:
            return failure(ImportErrorCode.APIFY_CONNECTION_FAILED, "Could not connect to Instagram importer")
        except httpx.HTTPError as exc:
            logger.error("Apify request failed for %s: %s", sanitize_url(url), exc.__class__.__name__)
            return failure(ImportErrorCode.APIFY_FAILED, "Instagram import failed")

        if not response.is_success:
            logger.info("Apify HTTP %s for %s", response.status_code, sanitize_url(url))
            return failure(ImportErrorCode.APIFY_FAILED, "Could not fetch Instagram data")

        try:
            items = json.loads(response.text)
        except json.JSONDecodeError:
            return failure(ImportErrorCode.APIFY_INVALID_RESPONSE, "Invalid Instagram response")

        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return failure(ImportErrorCode.INSTAGRAM_EMPTY_RESULT, "No Instagram data returned")

        item = items[0]
        caption = str(item.get("caption") or "").strip()
        image_url = str(item.get("displayUrl") or "").strip() or None
        if not caption:
            return failure(ImportErrorCode.INSTAGRAM_NO_CAPTION, "Instagram caption missing", cover_image_url=image_url)

        result = await extract_recipe_from_text(caption, PromptHint.RAW_TEXT, source_url=url)
        if isinstance(result, ExtractionFailure):
            return failure(result.code, result.message, cover_image_url=image_url)
        return ExtractionSuccess(attributes=result.attributes, cover_image_url=image_url, strategy=self.name)
