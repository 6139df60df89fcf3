"""Imports a recipe from a URL through an ordered, short-circuiting fallback chain.

Order: reject blank or unsafe URLs, hand known social platform URLs to their
dedicated extractor, otherwise fetch the page and try each document extractor
in turn (schema.org JSON-LD first, then the LLM) until one succeeds.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from recipe_importer.app.services.url_parsing.extractors import (
    DocumentExtractor,
    FreeTextExtractor,
    InstagramExtractor,
    PlatformExtractor,
    PromptHint,
    SchemaOrgExtractor,
)
from recipe_importer.app.services.url_parsing.html_fetcher import SafeFetcher
from recipe_importer.app.services.url_parsing.models import (
    ExtractionFailure,
    ExtractionResult,
    ImportErrorCode,
    SourceVerdict,
    failure,
)
from recipe_importer.app.services.url_parsing.parsing_utils import sanitize_url
from recipe_importer.app.services.url_parsing.source_guard import validate_source_url

logger = logging.getLogger(__name__)


def default_document_extractors() -> List[DocumentExtractor]:
    return [SchemaOrgExtractor(), FreeTextExtractor(PromptHint.WEBPAGE)]


def default_platform_extractors() -> List[PlatformExtractor]:
    return [InstagramExtractor()]


class RecipeImporter:
    def __init__(
        self,
        extractors: Optional[Sequence[DocumentExtractor]] = None,
        platform_extractors: Optional[Sequence[PlatformExtractor]] = None,
        fetcher: Optional[SafeFetcher] = None,
        guard: Callable[[str], SourceVerdict] = validate_source_url,
    ):
        self.extractors = list(extractors) if extractors is not None else default_document_extractors()
        self.platform_extractors = (
            list(platform_extractors) if platform_extractors is not None else default_platform_extractors()
        )
        self.guard = guard
        self.fetcher = fetcher or SafeFetcher(guard=guard)

    async def import_url(self, raw_url: Optional[str]) -> ExtractionResult:
        url = (raw_url or "").strip()
        if not url:
            return failure(ImportErrorCode.BLANK_URL, "Please enter a URL")

        verdict = await asyncio.to_thread(self.guard, url)
        if not verdict.allowed:
            logger.info("Rejected import source %s: %s", sanitize_url(url), verdict.reason)
            return failure(ImportErrorCode.INVALID_URL, verdict.reason or "URL is not allowed")

        for platform in self.platform_extractors:
            if platform.supports_url(url):
                logger.info("Importing %s via %s", sanitize_url(url), platform.name)
                return await platform.extract(url)

        fetched = await self.fetcher.fetch_document(url)
        if isinstance(fetched, ExtractionFailure):
            return fetched

        for extractor in self.extractors:
            result = await extractor.extract(fetched, url)
            if result.success:
                logger.info("Extracted recipe from %s via %s", sanitize_url(url), extractor.name)
                return result
            logger.info("Extractor %s found nothing on %s (%s)", extractor.name, sanitize_url(url), result.code.value)

        return failure(
            ImportErrorCode.NO_RECIPE_FOUND,
            "Could not extract recipe from this page. The site may not have structured recipe data.",
        )

