"""URL recipe parsing package.

This package validates and fetches untrusted recipe URLs and extracts recipes
using multiple strategies: schema.org JSON-LD, social platform scraping and
LLM fallback.
"""

from recipe_importer.app.services.url_parsing.html_fetcher import SafeFetcher
from recipe_importer.app.services.url_parsing.models import (
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    FetchedDocument,
    FetchedImage,
    ImportErrorCode,
    RecipeAttributes,
    SourceVerdict,
)
from recipe_importer.app.services.url_parsing.parsing_utils import (
    clean_text,
    parse_iso8601_duration,
    parse_servings,
    sanitize_url,
    source_domain,
)
from recipe_importer.app.services.url_parsing.source_guard import validate_source_url

__all__ = [
    # Models
    "ExtractionFailure",
    "ExtractionResult",
    "ExtractionSuccess",
    "FetchedDocument",
    "FetchedImage",
    "ImportErrorCode",
    "RecipeAttributes",
    "SourceVerdict",
    # Validation and fetching
    "SafeFetcher",
    "validate_source_url",
    # Parsing utilities
    "clean_text",
    "parse_iso8601_duration",
    "parse_servings",
    "sanitize_url",
    "source_domain",
]
