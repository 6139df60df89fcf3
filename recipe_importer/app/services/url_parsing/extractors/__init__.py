"""Recipe extractors for different parsing strategies."""

from recipe_importer.app.services.url_parsing.extractors.base import DocumentExtractor, PlatformExtractor
from recipe_importer.app.services.url_parsing.extractors.image import extract_recipe_from_image
from recipe_importer.app.services.url_parsing.extractors.instagram import InstagramExtractor
from recipe_importer.app.services.url_parsing.extractors.llm import (
    FreeTextExtractor,
    PromptHint,
    extract_recipe_from_text,
)
from recipe_importer.app.services.url_parsing.extractors.schema_org import (
    SchemaOrgExtractor,
    extract_recipe_from_schema_org,
)

__all__ = [
    "DocumentExtractor",
    "PlatformExtractor",
    "FreeTextExtractor",
    "InstagramExtractor",
    "PromptHint",
    "SchemaOrgExtractor",
    "extract_recipe_from_image",
    "extract_recipe_from_schema_org",
    "extract_recipe_from_text",
]
