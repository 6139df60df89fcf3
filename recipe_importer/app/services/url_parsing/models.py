"""Pydantic models for recipe import results."""

import enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from recipe_importer.app.services.url_parsing.parsing_utils import normalize_text_list


class ImportErrorCode(str, enum.Enum):
    # Rejected before any I/O
    BLANK_URL = "blank_url"
    INVALID_URL = "invalid_url"
    # Transport
    FETCH_FAILED = "fetch_failed"
    INVALID_CONTENT_TYPE = "invalid_content_type"
    RESPONSE_TOO_LARGE = "response_too_large"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    TIMEOUT = "timeout"
    CONNECTION_FAILED = "connection_failed"
    # Extraction
    NO_JSON_LD = "no_json_ld"
    EXTRACTION_FAILED = "extraction_failed"
    LLM_TIMEOUT = "llm_timeout"
    LLM_ERROR = "llm_error"
    NO_RECIPE_FOUND = "no_recipe_found"
    # Social platform scraping
    APIFY_MISSING_TOKEN = "apify_missing_token"
    APIFY_FAILED = "apify_failed"
    APIFY_INVALID_RESPONSE = "apify_invalid_response"
    APIFY_TIMEOUT = "apify_timeout"
    APIFY_CONNECTION_FAILED = "apify_connection_failed"
    INSTAGRAM_EMPTY_RESULT = "instagram_empty_result"
    INSTAGRAM_NO_CAPTION = "instagram_no_caption"


TRANSPORT_ERROR_CODES = frozenset(
    {
        ImportErrorCode.FETCH_FAILED,
        ImportErrorCode.INVALID_CONTENT_TYPE,
        ImportErrorCode.RESPONSE_TOO_LARGE,
        ImportErrorCode.TOO_MANY_REDIRECTS,
        ImportErrorCode.TIMEOUT,
        ImportErrorCode.CONNECTION_FAILED,
    }
)


class RecipeAttributes(BaseModel):
    """Normalized recipe fields produced by a successful extraction."""

    name: str
    ingredients: List[str] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    notes: Optional[str] = None
    source_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("ingredients", "instructions", mode="before")
    @classmethod
    def _clean_lists(cls, value):
        return normalize_text_list(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _blank_notes(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("prep_time_minutes", "cook_time_minutes", "servings")
    @classmethod
    def _non_negative(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            return None
        return value


class ExtractionSuccess(BaseModel):
    success: Literal[True] = True
    attributes: RecipeAttributes
    cover_image_url: Optional[str] = None
    strategy: Optional[str] = None


class ExtractionFailure(BaseModel):
    success: Literal[False] = False
    code: ImportErrorCode
    message: str
    cover_image_url: Optional[str] = None


ExtractionResult = Union[ExtractionSuccess, ExtractionFailure]


def failure(code: ImportErrorCode, message: str, cover_image_url: Optional[str] = None) -> ExtractionFailure:
    return ExtractionFailure(code=code, message=message, cover_image_url=cover_image_url)


class SourceVerdict(BaseModel):
    """Outcome of validating a URL before it is fetched."""

    allowed: bool
    reason: Optional[str] = None


class FetchedDocument(BaseModel):
    """A size-bounded HTML response."""

    body: bytes
    content_type: str
    final_url: str

    @property
    def charset(self) -> str:
        lowered = self.content_type.lower()
        if "charset=" in lowered:
            return lowered.split("charset=")[1].split(";")[0].strip().strip("\"'") or "utf-8"
        return "utf-8"

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset)
        except LookupError:
            return self.body.decode("utf-8", errors="replace")
        except UnicodeDecodeError:
            return self.body.decode("utf-8", errors="replace")


class FetchedImage(BaseModel):
    body: bytes
    content_type: str
    final_url: str
