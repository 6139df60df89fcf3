import enum
from typing import Optional

from pydantic import BaseModel, Field


class SourceKind(str, enum.Enum):
    URL = "url"
    RAW_TEXT = "raw_text"
    IMAGE = "image"


class ImportRequest(BaseModel):
    """One import job: who asked, which placeholder recipe to fill, and from what."""

    requested_by: str
    target_recipe_id: int
    source_kind: SourceKind
    payload: Optional[str] = Field(
        None, description="URL for url imports, the raw text for text imports, unused for image imports"
    )


class ImportUrlRequest(BaseModel):
    url: str


class ImportTextRequest(BaseModel):
    text: str


class ImportAccepted(BaseModel):
    id: int
    import_status: str
    remaining_imports: Optional[int] = Field(None, description="Imports left this month, null when unlimited")


class ImportStatusRead(BaseModel):
    id: int
    import_status: str
    error_message: Optional[str] = None
    name: Optional[str] = None
    ingredients: list[str] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    servings: Optional[int] = None
    notes: Optional[str] = None
    source_url: Optional[str] = None
    cover_image_url: Optional[str] = None
