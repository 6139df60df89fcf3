"""Drives a pending import placeholder to exactly one terminal state.

A job may be delivered more than once. Every write is a conditional update on
``import_status == pending`` so a redelivered or concurrent job cannot move a
recipe that has already completed or failed.
"""

import logging
import mimetypes
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.db import models
from recipe_importer.app.schemas.import_request import ImportRequest, SourceKind
from recipe_importer.app.services.recipe_importer import RecipeImporter
from recipe_importer.app.services.storage.base import StorageProvider
from recipe_importer.app.services.storage.local import LocalStorageProvider
from recipe_importer.app.services.url_parsing.extractors import (
    PromptHint,
    extract_recipe_from_image,
    extract_recipe_from_text,
)
from recipe_importer.app.services.url_parsing.html_fetcher import SafeFetcher
from recipe_importer.app.services.url_parsing.models import (
    TRANSPORT_ERROR_CODES,
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    ImportErrorCode,
    failure,
)
from recipe_importer.app.services.url_parsing.parsing_utils import sanitize_url, source_domain

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE_MESSAGE = "Import failed: unknown or unreachable source."
GENERIC_FAILURE_MESSAGE = "Import failed."


def build_error_message(code: Optional[ImportErrorCode], source_url: Optional[str]) -> str:
    """User-facing failure text. Only ever names the source hostname."""
    if code in (ImportErrorCode.BLANK_URL, ImportErrorCode.INVALID_URL):
        return UNKNOWN_SOURCE_MESSAGE
    domain = source_domain(source_url)
    if not domain:
        return GENERIC_FAILURE_MESSAGE
    if code in TRANSPORT_ERROR_CODES:
        return f"Could not load the page from {domain}."
    if code == ImportErrorCode.LLM_TIMEOUT:
        return f"Import from {domain} timed out."
    return f"Import from {domain} failed."


def default_storage() -> StorageProvider:
    return LocalStorageProvider(get_settings().media_root)


def load_recipe(db: Session, request: ImportRequest) -> Optional[models.Recipe]:
    stmt = select(models.Recipe).where(
        models.Recipe.id == request.target_recipe_id,
        models.Recipe.user_id == str(request.requested_by),
    )
    return db.scalars(stmt).first()


def _pending_update(recipe_id: int):
    return update(models.Recipe).where(
        models.Recipe.id == recipe_id,
        models.Recipe.import_status == models.ImportStatus.PENDING,
    )


def mark_completed(
    db: Session,
    recipe: models.Recipe,
    result: ExtractionSuccess,
    cover_image_url: Optional[str] = None,
) -> bool:
    attrs = result.attributes
    now = datetime.utcnow()
    stmt = _pending_update(recipe.id).values(
        name=attrs.name,
        ingredients=attrs.ingredients,
        instructions=attrs.instructions,
        prep_time=attrs.prep_time_minutes,
        cook_time=attrs.cook_time_minutes,
        servings=attrs.servings,
        notes=attrs.notes,
        source_url=attrs.source_url or recipe.source_url,
        cover_image_url=cover_image_url or recipe.cover_image_url,
        import_status=models.ImportStatus.COMPLETED,
        error_message=None,
        failed_at=None,
        updated_at=now,
    )
    updated = db.execute(stmt.execution_options(synchronize_session=False)).rowcount == 1
    db.commit()
    db.refresh(recipe)
    return updated


def mark_failed(db: Session, recipe: models.Recipe, error_message: str) -> bool:
    now = datetime.utcnow()
    stmt = _pending_update(recipe.id).values(
        import_status=models.ImportStatus.FAILED,
        error_message=error_message,
        failed_at=now,
        updated_at=now,
    )
    updated = db.execute(stmt.execution_options(synchronize_session=False)).rowcount == 1
    db.commit()
    db.refresh(recipe)
    return updated


async def store_cover_image(
    image_url: Optional[str], storage: StorageProvider, fetcher: SafeFetcher
) -> Optional[str]:
    """Download a remote cover image into storage. Never raises."""
    if not image_url:
        return None
    try:
        fetched = await fetcher.fetch_image(image_url)
        if isinstance(fetched, ExtractionFailure):
            logger.info("Skipping cover image %s: %s", sanitize_url(image_url), fetched.code.value)
            return None
        return storage.save_bytes(fetched.body, fetched.content_type)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cover image download failed for %s: %s", sanitize_url(image_url), exc)
        return None


async def _extract(
    request: ImportRequest, recipe: models.Recipe, importer: RecipeImporter, storage: StorageProvider
) -> ExtractionResult:
    if request.source_kind == SourceKind.URL:
        return await importer.import_url(request.payload)
    if request.source_kind == SourceKind.RAW_TEXT:
        return await extract_recipe_from_text(request.payload or "", PromptHint.RAW_TEXT)

    if not recipe.import_image_path:
        return failure(ImportErrorCode.EXTRACTION_FAILED, "No image attached to this import")
    image_bytes = storage.read_bytes(recipe.import_image_path)
    content_type = mimetypes.guess_type(recipe.import_image_path)[0] or "image/jpeg"
    return await extract_recipe_from_image(image_bytes, content_type)


async def process_import(
    db: Session,
    request: ImportRequest,
    importer: Optional[RecipeImporter] = None,
    storage: Optional[StorageProvider] = None,
    fetcher: Optional[SafeFetcher] = None,
    final_attempt: bool = True,
) -> Optional[models.Recipe]:
    """Run one import job against its placeholder recipe.

    Expected extraction failures end in ``failed`` with a user-facing message.
    Unexpected exceptions are re-raised so the queue can retry; the recipe is
    only marked failed for them when ``final_attempt`` is set.
    """
    recipe = load_recipe(db, request)
    if recipe is None:
        logger.warning("Import target %s not found for user %s", request.target_recipe_id, request.requested_by)
        return None
    if recipe.is_terminal:
        logger.info("Recipe %s already %s, skipping", recipe.id, recipe.import_status.value)
        return recipe

    storage = storage or default_storage()
    source_url = request.payload if request.source_kind == SourceKind.URL else None
    try:
        result = await _extract(request, recipe, importer or RecipeImporter(), storage)
        if isinstance(result, ExtractionFailure):
            logger.info("Import %s failed: %s (%s)", recipe.id, result.code.value, result.message)
            mark_failed(db, recipe, build_error_message(result.code, source_url))
            return recipe

        if request.source_kind == SourceKind.IMAGE:
            cover_url = recipe.import_image_path
        else:
            cover_url = await store_cover_image(result.cover_image_url, storage, fetcher or SafeFetcher())
        if mark_completed(db, recipe, result, cover_url):
            logger.info("Import %s completed via %s", recipe.id, result.strategy)
        elif cover_url and cover_url != recipe.import_image_path:
            storage.delete_image(cover_url)
        return recipe
    except Exception:
        db.rollback()
        logger.exception("Import %s raised unexpectedly", recipe.id)
        if final_attempt:
            mark_failed(db, recipe, build_error_message(None, source_url))
        raise


def delete_stale_failed_imports(
    db: Session, older_than_minutes: int, storage: Optional[StorageProvider] = None
) -> int:
    cutoff = datetime.utcnow() - timedelta(minutes=older_than_minutes)
    stmt = select(models.Recipe).where(
        models.Recipe.import_status == models.ImportStatus.FAILED,
        models.Recipe.failed_at != None,  # noqa: E711
        models.Recipe.failed_at < cutoff,
    )
    stale = list(db.scalars(stmt))
    storage = storage or default_storage()
    for recipe in stale:
        for url in {recipe.import_image_path, recipe.cover_image_url}:
            if not url:
                continue
            try:
                storage.delete_image(url)
            except (OSError, ValueError) as exc:
                logger.warning("Could not delete image %s for recipe %s: %s", url, recipe.id, exc)
        db.delete(recipe)
    db.commit()
    return len(stale)
