import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from recipe_importer.app.api.deps import get_current_user, get_db_session, get_storage_provider
from recipe_importer.app.core.config import get_settings
from recipe_importer.app.db import models
from recipe_importer.app.schemas.auth import CurrentUser
from recipe_importer.app.schemas.import_request import (
    ImportAccepted,
    ImportStatusRead,
    ImportTextRequest,
    ImportUrlRequest,
)
from recipe_importer.app.services import import_job_service, queue_service
from recipe_importer.app.services.import_limits import ImportLimitReached, remaining_imports, reserve_import
from recipe_importer.app.services.storage.base import StorageProvider
from recipe_importer.app.services.url_parsing.models import ImportErrorCode
from recipe_importer.app.services.url_parsing.parsing_utils import sanitize_url
from recipe_importer.app.services.url_parsing.source_guard import validate_source_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes", tags=["import"])


def _limit_reached(exc: ImportLimitReached) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"error_code": exc.code, "message": str(exc), "limit": exc.limit},
    )


def _unprocessable(code: ImportErrorCode, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"error_code": code.value, "message": message},
    )


def _enqueue_or_fail(db: Session, recipe: models.Recipe, enqueue) -> ImportAccepted:
    try:
        enqueue()
    except Exception:
        import_job_service.mark_failed(db, recipe, import_job_service.build_error_message(None, recipe.source_url))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "queue_unavailable", "message": "Import could not be scheduled."},
        )
    return ImportAccepted(
        id=recipe.id,
        import_status=recipe.import_status.value,
        remaining_imports=remaining_imports(db, recipe.user),
    )


@router.post("/import", response_model=ImportAccepted, status_code=status.HTTP_202_ACCEPTED)
def import_from_url(
    payload: ImportUrlRequest,
    db: Session = Depends(get_db_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    url = payload.url.strip()
    if not url:
        raise _unprocessable(ImportErrorCode.BLANK_URL, "Please enter a URL")
    verdict = validate_source_url(url)
    if not verdict.allowed:
        logger.info("Rejected import request for %s: %s", sanitize_url(url), verdict.reason)
        raise _unprocessable(ImportErrorCode.INVALID_URL, verdict.reason or "URL is not allowed")

    try:
        recipe = reserve_import(db, current_user.id, source_url=url)
    except ImportLimitReached as exc:
        raise _limit_reached(exc)
    return _enqueue_or_fail(db, recipe, lambda: queue_service.enqueue_url_import(current_user.id, recipe.id, url))


@router.post("/extract-from-text", response_model=ImportAccepted, status_code=status.HTTP_202_ACCEPTED)
def import_from_text(
    payload: ImportTextRequest,
    db: Session = Depends(get_db_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    text = payload.text.strip()
    if not text:
        raise _unprocessable(ImportErrorCode.EXTRACTION_FAILED, "Please enter recipe text")
    max_chars = get_settings().import_text_max_chars
    if len(text) > max_chars:
        raise _unprocessable(ImportErrorCode.EXTRACTION_FAILED, f"Text must be at most {max_chars} characters")

    try:
        recipe = reserve_import(db, current_user.id)
    except ImportLimitReached as exc:
        raise _limit_reached(exc)
    return _enqueue_or_fail(db, recipe, lambda: queue_service.enqueue_text_import(current_user.id, recipe.id, text))


@router.post("/extract-from-image", response_model=ImportAccepted, status_code=status.HTTP_202_ACCEPTED)
async def import_from_image(
    image: UploadFile = File(...),
    db: Session = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
    current_user: CurrentUser = Depends(get_current_user),
):
    content_type = (image.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise _unprocessable(ImportErrorCode.INVALID_CONTENT_TYPE, "Upload must be an image")
    max_bytes = get_settings().import_image_max_bytes
    data = await image.read(max_bytes + 1)
    if not data:
        raise _unprocessable(ImportErrorCode.EXTRACTION_FAILED, "Uploaded image is empty")
    if len(data) > max_bytes:
        raise _unprocessable(ImportErrorCode.RESPONSE_TOO_LARGE, "Image is too large")

    image_url = storage.save_bytes(data, content_type)
    try:
        recipe = reserve_import(db, current_user.id, import_image_path=image_url)
    except ImportLimitReached as exc:
        storage.delete_image(image_url)
        raise _limit_reached(exc)
    return _enqueue_or_fail(db, recipe, lambda: queue_service.enqueue_image_import(current_user.id, recipe.id))


@router.get("/{recipe_id}/import-status", response_model=ImportStatusRead)
def get_import_status(
    recipe_id: int,
    db: Session = Depends(get_db_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    stmt = select(models.Recipe).where(models.Recipe.id == recipe_id, models.Recipe.user_id == current_user.id)
    recipe = db.scalars(stmt).first()
    if recipe is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")

    read = ImportStatusRead(
        id=recipe.id,
        import_status=recipe.import_status.value,
        error_message=recipe.error_message,
    )
    if recipe.import_status == models.ImportStatus.COMPLETED:
        read = read.model_copy(
            update={
                "name": recipe.name,
                "ingredients": recipe.ingredients or [],
                "instructions": recipe.instructions or [],
                "prep_time": recipe.prep_time,
                "cook_time": recipe.cook_time,
                "servings": recipe.servings,
                "notes": recipe.notes,
                "source_url": recipe.source_url,
                "cover_image_url": recipe.cover_image_url,
            }
        )
    return read
