"""Monthly import quota, checked and reserved under a lock on the user row."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.db import models

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Importing..."


class ImportLimitReached(Exception):
    code = "import_limit_reached"

    def __init__(self, limit: int):
        super().__init__(f"Monthly import limit of {limit} reached")
        self.limit = limit


def start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def monthly_import_count(db: Session, user_id: str, now: Optional[datetime] = None) -> int:
    stmt = select(func.count(models.Recipe.id)).where(
        models.Recipe.user_id == str(user_id),
        models.Recipe.created_at >= start_of_month(now),
        models.Recipe.import_status != models.ImportStatus.FAILED,
    )
    return db.scalar(stmt) or 0


def remaining_imports(db: Session, user: models.User) -> Optional[int]:
    """None means unlimited."""
    if user.is_pro:
        return None
    limit = get_settings().free_monthly_import_limit
    return max(limit - monthly_import_count(db, user.user_id), 0)


def _lock_user(db: Session, user_id: str) -> models.User:
    stmt = select(models.User).where(models.User.user_id == str(user_id)).with_for_update()
    user = db.scalars(stmt).first()
    if user is not None:
        return user

    user = models.User(user_id=str(user_id))
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # Another request created the row between our select and insert.
        db.rollback()
        logger.info("User %s created concurrently, re-reading", user_id)
        return db.scalars(stmt).one()
    return user


def reserve_import(
    db: Session,
    user_id: str,
    source_url: Optional[str] = None,
    import_image_path: Optional[str] = None,
) -> models.Recipe:
    """Check the quota and create the pending placeholder recipe in one transaction.

    The user row stays locked until commit, so two concurrent requests cannot
    both pass against the same stale count.
    """
    try:
        user = _lock_user(db, user_id)
        if not user.is_pro:
            limit = get_settings().free_monthly_import_limit
            if monthly_import_count(db, user.user_id) >= limit:
                raise ImportLimitReached(limit)

        recipe = models.Recipe(
            user_id=user.user_id,
            name=PLACEHOLDER_NAME,
            ingredients=[],
            instructions=[],
            source_url=source_url,
            import_image_path=import_image_path,
            import_status=models.ImportStatus.PENDING,
        )
        db.add(recipe)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(recipe)
    logger.info("Reserved import %s for user %s", recipe.id, user_id)
    return recipe
