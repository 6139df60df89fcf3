#!/usr/bin/env python
"""
Periodic cleanup of failed imports.

Failed placeholder recipes are kept for FAILED_IMPORT_RETENTION_MINUTES so the
client can show the error, then deleted along with any stored images. Run as
a cron job or separate process.
"""
import logging

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.db.session import SessionLocal
from recipe_importer.app.services import import_job_service

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cleanup")


def run_cleanup():
    """Run cleanup tasks."""
    settings = get_settings()
    with SessionLocal() as db:
        try:
            deleted = import_job_service.delete_stale_failed_imports(db, settings.failed_import_retention_minutes)
            if deleted:
                logger.info("Deleted %s stale failed imports", deleted)
        except (OSError, RuntimeError):
            logger.exception("Cleanup failed")


if __name__ == "__main__":
    run_cleanup()
