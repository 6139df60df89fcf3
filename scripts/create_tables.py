#!/usr/bin/env python
"""Create database tables for the configured DATABASE_URL."""
import logging

from recipe_importer.app.db import models  # noqa: F401
from recipe_importer.app.db.base import Base
from recipe_importer.app.db.session import engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("create_tables")


def main():
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    main()
