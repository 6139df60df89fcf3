import os
import tempfile

os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="recipe-importer-media-"))

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_importer.app.api.deps import get_db_session, get_storage_provider
from recipe_importer.app.core.config import get_settings
from recipe_importer.app.db import models
from recipe_importer.app.db.base import Base
from recipe_importer.app.main import create_app
from recipe_importer.app.services.storage.local import LocalStorageProvider


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(tmp_path)


@pytest.fixture
def app(db_session, storage):
    app = create_app()

    def override_db():
        yield db_session

    def override_storage():
        return storage

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_storage_provider] = override_storage
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_settings():
    return get_settings()


def make_token(user_id: str, email: str, settings) -> str:
    payload = {"sub": str(user_id), "email": email}
    return jwt.encode(payload, settings.auth_secret_key, algorithm=settings.auth_algorithm)


@pytest.fixture
def user_token(auth_settings):
    return make_token("user-1", "user1@example.com", auth_settings)


@pytest.fixture
def other_user_token(auth_settings):
    return make_token("user-2", "user2@example.com", auth_settings)


@pytest.fixture
def make_pending_recipe(db_session):
    def _make(user_id="user-1", source_url=None, import_image_path=None):
        return create_pending_recipe(db_session, user_id, source_url, import_image_path)

    return _make


def create_pending_recipe(db, user_id, source_url=None, import_image_path=None):
    if db.get(models.User, user_id) is None:
        db.add(models.User(user_id=user_id))
    recipe = models.Recipe(
        user_id=user_id,
        name="Importing...",
        ingredients=[],
        instructions=[],
        source_url=source_url,
        import_image_path=import_image_path,
        import_status=models.ImportStatus.PENDING,
    )
    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    return recipe
