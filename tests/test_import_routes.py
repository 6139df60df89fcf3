import pytest

from recipe_importer.app.api.routes import imports as import_routes
from recipe_importer.app.core.config import get_settings
from recipe_importer.app.db import models
from recipe_importer.app.services import queue_service
from recipe_importer.app.services.url_parsing.models import SourceVerdict


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def enqueued(monkeypatch):
    jobs = []

    def record(kind):
        def _enqueue(*args, **kwargs):
            jobs.append((kind, args))
            return f"job-{len(jobs)}"

        return _enqueue

    monkeypatch.setattr(queue_service, "enqueue_url_import", record("url"))
    monkeypatch.setattr(queue_service, "enqueue_text_import", record("text"))
    monkeypatch.setattr(queue_service, "enqueue_image_import", record("image"))
    return jobs


@pytest.fixture
def allow_urls(monkeypatch):
    monkeypatch.setattr(import_routes, "validate_source_url", lambda url: SourceVerdict(allowed=True))


def test_requires_auth(client):
    response = client.post("/recipes/import", json={"url": "https://example.com"})
    assert response.status_code in {401, 403}


def test_invalid_token(client):
    response = client.post("/recipes/import", json={"url": "https://example.com"}, headers=auth("nope"))
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_url_import_accepted(client, user_token, enqueued, allow_urls, db_session):
    response = client.post("/recipes/import", json={"url": " https://example.com/soup "}, headers=auth(user_token))
    assert response.status_code == 202
    body = response.json()
    assert body["import_status"] == "pending"
    assert body["remaining_imports"] == get_settings().free_monthly_import_limit - 1
    assert enqueued == [("url", ("user-1", body["id"], "https://example.com/soup"))]
    recipe = db_session.get(models.Recipe, body["id"])
    assert recipe.source_url == "https://example.com/soup"


def test_url_import_rejects_internal_address(client, user_token, enqueued):
    response = client.post(
        "/recipes/import", json={"url": "http://169.254.169.254/latest/meta-data"}, headers=auth(user_token)
    )
    assert response.status_code == 422
    assert response.json()["detail"]["error_code"] == "invalid_url"
    assert enqueued == []


def test_blank_url_rejected(client, user_token, enqueued):
    response = client.post("/recipes/import", json={"url": "  "}, headers=auth(user_token))
    assert response.status_code == 422
    assert response.json()["detail"]["error_code"] == "blank_url"


def test_missing_field_uses_validation_handler(client, user_token):
    response = client.post("/recipes/import", json={}, headers=auth(user_token))
    assert response.status_code == 422
    assert response.json()["error_code"] == "validation_error"


def test_quota_rejection_is_synchronous(client, user_token, enqueued, allow_urls, db_session):
    limit = get_settings().free_monthly_import_limit
    for _ in range(limit):
        assert client.post("/recipes/import", json={"url": "https://example.com/"}, headers=auth(user_token)).status_code == 202

    response = client.post("/recipes/import", json={"url": "https://example.com/"}, headers=auth(user_token))
    assert response.status_code == 429
    assert response.json()["detail"]["error_code"] == "import_limit_reached"
    assert len(enqueued) == limit


def test_enqueue_failure_marks_recipe_failed(client, user_token, allow_urls, monkeypatch, db_session):
    def broken(*args, **kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(queue_service, "enqueue_url_import", broken)
    response = client.post("/recipes/import", json={"url": "https://example.com/"}, headers=auth(user_token))
    assert response.status_code == 503
    recipe = db_session.query(models.Recipe).one()
    assert recipe.import_status == models.ImportStatus.FAILED


def test_text_import(client, user_token, enqueued):
    response = client.post("/recipes/extract-from-text", json={"text": "Soup: tomatoes. Simmer."}, headers=auth(user_token))
    assert response.status_code == 202
    assert enqueued[0][0] == "text"
    assert enqueued[0][1][2] == "Soup: tomatoes. Simmer."


def test_text_import_too_long(client, user_token, enqueued):
    text = "a" * (get_settings().import_text_max_chars + 1)
    response = client.post("/recipes/extract-from-text", json={"text": text}, headers=auth(user_token))
    assert response.status_code == 422
    assert enqueued == []


def test_image_import(client, user_token, enqueued, storage, db_session):
    response = client.post(
        "/recipes/extract-from-image",
        files={"image": ("card.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        headers=auth(user_token),
    )
    assert response.status_code == 202
    recipe = db_session.get(models.Recipe, response.json()["id"])
    assert storage.read_bytes(recipe.import_image_path) == b"\xff\xd8jpeg"
    assert enqueued == [("image", ("user-1", recipe.id))]


def test_image_import_rejects_non_images(client, user_token, enqueued):
    response = client.post(
        "/recipes/extract-from-image",
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=auth(user_token),
    )
    assert response.status_code == 422
    assert response.json()["detail"]["error_code"] == "invalid_content_type"


def test_image_import_rejects_large_files(client, user_token, enqueued, monkeypatch):
    settings = get_settings().model_copy(update={"import_image_max_bytes": 4})
    monkeypatch.setattr(import_routes, "get_settings", lambda: settings)
    response = client.post(
        "/recipes/extract-from-image",
        files={"image": ("big.png", b"\x89PNG-too-big", "image/png")},
        headers=auth(user_token),
    )
    assert response.status_code == 422
    assert response.json()["detail"]["error_code"] == "response_too_large"


def test_import_status_polling(client, user_token, other_user_token, enqueued, allow_urls, db_session):
    created = client.post("/recipes/import", json={"url": "https://example.com/"}, headers=auth(user_token)).json()

    pending = client.get(f"/recipes/{created['id']}/import-status", headers=auth(user_token)).json()
    assert pending["import_status"] == "pending"
    assert pending["name"] is None

    recipe = db_session.get(models.Recipe, created["id"])
    recipe.import_status = models.ImportStatus.COMPLETED
    recipe.name = "Soup"
    recipe.ingredients = ["water"]
    db_session.commit()

    done = client.get(f"/recipes/{created['id']}/import-status", headers=auth(user_token)).json()
    assert done["import_status"] == "completed"
    assert done["name"] == "Soup"
    assert done["ingredients"] == ["water"]

    other = client.get(f"/recipes/{created['id']}/import-status", headers=auth(other_user_token))
    assert other.status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_pro_user_has_unlimited_remaining_imports(client, user_token, enqueued, allow_urls, db_session):
    db_session.add(models.User(user_id="user-1", is_pro=True))
    db_session.commit()
    response = client.post("/recipes/import", json={"url": "https://example.com/"}, headers=auth(user_token))
    assert response.status_code == 202
    assert response.json()["remaining_imports"] is None
