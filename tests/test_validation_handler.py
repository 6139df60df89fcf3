import json

import pytest
from fastapi.exceptions import RequestValidationError

from recipe_importer.app.main import validation_exception_handler


@pytest.mark.asyncio
async def test_validation_handler_formats_errors():
    exc = RequestValidationError(
        errors=[
            {"loc": ("body", "url"), "msg": "field required"},
            {"loc": ("body", "text"), "msg": "Input should be a valid string"},
        ]
    )
    response = await validation_exception_handler(None, exc)
    assert response.status_code == 422
    body = json.loads(response.body)
    assert body["error_code"] == "validation_error"
    assert body["message"] == "Invalid request payload."
    assert body["request_id"]
    assert {"field": "body.url", "message": "field required"} in body["details"]
    assert {"field": "body.text", "message": "Input should be a valid string"} in body["details"]
