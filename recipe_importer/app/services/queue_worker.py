"""
Worker entry point for import jobs pulled from the Redis queue.

RQ calls ``process_job`` with the JSON envelope built by ``queue_service``.
Exceptions propagate so RQ can schedule the configured retries.
"""
import asyncio
import json
import logging
from typing import Optional

from rq import get_current_job

from recipe_importer.app.db.session import SessionLocal
from recipe_importer.app.schemas.import_request import ImportRequest
from recipe_importer.app.services import import_job_service

logger = logging.getLogger(__name__)


def parse_envelope(payload_json: str) -> ImportRequest:
    envelope = json.loads(payload_json)
    if "schema_version" not in envelope or "payload" not in envelope:
        raise ValueError("Unrecognised job envelope")
    return ImportRequest.model_validate(envelope["payload"])


def is_final_attempt(job=None) -> bool:
    """True when RQ will not retry this job again, or when not running under RQ."""
    job = job if job is not None else get_current_job()
    if job is None:
        return True
    retries_left: Optional[int] = getattr(job, "retries_left", None)
    return not retries_left


def process_job(payload_json: str) -> None:
    request = parse_envelope(payload_json)
    final_attempt = is_final_attempt()
    logger.info(
        "Processing %s import for recipe %s (final attempt: %s)",
        request.source_kind.value,
        request.target_recipe_id,
        final_attempt,
    )
    with SessionLocal() as db:
        asyncio.run(import_job_service.process_import(db, request, final_attempt=final_attempt))
