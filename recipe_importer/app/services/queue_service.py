"""
Redis queue service for recipe import jobs.

Jobs are wrapped in a small JSON envelope and processed by
``queue_worker.process_job``. Retries happen here, at the queue boundary,
using RQ's ``Retry`` rather than inside the import pipeline.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from redis import Redis
from rq import Queue, Retry

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.schemas.import_request import ImportRequest, SourceKind

logger = logging.getLogger(__name__)

QUEUE_IMPORTS = "recipe_importer.imports"
JOB_FUNCTION = "recipe_importer.app.services.queue_worker.process_job"
RETRY_INTERVALS = [10, 30, 60]

_redis_conn: Optional[Redis] = None
_queues: Dict[str, Queue] = {}


def get_redis_connection() -> Redis:
    """Get or create Redis connection."""
    global _redis_conn
    if _redis_conn is None:
        settings = get_settings()
        _redis_conn = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            decode_responses=False,  # RQ expects bytes
        )
    return _redis_conn


def get_queue(queue_name: str = QUEUE_IMPORTS) -> Queue:
    """Get or create a named queue."""
    if queue_name not in _queues:
        _queues[queue_name] = Queue(queue_name, connection=get_redis_connection())
    return _queues[queue_name]


def create_envelope(job_type: str, job_id: str, payload: Dict[str, Any], attempt: int = 1) -> Dict[str, Any]:
    return {
        "schema_version": 1,
        "job_id": job_id,
        "job_type": job_type,
        "created_at": datetime.utcnow().isoformat(),
        "attempt": attempt,
        "payload": payload,
    }


def enqueue_import(request: ImportRequest, queue: Optional[Queue] = None) -> str:
    """
    Enqueue an import request and return the RQ job id.

    Args:
        request: The import to run; its target recipe must already exist as a pending placeholder.
        queue: Optional queue override, mainly for tests.
    """
    job_id = f"import-{request.target_recipe_id}-{uuid4().hex[:8]}"
    job_type = f"recipe.import.{request.source_kind.value}.requested"
    envelope = create_envelope(job_type, job_id, request.model_dump(mode="json"))
    try:
        (queue or get_queue()).enqueue(
            JOB_FUNCTION,
            json.dumps(envelope),
            job_id=job_id,
            job_timeout="10m",
            retry=Retry(max=get_settings().import_max_retries, interval=RETRY_INTERVALS),
        )
    except Exception as exc:
        logger.exception("Failed to enqueue import %s: %s", job_id, exc)
        raise
    logger.info("Enqueued job %s (%s) for recipe %s", job_id, job_type, request.target_recipe_id)
    return job_id


def enqueue_url_import(user_id: str, recipe_id: int, url: str, queue: Optional[Queue] = None) -> str:
    request = ImportRequest(
        requested_by=str(user_id), target_recipe_id=recipe_id, source_kind=SourceKind.URL, payload=url
    )
    return enqueue_import(request, queue)


def enqueue_text_import(user_id: str, recipe_id: int, text: str, queue: Optional[Queue] = None) -> str:
    request = ImportRequest(
        requested_by=str(user_id), target_recipe_id=recipe_id, source_kind=SourceKind.RAW_TEXT, payload=text
    )
    return enqueue_import(request, queue)


def enqueue_image_import(user_id: str, recipe_id: int, queue: Optional[Queue] = None) -> str:
    request = ImportRequest(requested_by=str(user_id), target_recipe_id=recipe_id, source_kind=SourceKind.IMAGE)
    return enqueue_import(request, queue)
