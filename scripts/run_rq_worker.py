#!/usr/bin/env python
"""
RQ worker for recipe import jobs.

Run with:
    python scripts/run_rq_worker.py

The scheduler is enabled so that jobs waiting on a retry interval are
re-queued when their backoff expires.
"""
import logging
import signal
import sys
import time

from rq import Worker

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.services.queue_service import QUEUE_IMPORTS, get_queue, get_redis_connection

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("rq_worker")

QUEUE_NAMES = [QUEUE_IMPORTS]


def setup_cleanup():
    """Setup cleanup handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info("Received signal %s, shutting down gracefully", sig)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main():
    settings = get_settings()
    logger.info("Starting RQ worker for queues: %s", ", ".join(QUEUE_NAMES))
    logger.info("Redis connection: %s:%s", settings.redis_host, settings.redis_port)

    max_restarts = 10
    restart_count = 0

    while restart_count < max_restarts:
        try:
            redis_conn = get_redis_connection()
            queues = [get_queue(name) for name in QUEUE_NAMES]
            worker = Worker(queues, connection=redis_conn)
            logger.info("Worker started successfully")
            worker.work(with_scheduler=True)
            logger.info("Worker stopped normally")
            break
        except KeyboardInterrupt:
            logger.info("Worker interrupted by user")
            break
        except Exception as exc:
            restart_count += 1
            logger.exception("Worker crashed (restart %d/%d): %s", restart_count, max_restarts, exc)
            if restart_count >= max_restarts:
                logger.error("Worker exceeded max restarts (%d), exiting", max_restarts)
                raise
            time.sleep(5)
            logger.info("Restarting worker...")


if __name__ == "__main__":
    setup_cleanup()
    main()
