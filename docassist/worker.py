"""Celery worker configuration and broker health check."""

import redis.asyncio as redis
from celery import Celery

from docassist.settings import settings
from docassist.utils.logging_config import logger

celery_app = Celery(
    "docassist",
    broker=str(settings.REDIS_URL),
    backend=str(settings.REDIS_URL),
    include=["docassist.services.ingestion"],
)


celery_app.conf.update(
    task_track_started=True,
    task_acks_late=True,  # a crashed worker hands the document to the next one
    worker_prefetch_multiplier=1,
)


async def check_broker_connection() -> None:
    """
    Pings the Redis broker the upload endpoint enqueues ingestion tasks on.
    Raises if it is unreachable.
    """
    try:
        async with redis.from_url(
            str(settings.REDIS_URL), socket_connect_timeout=5
        ) as client:
            if not await client.ping():
                raise ConnectionError("Redis broker did not answer PING")
        logger.info("Celery broker connection successful")
    except Exception as e:
        logger.error(f"Celery broker connection error: {e}")
        raise
