"""Celery application — RabbitMQ broker, Redis result backend.

Runs the periodic full-catalog sweep that catches missed inventory webhooks.
"""
from __future__ import annotations

from celery import Celery, signals
from kombu import Exchange, Queue

from stockshift.config import settings
from stockshift.logging_config import setup_logging

celery = Celery(
    "stockshift",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
)

# ── Serialisation ──
celery.conf.accept_content = ["json"]
celery.conf.task_serializer = "json"
celery.conf.result_serializer = "json"
celery.conf.timezone = "UTC"
celery.conf.enable_utc = True

# ── Reliability ──
celery.conf.task_acks_late = True
celery.conf.worker_prefetch_multiplier = 1
celery.conf.task_reject_on_worker_lost = True

# ── Exchanges & Queues ──
default_exchange = Exchange("stockshift", type="direct")

celery.conf.task_queues = (
    Queue("sync", default_exchange, routing_key="sync"),
)

celery.conf.task_default_queue = "sync"
celery.conf.task_default_exchange = "stockshift"
celery.conf.task_default_routing_key = "sync"

# ── Task routes ──
celery.conf.task_routes = {
    "stockshift.workers.sync.run_scheduled_sync": {"queue": "sync"},
    "stockshift.workers.sync.run_shop_sync": {"queue": "sync"},
}

# ── Beat Schedule ──
celery.conf.beat_schedule = {
    "full-sync-all-shops": {
        "task": "stockshift.workers.sync.run_scheduled_sync",
        "schedule": float(settings.FULL_SYNC_INTERVAL_S),
    },
}

# ── Auto-discover tasks ──
celery.autodiscover_tasks(["stockshift.workers"], related_name="sync", force=True)


@signals.setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    # Connecting this signal stops Celery from installing its own root handlers.
    setup_logging("worker")
