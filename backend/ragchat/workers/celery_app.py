"""
Celery Application Factory

Configures the Celery app for background document work.
Broker and result backend come from Settings (Redis by default).

Queue topology:
  documents.ingest   — PDF extraction → chunking → embedding pipeline
  documents.events   — LLM event extraction (lower priority, best effort)

Task arguments are logged by Celery. Never pass raw file bytes in task
payloads; pass the blob key and load it inside the worker.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun, worker_process_init
from kombu import Exchange, Queue

from ragchat.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

DOCUMENTS_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "documents.ingest",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.ingest",
        durable=True,
    ),
    Queue(
        "documents.events",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.events",
        durable=True,
    ),
)

TASK_ROUTES = {
    "ragchat.workers.tasks.process_pdf_document":   {"queue": "documents.ingest"},
    "ragchat.workers.tasks.detect_document_events": {"queue": "documents.events"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("ragchat")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="documents.ingest",
        task_default_exchange="documents",
        task_default_routing_key="documents.ingest",

        # --- Reliability ---
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Timeouts ---
        task_soft_time_limit=300,
        task_time_limit=360,

        # --- Result TTL (document state lives in PostgreSQL) ---
        result_expires=3600,

        timezone="UTC",
        enable_utc=True,

        worker_max_tasks_per_child=200,
    )

    app.autodiscover_tasks(["ragchat.workers"])
    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: structured logging
# ---------------------------------------------------------------------------

@worker_process_init.connect
def on_worker_init(**_):
    """Make sure the shared collection exists before the first job runs."""
    from ragchat.workers.tasks import ensure_vector_collection
    ensure_vector_collection()


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s tenant=%s",
        task_id, task.name,
        kwargs.get("document_id", "?"),
        kwargs.get("tenant_id", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, kwargs.get("document_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, kwargs.get("document_id", "?"), exception,
        exc_info=(type(exception), exception, traceback),
    )
