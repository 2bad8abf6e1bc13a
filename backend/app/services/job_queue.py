import logging
import uuid
from datetime import timedelta
from typing import Optional, Dict, Any

from redis import Redis
from rq import Queue
from rq.job import Job

from app.config import settings

logger = logging.getLogger(__name__)

# Periodic job ids are "<prefix>-<hex>" so pending runs of a chain can be found by id
EMBEDDING_BACKFILL_JOB_PREFIX = "embedding-backfill"
RECOMMENDATION_SWEEP_JOB_PREFIX = "recommendation-sweep"

_redis_connection: Optional[Redis] = None
_embedding_queue: Optional[Queue] = None
_recommendation_queue: Optional[Queue] = None


def get_redis_connection() -> Redis:
    global _redis_connection
    if _redis_connection is None:
        _redis_connection = Redis.from_url(settings.REDIS_URL)
    return _redis_connection


def get_embedding_queue() -> Queue:
    global _embedding_queue
    if _embedding_queue is None:
        _embedding_queue = Queue(
            settings.EMBEDDING_QUEUE_NAME,
            connection=get_redis_connection(),
            default_timeout=settings.EMBEDDING_JOB_TIMEOUT,
        )
    return _embedding_queue


def get_recommendation_queue() -> Queue:
    global _recommendation_queue
    if _recommendation_queue is None:
        _recommendation_queue = Queue(
            settings.RECOMMENDATION_QUEUE_NAME,
            connection=get_redis_connection(),
            default_timeout=settings.RECOMMENDATION_JOB_TIMEOUT,
        )
    return _recommendation_queue


def _periodic_job_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def has_pending_job(queue: Queue, prefix: str, include_started: bool = False) -> bool:
    """True when a periodic job with this id prefix is queued or scheduled (optionally running)."""
    job_ids = list(queue.job_ids)
    job_ids.extend(queue.scheduled_job_registry.get_job_ids())
    if include_started:
        job_ids.extend(queue.started_job_registry.get_job_ids())
    return any(job_id.startswith(prefix) for job_id in job_ids)


def enqueue_embedding_backfill_job(delay_seconds: Optional[int] = None, skip_if_pending: bool = False) -> Optional[Job]:
    """Enqueue an embedding back-fill pass, now or after a delay."""
    from app.tasks.embeddings import run_embedding_backfill_job

    queue = get_embedding_queue()
    if skip_if_pending and has_pending_job(queue, EMBEDDING_BACKFILL_JOB_PREFIX):
        logger.info("Embedding back-fill already pending; not scheduling another run")
        return None

    job_id = _periodic_job_id(EMBEDDING_BACKFILL_JOB_PREFIX)
    if delay_seconds:
        job = queue.enqueue_in(
            timedelta(seconds=delay_seconds),
            run_embedding_backfill_job,
            job_id=job_id,
            job_timeout=settings.EMBEDDING_JOB_TIMEOUT,
        )
    else:
        job = queue.enqueue(run_embedding_backfill_job, job_id=job_id, job_timeout=settings.EMBEDDING_JOB_TIMEOUT)
    job.meta = job.meta or {}
    job.meta.update({"job_type": "embedding_backfill"})
    job.save_meta()
    logger.info("Enqueued embedding back-fill job %s (delay=%ss)", job.id, delay_seconds or 0)
    return job


def enqueue_recommendation_job(user_id: str) -> Job:
    from app.tasks.recommendations import run_recommendation_job

    queue = get_recommendation_queue()
    job = queue.enqueue(
        run_recommendation_job,
        user_id,
        job_timeout=settings.RECOMMENDATION_JOB_TIMEOUT,
    )
    job.meta = job.meta or {}
    job.meta.update(
        {
            "user_id": user_id,
            "job_type": "recommendations",
        }
    )
    job.save_meta()
    logger.info("Enqueued recommendation job %s for user %s", job.id, user_id)
    return job


def enqueue_recommendation_sweep_job(delay_seconds: Optional[int] = None, skip_if_pending: bool = False) -> Optional[Job]:
    """Enqueue a pass that regenerates recommendations for every user."""
    from app.tasks.recommendations import run_recommendation_sweep_job

    queue = get_recommendation_queue()
    if skip_if_pending and has_pending_job(queue, RECOMMENDATION_SWEEP_JOB_PREFIX):
        logger.info("Recommendation sweep already pending; not scheduling another run")
        return None

    job_id = _periodic_job_id(RECOMMENDATION_SWEEP_JOB_PREFIX)
    if delay_seconds:
        job = queue.enqueue_in(
            timedelta(seconds=delay_seconds),
            run_recommendation_sweep_job,
            job_id=job_id,
            job_timeout=settings.RECOMMENDATION_JOB_TIMEOUT,
        )
    else:
        job = queue.enqueue(
            run_recommendation_sweep_job,
            job_id=job_id,
            job_timeout=settings.RECOMMENDATION_JOB_TIMEOUT,
        )
    job.meta = job.meta or {}
    job.meta.update({"job_type": "recommendation_sweep"})
    job.save_meta()
    logger.info("Enqueued recommendation sweep job %s (delay=%ss)", job.id, delay_seconds or 0)
    return job


def schedule_periodic_jobs() -> Dict[str, bool]:
    """
    Seed the self-rescheduling periodic jobs; called at worker startup.

    A chain left over from an earlier run (queued, scheduled or running) is
    kept and no new one is started, so restarts never multiply the chains.
    Returns which chains were seeded.
    """
    seeded = {}
    for name, queue, prefix, enqueue in (
        ("embedding_backfill", get_embedding_queue(), EMBEDDING_BACKFILL_JOB_PREFIX, enqueue_embedding_backfill_job),
        ("recommendation_sweep", get_recommendation_queue(), RECOMMENDATION_SWEEP_JOB_PREFIX, enqueue_recommendation_sweep_job),
    ):
        # Drop running entries whose worker died before rescheduling
        queue.started_job_registry.cleanup()
        if has_pending_job(queue, prefix, include_started=True):
            logger.info("Periodic job %s already pending; not seeding", name)
            seeded[name] = False
            continue
        enqueue()
        seeded[name] = True
    return seeded


def get_job_info(job_id: str) -> Dict[str, Any]:
    job = Job.fetch(job_id, connection=get_redis_connection())
    status = job.get_status()
    info = {
        "job_id": job.id,
        "status": getattr(status, "value", status),
        "enqueued_at": job.enqueued_at.isoformat() if job.enqueued_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "ended_at": job.ended_at.isoformat() if job.ended_at else None,
        "meta": job.meta or {},
    }

    if job.is_finished:
        info["result"] = job.return_value()
    elif job.is_failed:
        info["error"] = job.exc_info

    return info
