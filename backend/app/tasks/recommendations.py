"""
Recommendation Background Tasks

Single-user generation (triggered from the API) and a periodic sweep over
every user with transactions.
"""
import logging

from rq import get_current_job

from app.config import settings
from app.database.models import Transaction
from app.database.postgres_db import get_db_context
from app.services.recommendation_agent import RecommendationAgent

logger = logging.getLogger(__name__)


def _stage_updater(job, label: str):
    def update_stage(stage: str, progress: dict = None):
        if job:
            job.meta["stage"] = stage
            if progress:
                job.meta["progress"] = progress
            job.save_meta()
            logger.info("%s job %s stage: %s progress: %s", label, job.id, stage, progress)

    return update_stage


def run_recommendation_job(user_id: str):
    job = get_current_job()
    update_stage = _stage_updater(job, "Recommendation")

    try:
        update_stage("generating", {"message": "Analyzing transactions..."})
        with get_db_context() as session:
            generated = RecommendationAgent(session).generate_recommendations(user_id)

        result = {"status": "success", "generated": generated}
        update_stage("completed", result)
        return result
    except Exception as exc:
        update_stage("failed", {"message": f"Recommendation generation failed: {str(exc)}"})
        logger.exception("Recommendation job failed for user %s", user_id)
        raise exc


def run_recommendation_sweep_job():
    job = get_current_job()
    update_stage = _stage_updater(job, "Recommendation sweep")

    try:
        with get_db_context() as session:
            user_ids = [row[0] for row in session.query(Transaction.user_id).distinct().all()]

        update_stage("processing", {"current": 0, "total": len(user_ids)})

        generated = 0
        for idx, user_id in enumerate(user_ids, 1):
            # Fresh session per user so one failure does not poison the rest
            with get_db_context() as session:
                generated += RecommendationAgent(session).generate_recommendations(user_id)
            update_stage("processing", {"current": idx, "total": len(user_ids)})

        result = {"status": "success", "users": len(user_ids), "generated": generated}
        update_stage("completed", result)
        logger.info("Recommendation sweep completed: %s users, %s recommendations", len(user_ids), generated)
        return result
    except Exception as exc:
        update_stage("failed", {"message": f"Recommendation sweep failed: {str(exc)}"})
        logger.exception("Recommendation sweep job failed")
        raise exc
    finally:
        _schedule_next_run()


def _schedule_next_run():
    from app.services.job_queue import enqueue_recommendation_sweep_job

    try:
        enqueue_recommendation_sweep_job(
            delay_seconds=settings.RECOMMENDATION_INTERVAL_SECONDS,
            skip_if_pending=True,
        )
    except Exception:
        logger.exception("Failed to schedule next recommendation sweep")
