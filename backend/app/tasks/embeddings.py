"""
Embedding Back-fill Background Task

Periodically generates embeddings for recently imported transactions so
they become reachable by semantic search. Each run re-schedules itself.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from rq import get_current_job
from sqlalchemy.orm import Session

from app.config import settings
from app.database.models import Transaction
from app.database.postgres_db import get_db_context
from app.services.embeddings import EmbeddingService, get_embedding_service

logger = logging.getLogger(__name__)


class EmbeddingBackgroundService:
    """Fills in missing transaction embeddings, newest imports first."""

    def __init__(
        self,
        session: Session,
        embedding_service: Optional[EmbeddingService] = None,
        batch_size: Optional[int] = None,
        lookback_hours: Optional[int] = None,
    ):
        self.session = session
        self.embedding_service = embedding_service or get_embedding_service()
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self.lookback_hours = lookback_hours or settings.EMBEDDING_LOOKBACK_HOURS

    def process_pending_embeddings(self) -> Dict[str, int]:
        cutoff = datetime.utcnow() - timedelta(hours=self.lookback_hours)
        pending = (
            self.session.query(Transaction)
            .filter(Transaction.embedding.is_(None), Transaction.imported_at >= cutoff)
            .order_by(Transaction.imported_at.desc())
            .limit(self.batch_size)
            .all()
        )

        if not pending:
            logger.debug("No recent transactions found that need embeddings")
            return {"processed": 0, "failed": 0}

        logger.info("Processing embeddings for %s recent transactions", len(pending))

        processed = 0
        failed = 0
        for transaction in pending:
            try:
                transaction.embedding = self.embedding_service.generate_transaction_embedding(
                    transaction.description,
                    transaction.category,
                )
                processed += 1
                logger.debug("Generated embedding for transaction %s: %s", transaction.id, transaction.description[:50])
            except Exception as e:
                failed += 1
                logger.warning(
                    "Failed to generate embedding for transaction %s: %s (%s)",
                    transaction.id,
                    transaction.description[:50],
                    e,
                )

        if processed > 0:
            self.session.commit()
            logger.info("Successfully generated embeddings for %s transactions, %s errors", processed, failed)

        return {"processed": processed, "failed": failed}


def run_embedding_backfill_job():
    """RQ entry point: one back-fill pass, then schedule the next one."""
    job = get_current_job()

    def update_stage(stage: str, progress: dict = None):
        if job:
            job.meta["stage"] = stage
            if progress:
                job.meta["progress"] = progress
            job.save_meta()
            logger.info("Embedding job %s stage: %s progress: %s", job.id, stage, progress)

    try:
        update_stage("processing")
        with get_db_context() as session:
            result = EmbeddingBackgroundService(session).process_pending_embeddings()
        update_stage("completed", result)
        return result
    except Exception as exc:
        update_stage("failed", {"message": f"Embedding back-fill failed: {str(exc)}"})
        logger.exception("Embedding back-fill job failed")
        raise exc
    finally:
        _schedule_next_run()


def _schedule_next_run():
    from app.services.job_queue import enqueue_embedding_backfill_job

    try:
        enqueue_embedding_backfill_job(delay_seconds=settings.EMBEDDING_INTERVAL_SECONDS, skip_if_pending=True)
    except Exception:
        logger.exception("Failed to schedule next embedding back-fill run")
