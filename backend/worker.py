import logging
import os
import signal
import sys

from redis import Redis
from rq import Worker, Queue

from app.config import settings
from app.services.job_queue import schedule_periodic_jobs

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    logger.info(f"Received signal {signum}, shutting down worker gracefully...")
    sys.exit(0)


def main():
    # Register signal handlers for graceful shutdown
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    redis_conn = Redis.from_url(settings.REDIS_URL)
    queue_list = os.getenv("QUEUE_LIST")
    if queue_list:
        listen = [q.strip() for q in queue_list.split(",") if q.strip()]
    else:
        listen = [
            settings.EMBEDDING_QUEUE_NAME,
            settings.RECOMMENDATION_QUEUE_NAME,
        ]

    # Deduplicate while preserving order
    seen = set()
    listen = [q for q in listen if not (q in seen or seen.add(q))]

    logger.info(f"Worker starting, listening to queues: {', '.join(listen)}")
    logger.info(
        "Embedding back-fill every %ss, recommendation sweep every %ss, AI configured: %s",
        settings.EMBEDDING_INTERVAL_SECONDS,
        settings.RECOMMENDATION_INTERVAL_SECONDS,
        settings.is_ai_configured,
    )

    if os.getenv("SCHEDULE_PERIODIC_JOBS", "true").lower() in ("1", "true", "yes"):
        seeded = schedule_periodic_jobs()
        logger.info("Periodic jobs seeded: %s", seeded)

    worker = Worker(
        [Queue(name, connection=redis_conn) for name in listen],
        connection=redis_conn,
        log_job_description=True,
        job_monitoring_interval=5,
    )

    logger.info("Worker started and ready to process jobs")

    worker.work(
        logging_level=logging.INFO,
        max_jobs=None,  # Process jobs indefinitely
        with_scheduler=True,  # Required for enqueue_in
    )


if __name__ == "__main__":
    main()
