from contextlib import contextmanager
from datetime import datetime, timedelta

import pytest

from app.database.models import Transaction
import app.services.job_queue as job_queue
import app.tasks.embeddings as embedding_tasks
from app.tasks.embeddings import EmbeddingBackgroundService, run_embedding_backfill_job


def _embedded_count(session):
    return session.query(Transaction).filter(Transaction.embedding.isnot(None)).count()


def test_generates_embeddings_for_recent_transactions(session, add_transaction, fake_embeddings):
    add_transaction(description="Pingo Doce", category="Groceries")
    add_transaction(description="Uber Trip")
    add_transaction(description="Old Import", imported_at=datetime.utcnow() - timedelta(hours=48))

    result = EmbeddingBackgroundService(session, embedding_service=fake_embeddings).process_pending_embeddings()

    assert result == {"processed": 2, "failed": 0}
    assert sorted(fake_embeddings.texts) == ["Pingo Doce [Groceries]", "Uber Trip"]
    assert _embedded_count(session) == 2


def test_failures_are_counted_and_skipped(session, add_transaction, fake_embeddings):
    add_transaction(description="Good One")
    add_transaction(description="Bad One")
    fake_embeddings.fail_on = {"Bad One"}

    result = EmbeddingBackgroundService(session, embedding_service=fake_embeddings).process_pending_embeddings()

    assert result == {"processed": 1, "failed": 1}
    assert _embedded_count(session) == 1


def test_batch_size_limits_each_pass(session, add_transaction, fake_embeddings):
    for i in range(3):
        add_transaction(description=f"Row {i}", imported_at=datetime.utcnow() - timedelta(minutes=i))

    service = EmbeddingBackgroundService(session, embedding_service=fake_embeddings, batch_size=2)

    assert service.process_pending_embeddings() == {"processed": 2, "failed": 0}
    assert fake_embeddings.texts == ["Row 0", "Row 1"]
    assert service.process_pending_embeddings() == {"processed": 1, "failed": 0}
    assert service.process_pending_embeddings() == {"processed": 0, "failed": 0}


@pytest.fixture
def patched_job(monkeypatch, session, fake_embeddings):
    scheduled = []

    @contextmanager
    def fake_db_context():
        yield session

    monkeypatch.setattr(embedding_tasks, "get_db_context", fake_db_context)
    monkeypatch.setattr(embedding_tasks, "get_embedding_service", lambda: fake_embeddings)
    monkeypatch.setattr(
        job_queue,
        "enqueue_embedding_backfill_job",
        lambda delay_seconds=None, skip_if_pending=False: scheduled.append((delay_seconds, skip_if_pending)),
    )
    return scheduled


def test_job_runs_and_reschedules_itself(patched_job, add_transaction):
    add_transaction(description="Fresh Row")

    assert run_embedding_backfill_job() == {"processed": 1, "failed": 0}
    assert patched_job == [(120, True)]


def test_job_reschedules_even_when_it_fails(patched_job, monkeypatch):
    def broken(self):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(EmbeddingBackgroundService, "process_pending_embeddings", broken)

    with pytest.raises(RuntimeError):
        run_embedding_backfill_job()
    assert patched_job == [(120, True)]
