import os
import uuid
from datetime import datetime
from typing import List, Optional

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STATIC_API_KEYS", "test-key:user-1,other-key:user-2")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.models import Base, Transaction
from app.services.ai_client import ChatResult


class FakeChatService:
    """Returns queued replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: Optional[List] = None):
        self.replies = list(replies or [])
        self.calls = []

    def _next(self):
        if not self.replies:
            raise RuntimeError("No fake reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def complete_chat(self, system_prompt, user_prompt):
        self.calls.append({"system": system_prompt, "user": user_prompt})
        reply = self._next()
        return reply.content if isinstance(reply, ChatResult) else reply

    def complete_messages(self, messages, tools=None):
        # Snapshot; the agent keeps appending to the same list
        self.calls.append({"messages": list(messages), "tools": tools})
        reply = self._next()
        if isinstance(reply, ChatResult):
            return reply
        return ChatResult(content=reply, finish_reason="stop")


class FakeEmbeddingService:
    def __init__(self, fail_on=None):
        self.fail_on = set(fail_on or [])
        self.texts = []

    def generate_embedding(self, text):
        self.texts.append(text)
        return [0.1] * 1536

    def generate_transaction_embedding(self, description, category=None):
        if description in self.fail_on:
            raise RuntimeError("embedding failed")
        text = f"{description} [{category}]" if category else description
        return self.generate_embedding(text)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_chat():
    return FakeChatService()


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddingService()


@pytest.fixture
def add_transaction(session):
    def _add(
        description="Coffee Shop",
        amount=-4.5,
        date=None,
        category=None,
        account="Checking",
        user_id="user-1",
        imported_at=None,
        import_session_hash=None,
    ):
        transaction = Transaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            account=account,
            date=date or datetime.utcnow(),
            description=description,
            amount=amount,
            category=category,
            imported_at=imported_at or datetime.utcnow(),
            import_session_hash=import_session_hash,
        )
        session.add(transaction)
        session.commit()
        return transaction

    return _add


@pytest.fixture
def client(session, fake_chat, fake_embeddings):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.api.auth import limiter
    from app.database.postgres_db import get_db
    from app.services.ai_client import get_chat_service
    from app.services.embeddings import get_embedding_service

    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_chat_service] = lambda: fake_chat
    app.dependency_overrides[get_embedding_service] = lambda: fake_embeddings
    limiter.enabled = False

    test_client = TestClient(app)
    test_client.headers.update({"X-API-Key": "test-key"})
    yield test_client

    app.dependency_overrides.clear()
    limiter.enabled = True
