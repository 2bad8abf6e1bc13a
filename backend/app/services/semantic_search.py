"""
Transaction search shared by the SearchTransactions tool and the query assistant.

Semantic search ranks the user's embedded transactions by cosine distance to
the query embedding (pgvector). Keyword matching is used instead when the
database is not PostgreSQL, the user has no embedded rows yet, or the
embedding call fails.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database.models import Transaction
from app.services.embeddings import EmbeddingService, get_embedding_service

logger = logging.getLogger(__name__)

_MIN_KEYWORD_LENGTH = 3


class TransactionSearchService:
    def __init__(self, session: Session, embedding_service: Optional[EmbeddingService] = None):
        self.session = session
        self._embedding_service = embedding_service

    @property
    def embedding_service(self) -> EmbeddingService:
        if self._embedding_service is None:
            self._embedding_service = get_embedding_service()
        return self._embedding_service

    def search(
        self,
        user_id: str,
        query: str,
        max_results: int = 10,
        min_amount: Optional[float] = None,
        max_amount: Optional[float] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Transaction]:
        if not query or not query.strip():
            raise ValueError("Search query is required")

        base = self.session.query(Transaction).filter(Transaction.user_id == user_id)
        if min_amount is not None:
            base = base.filter(Transaction.amount >= min_amount)
        if max_amount is not None:
            base = base.filter(Transaction.amount <= max_amount)
        if start_date is not None:
            base = base.filter(Transaction.date >= start_date)
        if end_date is not None:
            # end_date is a calendar day; include rows later that day
            day_end = end_date.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
            base = base.filter(Transaction.date < day_end)

        if self._supports_vectors() and self._has_embeddings(user_id):
            try:
                vector = self.embedding_service.generate_embedding(query.strip())
                results = (
                    base.filter(Transaction.embedding.isnot(None))
                    .order_by(Transaction.embedding.cosine_distance(vector))
                    .limit(max_results)
                    .all()
                )
                logger.info("Semantic search for user %s returned %s results", user_id, len(results))
                return results
            except Exception:
                logger.exception("Semantic search failed, falling back to keyword search")

        return self._keyword_search(base, query, max_results)

    def _supports_vectors(self) -> bool:
        bind = self.session.get_bind()
        return bind is not None and bind.dialect.name == "postgresql"

    def _has_embeddings(self, user_id: str) -> bool:
        return (
            self.session.query(Transaction.id)
            .filter(Transaction.user_id == user_id, Transaction.embedding.isnot(None))
            .first()
            is not None
        )

    @staticmethod
    def _keyword_search(base, query: str, max_results: int) -> List[Transaction]:
        terms = [term for term in re.findall(r"\w+", query.lower()) if len(term) >= _MIN_KEYWORD_LENGTH]
        if not terms:
            terms = [query.strip().lower()]

        conditions = []
        for term in terms:
            pattern = f"%{term}%"
            conditions.append(Transaction.description.ilike(pattern))
            conditions.append(Transaction.category.ilike(pattern))

        return (
            base.filter(or_(*conditions))
            .order_by(Transaction.date.desc(), Transaction.imported_at.desc())
            .limit(max_results)
            .all()
        )


def transaction_to_result(transaction: Transaction) -> dict:
    """Serializable view of a search hit."""
    return {
        "id": transaction.id,
        "date": transaction.date.strftime("%Y-%m-%d"),
        "description": transaction.description,
        "amount": round(transaction.amount, 2),
        "category": transaction.category,
        "account": transaction.account,
    }
