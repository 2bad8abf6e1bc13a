"""
Natural-language questions about the user's transactions.
"""

import json
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.schemas import QueryResponse, SearchResult
from app.services.ai_client import AzureChatService, get_chat_service
from app.services.semantic_search import TransactionSearchService, transaction_to_result

logger = logging.getLogger(__name__)

CONTEXT_SIZE = 10

SYSTEM_PROMPT = """You are a helpful personal finance assistant. Answer the user's question about their transactions using ONLY the transactions provided as context.

Guidelines:
- Negative amounts are money spent, positive amounts are money received
- Quote concrete amounts, dates and merchants from the context
- If the context does not contain the answer, say so plainly
- Keep the answer to a few sentences"""

FALLBACK_ANSWER = "Sorry, I couldn't answer that right now. Here are the most relevant transactions I found."


class QueryAssistant:
    def __init__(
        self,
        session: Session,
        chat_service: Optional[AzureChatService] = None,
        search_service: Optional[TransactionSearchService] = None,
    ):
        self._chat_service = chat_service
        self.search_service = search_service or TransactionSearchService(session)

    @property
    def chat_service(self) -> AzureChatService:
        if self._chat_service is None:
            self._chat_service = get_chat_service()
        return self._chat_service

    def answer(self, user_id: str, question: str) -> QueryResponse:
        if not question or not question.strip():
            raise ValueError("Question is required")

        transactions = self.search_service.search(user_id, question, max_results=CONTEXT_SIZE)
        results = [transaction_to_result(t) for t in transactions]
        hits = [
            SearchResult(
                id=t.id,
                date=t.date,
                description=t.description,
                amount=t.amount,
                category=t.category,
                account=t.account,
            )
            for t in transactions
        ]

        if not results:
            return QueryResponse(answer="I couldn't find any transactions related to your question.", transactions=[])

        user_prompt = f"Question: {question.strip()}\n\nTransactions:\n{json.dumps(results, indent=2)}"
        try:
            answer = self.chat_service.complete_chat(SYSTEM_PROMPT, user_prompt).strip()
        except Exception:
            logger.exception("Query assistant failed for user %s", user_id)
            answer = ""

        return QueryResponse(answer=answer or FALLBACK_ANSWER, transactions=hits)
