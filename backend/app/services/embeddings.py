"""
Embedding generation for semantic transaction search.
"""

import logging
from typing import List, Optional

from openai import AzureOpenAI

from app.config import settings
from app.services.ai_client import create_openai_client

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Generates text-embedding-3-small vectors (1536 dimensions)."""

    def __init__(self, client: Optional[AzureOpenAI] = None, deployment: Optional[str] = None):
        self._client = client
        self.deployment = deployment or settings.AZURE_OPENAI_EMBEDDING_DEPLOYMENT

    @property
    def client(self) -> AzureOpenAI:
        if self._client is None:
            self._client = create_openai_client()
        return self._client

    def generate_embedding(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be null or empty")

        try:
            response = self.client.embeddings.create(model=self.deployment, input=text)
        except Exception:
            logger.error("Failed to generate embedding for text: %s", text[:50])
            raise
        return list(response.data[0].embedding)

    def generate_transaction_embedding(self, description: str, category: Optional[str] = None) -> List[float]:
        # Category is appended so similar merchants in different categories stay apart
        text = f"{description} [{category}]" if category else description
        return self.generate_embedding(text)


# Singleton instance
_embedding_service = None


def get_embedding_service() -> EmbeddingService:
    """Get or create the embedding service instance."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
