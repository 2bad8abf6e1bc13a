"""
Transaction Description Enhancement Service

Cleans up raw bank descriptions ("AMZN MKTP US*123456789") into readable
merchant names and suggests a category, using the user's recent categorized
transactions on the same account as context.
"""

import json
import logging
import time
from typing import List, Optional, Dict, Any

from sqlalchemy.orm import Session

from app.config import settings
from app.database.models import Transaction
from app.models.schemas import EnhancedTransactionDescription
from app.services.ai_client import AzureChatService, extract_json_from_code_block, get_chat_service

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a transaction description enhancement assistant. Your job is to clean up messy bank transaction descriptions and make them more readable and meaningful for users.

Guidelines:
1. Transform cryptic merchant codes and bank jargon into clear, readable descriptions
2. Remove unnecessary reference numbers, codes, and technical identifiers
3. Identify the actual merchant or service provider
4. Maintain accuracy - don't invent information not present in the original
5. Suggest a category, preferring the user's existing categories when one fits

Examples:
- "AMZN MKTP US*123456789" -> "Amazon Marketplace Purchase"
- "STARBUCKS COFFEE #1234" -> "Starbucks Coffee"
- "SHELL OIL #4567" -> "Shell Gas Station"
- "DD VODAFONE PORTU 222111000 PT00110011" -> "Vodafone Portugal - Direct Debit"
- "TRF MB WAY P/ Manuel Silva" -> "MB WAY Transfer to Manuel Silva"

Respond with a JSON array inside a ```json code block where each object has:
- "originalDescription": the input description
- "enhancedDescription": the cleaned description
- "suggestedCategory": a short category name, or null when unsure
- "confidenceScore": number between 0-1 indicating confidence in the enhancement

Return exactly one object per input description, in the same order.
Be conservative with confidence scores - only use high scores (>0.8) when you're very certain about the merchant identification."""


class TransactionEnhancer:
    """Service for AI enhancement of imported transaction descriptions."""

    def __init__(self, session: Session, chat_service: Optional[AzureChatService] = None):
        self.session = session
        self.chat_service = chat_service or get_chat_service()

    def enhance_descriptions(
        self,
        descriptions: List[str],
        account: str,
        user_id: str,
        session_hash: Optional[str] = None,
    ) -> List[EnhancedTransactionDescription]:
        if not descriptions:
            return []

        started = time.monotonic()
        try:
            history = self._get_recent_history(user_id, account, session_hash)
            categories = self._get_user_categories(user_id)
            user_prompt = self.create_user_prompt(descriptions, history, categories)

            content = self.chat_service.complete_chat(SYSTEM_PROMPT, user_prompt)
            results = self.parse_enhanced_descriptions(content, descriptions)

            logger.info(
                "AI enhancement of %s descriptions completed in %.0fms",
                len(descriptions),
                (time.monotonic() - started) * 1000,
            )
            return results
        except Exception:
            logger.exception("Failed to enhance transaction descriptions")
            return self._unchanged(descriptions)

    def _get_recent_history(self, user_id: str, account: str, session_hash: Optional[str]) -> List[Dict[str, str]]:
        """Recently categorized transactions of the same account, outside the current import."""
        query = self.session.query(Transaction.description, Transaction.category).filter(
            Transaction.user_id == user_id,
            Transaction.account == account,
            Transaction.category.isnot(None),
            Transaction.category != "",
        )
        if session_hash:
            query = query.filter(
                (Transaction.import_session_hash.is_(None)) | (Transaction.import_session_hash != session_hash)
            )

        rows = (
            query.order_by(Transaction.date.desc(), Transaction.imported_at.desc())
            .limit(settings.ENHANCEMENT_HISTORY_LIMIT)
            .all()
        )
        return [{"description": description, "category": category} for description, category in rows]

    def _get_user_categories(self, user_id: str) -> List[str]:
        rows = (
            self.session.query(Transaction.category)
            .filter(Transaction.user_id == user_id, Transaction.category.isnot(None), Transaction.category != "")
            .distinct()
            .all()
        )
        return sorted(row[0] for row in rows)

    @staticmethod
    def create_user_prompt(
        descriptions: List[str],
        history: List[Dict[str, str]],
        categories: List[str],
    ) -> str:
        parts = []
        if categories:
            parts.append(f"The user's existing categories: {json.dumps(categories)}")
        if history:
            examples = "\n".join(f"- \"{item['description']}\" -> {item['category']}" for item in history)
            parts.append(f"Recently categorized transactions on this account:\n{examples}")
        parts.append(f"Please enhance these transaction descriptions:\n{json.dumps(descriptions)}")
        return "\n\n".join(parts)

    def parse_enhanced_descriptions(
        self,
        content: str,
        original_descriptions: List[str],
    ) -> List[EnhancedTransactionDescription]:
        try:
            payload = json.loads(extract_json_from_code_block(content))
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse AI response as JSON: %s", e)
            payload = None

        if isinstance(payload, list) and len(payload) == len(original_descriptions):
            results = []
            for original, item in zip(original_descriptions, payload):
                results.append(self._to_enhancement(original, item))
            return results

        logger.warning("AI response format was invalid, returning original descriptions")
        return self._unchanged(original_descriptions)

    @staticmethod
    def _to_enhancement(original: str, item: Any) -> EnhancedTransactionDescription:
        if not isinstance(item, dict):
            return EnhancedTransactionDescription(original_description=original, enhanced_description=original)

        enhanced = item.get("enhancedDescription")
        if not isinstance(enhanced, str) or not enhanced.strip():
            enhanced = original

        category = item.get("suggestedCategory")
        if not isinstance(category, str) or not category.strip():
            category = None

        try:
            confidence = float(item.get("confidenceScore") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0

        return EnhancedTransactionDescription(
            original_description=original,
            enhanced_description=enhanced.strip()[:500],
            suggested_category=category.strip()[:100] if category else None,
            confidence_score=max(0.0, min(1.0, confidence)),
        )

    @staticmethod
    def _unchanged(descriptions: List[str]) -> List[EnhancedTransactionDescription]:
        return [
            EnhancedTransactionDescription(
                original_description=description,
                enhanced_description=description,
                confidence_score=0.0,
            )
            for description in descriptions
        ]
