"""
Bank Statement Image Importer

Extracts transactions from a photo or screenshot of a statement using the
vision-capable chat deployment.
"""

import base64
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.models.schemas import ImportResult
from app.parsers.csv_formats import parse_date
from app.services.ai_client import AzureChatService, extract_json_from_code_block, get_chat_service

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.7

EXTRACTION_PROMPT = """You are a financial data extraction specialist. Extract transaction data from bank statement images.

Return a JSON object with this exact structure:
{
  "confidence_score": 0.95,
  "transactions": [
    {
      "date": "2024-01-15",
      "description": "STARBUCKS COFFEE #1234",
      "amount": -4.50,
      "balance": 1234.56,
      "category": null
    }
  ]
}

Guidelines:
- Extract ALL visible transactions from the statement
- Use negative amounts for debits/expenses, positive for credits/income
- Include running balance if visible
- Date format: YYYY-MM-DD
- Leave category as null (will be enhanced later)
- Provide confidence score (0.0-1.0) based on image clarity and data completeness
- If no transactions found, return empty transactions array with confidence explanation"""


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").replace("$", "").strip())
    except ValueError:
        return None


class ImageImporter:
    """Vision-model extraction of statement images."""

    def __init__(self, chat_service: Optional[AzureChatService] = None):
        self.chat_service = chat_service or get_chat_service()

    def process_image(
        self,
        image_bytes: bytes,
        source_file: str,
        user_id: str,
        account: str,
        content_type: str = "image/png",
    ) -> Tuple[ImportResult, List[Dict[str, Any]]]:
        result = ImportResult(source_file=source_file, imported_at=datetime.utcnow())

        try:
            logger.info("Processing bank statement image %s (%s bytes)", source_file, len(image_bytes))
            extracted = self._extract_transactions(image_bytes, content_type)
        except Exception as e:
            logger.exception("Failed to process image %s", source_file)
            result.errors.append(
                f"Image processing error: {e}. Please ensure the image shows a clear bank statement."
            )
            return result, []

        return self.parse_extraction_results(extracted, source_file, user_id, account)

    def _extract_transactions(self, image_bytes: bytes, content_type: str) -> str:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        messages = [
            {"role": "system", "content": EXTRACTION_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Extract all transactions from this bank statement image:"},
                    {"type": "image_url", "image_url": {"url": f"data:{content_type};base64,{encoded}"}},
                ],
            },
        ]
        return self.chat_service.complete_messages(messages).content or ""

    def parse_extraction_results(
        self,
        extracted: str,
        source_file: str,
        user_id: str,
        account: str,
    ) -> Tuple[ImportResult, List[Dict[str, Any]]]:
        result = ImportResult(source_file=source_file, imported_at=datetime.utcnow())
        transactions: List[Dict[str, Any]] = []

        try:
            payload = json.loads(extract_json_from_code_block(extracted))
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Failed to parse extraction results: {e}")
            result.errors.append(f"Failed to parse AI response: {e}")
            return result, transactions

        if not isinstance(payload, dict):
            result.errors.append("Failed to parse AI response: expected a JSON object")
            return result, transactions

        confidence = _to_float(payload.get("confidence_score"))
        if confidence is not None:
            logger.info("Image extraction confidence: %s", confidence)
            if confidence < LOW_CONFIDENCE_THRESHOLD:
                result.errors.append(
                    f"Low confidence extraction ({confidence:.0%}). Please verify the results carefully."
                )

        entries = payload.get("transactions") or []
        if not isinstance(entries, list):
            result.errors.append("Failed to parse AI response: transactions must be a list")
            return result, transactions

        for entry in entries:
            try:
                transaction = self._parse_transaction(entry, user_id, account)
            except ValueError as e:
                result.failed_count += 1
                result.errors.append(f"Failed to parse transaction: {e}")
                continue
            if transaction is not None:
                transactions.append(transaction)
                result.imported_count += 1

        result.total_rows = result.imported_count + result.failed_count
        return result, transactions

    @staticmethod
    def _parse_transaction(entry: Any, user_id: str, account: str) -> Optional[Dict[str, Any]]:
        if not isinstance(entry, dict) or not all(key in entry for key in ("date", "description", "amount")):
            return None

        date = parse_date(str(entry.get("date") or ""), "en-US")
        if date is None:
            raise ValueError("Invalid date format")

        description = entry.get("description")
        if not isinstance(description, str) or not description.strip():
            raise ValueError("Description is required")

        amount = _to_float(entry.get("amount"))
        if amount is None:
            raise ValueError("Invalid amount format")

        return {
            "id": str(uuid.uuid4()),
            "date": date,
            "description": description.strip()[:500],
            "amount": amount,
            "balance": _to_float(entry.get("balance")),
            "category": None,  # Filled in by the enhancer
            "user_id": user_id,
            "account": account,
            "imported_at": datetime.utcnow(),
        }
