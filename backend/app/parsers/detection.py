"""
CSV Structure Detection

Bank exports differ in delimiter, column names and number/date culture.
Detection runs in two passes:
- Rule-based: match English header names and validate a few sample rows
- AI fallback: ask the chat model to describe the layout when the
  rule-based pass is not confident enough
"""

import json
import logging
from typing import Dict, List, Optional, Sequence

from app.models.schemas import CsvStructureDetectionResult, DetectionMethod
from app.parsers.csv_formats import parse_amount, parse_date
from app.services.ai_client import AzureChatService, extract_json_from_code_block, get_chat_service

logger = logging.getLogger(__name__)

RULE_BASED_CONFIDENCE_THRESHOLD = 85
RULE_BASED_SCAN_LINES = 100
RULE_BASED_SAMPLE_ROWS = 3
AI_SAMPLE_LINES = 5


class ColumnMappingDictionary:
    """English-only header aliases; anything else goes to the AI detector."""

    DATE_COLUMNS = ["Date", "Transaction Date", "Posting Date", "Value Date", "Txn Date"]
    DESCRIPTION_COLUMNS = ["Description", "Memo", "Details", "Transaction Description", "Reference"]
    AMOUNT_COLUMNS = ["Amount", "Transaction Amount", "Debit", "Credit", "Value"]
    BALANCE_COLUMNS = ["Balance", "Running Balance", "Account Balance"]
    CATEGORY_COLUMNS = ["Category", "Type", "Transaction Type"]


def _non_blank_lines(content: str, limit: int) -> List[str]:
    lines = []
    for line in content.splitlines():
        if len(lines) >= limit:
            break
        if line.strip():
            lines.append(line)
    return lines


class CsvAnalyzer:
    """Builds the structure-analysis prompt and sends it to the chat service."""

    SYSTEM_PROMPT = (
        "You are a CSV structure analysis expert. Analyze CSV files and identify their format, "
        "columns, and cultural settings."
    )

    def __init__(self, chat_service: Optional[AzureChatService] = None):
        self.chat_service = chat_service or get_chat_service()

    def analyze_csv_structure(self, csv_content: str) -> str:
        return self.chat_service.complete_chat(self.SYSTEM_PROMPT, self.create_structure_analysis_prompt(csv_content))

    @staticmethod
    def create_structure_analysis_prompt(csv_content: str) -> str:
        return f"""Analyze this CSV file structure and identify the following elements:
1. Column separator (comma, semicolon, tab, pipe)
2. Culture/locale for number and date parsing (e.g., 'en-US', 'pt-PT', 'de-DE', 'fr-FR')
3. Date column name and format pattern
4. Description/memo column name
5. Amount/value column name
6. Confidence score (0-100)

CSV Data:
{csv_content}

Respond with a JSON object with this exact structure:
{{
  "columnSeparator": "," | ";" | "\\t" | "|",
  "cultureCode": "en-US" | "pt-PT" | "de-DE" | "fr-FR" | "es-ES" | "it-IT" | etc,
  "dateColumn": "column_name",
  "dateFormat": "MM/dd/yyyy" | "dd/MM/yyyy" | "yyyy-MM-dd" | etc,
  "descriptionColumn": "column_name",
  "amountColumn": "column_name",
  "confidenceScore": 85
}}
"""


class CsvDetector:
    """AI-based structure detection."""

    def __init__(self, analyzer: Optional[CsvAnalyzer] = None):
        self.analyzer = analyzer or CsvAnalyzer()

    def analyze_csv_structure(self, content: str) -> CsvStructureDetectionResult:
        try:
            logger.debug("Starting AI CSV structure analysis")
            lines = _non_blank_lines(content, AI_SAMPLE_LINES)
            if not lines:
                logger.warning("No data found in CSV for AI analysis")
                return self._failed()

            response_text = self.analyzer.analyze_csv_structure("\n".join(lines))
            if not response_text:
                logger.warning("AI service returned empty response for CSV structure analysis")
                return self._failed()

            result = self.parse_ai_response(extract_json_from_code_block(response_text))
            logger.debug("AI detection completed - confidence: %s%%", result.confidence_score)
            return result
        except Exception:
            logger.exception("AI CSV structure analysis failed")
            return self._failed()

    @staticmethod
    def _failed() -> CsvStructureDetectionResult:
        return CsvStructureDetectionResult(confidence_score=0, detection_method=DetectionMethod.AI)

    def parse_ai_response(self, ai_response: str) -> CsvStructureDetectionResult:
        start = ai_response.find("{")
        end = ai_response.rfind("}")
        if start < 0 or end <= start:
            logger.warning("Could not parse AI response, returning low confidence result")
            return self._failed()

        try:
            payload = json.loads(ai_response[start:end + 1])
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse AI response JSON: {e}")
            return self._failed()

        if not isinstance(payload, dict):
            return self._failed()

        delimiter = payload.get("columnSeparator") or ","
        if delimiter == "\\t":
            delimiter = "\t"

        mappings: Dict[str, str] = {}
        for key, field_name in (("Date", "dateColumn"), ("Description", "descriptionColumn"), ("Amount", "amountColumn")):
            value = payload.get(field_name)
            if isinstance(value, str) and value:
                mappings[key] = value

        try:
            confidence = float(payload.get("confidenceScore") or 0)
        except (TypeError, ValueError):
            confidence = 0.0

        result = CsvStructureDetectionResult(
            delimiter=delimiter,
            column_mappings=mappings,
            culture_code=payload.get("cultureCode") or "en-US",
            date_format=payload.get("dateFormat") or None,
            confidence_score=confidence,
            detection_method=DetectionMethod.AI,
        )
        logger.debug(
            "AI detection successful - separator: %r, culture: %s, confidence: %s%%",
            result.delimiter,
            result.culture_code,
            result.confidence_score,
        )
        return result


class CsvStructureDetector:
    """Rule-based detection with AI fallback."""

    def __init__(self, ai_detector: Optional[CsvDetector] = None):
        self._ai_detector = ai_detector

    @property
    def ai_detector(self) -> CsvDetector:
        if self._ai_detector is None:
            self._ai_detector = CsvDetector()
        return self._ai_detector

    def detect_structure(self, content: str) -> CsvStructureDetectionResult:
        try:
            simple_result = self.try_simple_parsing(content)
            if simple_result.confidence_score >= RULE_BASED_CONFIDENCE_THRESHOLD:
                logger.debug("Simple parsing successful with %s%% confidence", simple_result.confidence_score)
                return simple_result

            logger.debug("Simple parsing failed, falling back to AI detection")
        except Exception:
            logger.exception("Error during CSV structure detection, attempting AI fallback")

        return self.ai_detector.analyze_csv_structure(content)

    @staticmethod
    def find_column(headers: Sequence[str], patterns: Sequence[str]) -> Optional[str]:
        wanted = {pattern.lower() for pattern in patterns}
        for header in headers:
            if header.strip().lower() in wanted:
                return header
        return None

    def try_simple_parsing(self, content: str) -> CsvStructureDetectionResult:
        lines = _non_blank_lines(content, RULE_BASED_SCAN_LINES)
        if not lines:
            return CsvStructureDetectionResult(confidence_score=0)

        result = CsvStructureDetectionResult(
            delimiter=",",
            culture_code="en-US",
            detection_method=DetectionMethod.RULE_BASED,
        )

        headers = [h.strip().strip('"') for h in lines[0].split(",")]

        date_column = self.find_column(headers, ColumnMappingDictionary.DATE_COLUMNS)
        description_column = self.find_column(headers, ColumnMappingDictionary.DESCRIPTION_COLUMNS)
        amount_column = self.find_column(headers, ColumnMappingDictionary.AMOUNT_COLUMNS)

        if date_column is None or description_column is None or amount_column is None:
            result.confidence_score = 0
            return result

        result.column_mappings["Date"] = date_column
        result.column_mappings["Description"] = description_column
        result.column_mappings["Amount"] = amount_column

        balance_column = self.find_column(headers, ColumnMappingDictionary.BALANCE_COLUMNS)
        if balance_column is not None:
            result.column_mappings["Balance"] = balance_column

        category_column = self.find_column(headers, ColumnMappingDictionary.CATEGORY_COLUMNS)
        if category_column is not None:
            result.column_mappings["Category"] = category_column

        samples = lines[1:1 + RULE_BASED_SAMPLE_ROWS]
        if not samples:
            # Columns found but nothing to validate against
            result.confidence_score = RULE_BASED_CONFIDENCE_THRESHOLD
            return result

        successful = 0
        for row in samples:
            parts = row.split(",")
            if len(parts) >= len(headers) and self._try_parse_row(parts, headers, result.column_mappings):
                successful += 1

        result.confidence_score = successful / len(samples) * 100
        return result

    @staticmethod
    def _try_parse_row(parts: List[str], headers: List[str], mappings: Dict[str, str]) -> bool:
        date_index = headers.index(mappings["Date"])
        if parse_date(parts[date_index], "en-US") is None:
            return False

        amount_index = headers.index(mappings["Amount"])
        if parse_amount(parts[amount_index], "en-US") is None:
            return False

        return True
