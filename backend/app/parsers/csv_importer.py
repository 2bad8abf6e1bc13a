"""
Bank Statement CSV Importer

Turns an uploaded CSV into transaction documents ready for insertion.
Column names come from the structure detection result when available,
otherwise from common English header names.
"""

import csv
import io
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.models.schemas import CsvStructureDetectionResult, ImportResult
from app.parsers.csv_formats import parse_amount, parse_date

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Uncategorized"

FALLBACK_COLUMNS = {
    "Description": ("Description", "Memo", "Details"),
    "Date": ("Date", "Transaction Date", "Posting Date"),
    "Amount": ("Amount", "Transaction Amount", "Debit", "Credit"),
    "Balance": ("Balance", "Running Balance", "Account Balance"),
    "Category": ("Category", "Type", "Transaction Type"),
}


class CsvImporter:
    """Parser for bank statement CSV exports."""

    def parse_csv(
        self,
        content: str,
        source_file: str,
        user_id: str,
        account: str,
        detection: Optional[CsvStructureDetectionResult] = None,
    ) -> Tuple[ImportResult, List[Dict[str, Any]]]:
        """
        Parse CSV text into transactions.

        Returns:
            Tuple of (ImportResult, list of transaction documents)
        """
        result = ImportResult(source_file=source_file, imported_at=datetime.utcnow())
        transactions: List[Dict[str, Any]] = []
        delimiter = detection.delimiter if detection and detection.delimiter else ","

        try:
            reader = csv.DictReader(io.StringIO(content), delimiter=delimiter, skipinitialspace=True)
            if reader.fieldnames:
                # Match the header normalisation used by structure detection
                reader.fieldnames = [h.strip().strip('"') for h in reader.fieldnames]

            for row_number, row in enumerate(reader, start=1):
                result.total_rows += 1
                try:
                    transaction = self._parse_row(row, detection)
                except ValueError as e:
                    result.errors.append(f"Row {row_number}: {e}")
                    continue

                transaction["user_id"] = user_id
                transaction["account"] = account
                transactions.append(transaction)

        except csv.Error as e:
            logger.error(f"Error reading CSV file {source_file}: {e}")
            result.errors.append(f"CSV parsing error: {e}")
            return result, []

        result.imported_count = len(transactions)
        result.failed_count = result.total_rows - result.imported_count
        logger.info(
            "Parsed %s: %s rows, %s imported, %s failed",
            source_file,
            result.total_rows,
            result.imported_count,
            result.failed_count,
        )
        return result, transactions

    def _parse_row(self, row: Dict[str, Any], detection: Optional[CsvStructureDetectionResult]) -> Dict[str, Any]:
        """Parse a single CSV row; raises ValueError with a readable reason."""
        description = self._get_value(row, detection, "Description")
        date_str = self._get_value(row, detection, "Date")
        amount_str = self._get_value(row, detection, "Amount")
        balance_str = self._get_value(row, detection, "Balance")
        category = self._get_value(row, detection, "Category")

        if not description:
            raise ValueError("Description is required")
        if not date_str:
            raise ValueError("Date is required")
        if not amount_str:
            raise ValueError("Amount is required")

        culture = detection.culture_code if detection else None
        date_format = detection.date_format if detection else None

        date = parse_date(date_str, culture, date_format)
        if date is None:
            raise ValueError(f"Invalid date format: {date_str}")

        amount = parse_amount(amount_str, culture)
        if amount is None:
            raise ValueError(f"Invalid amount format: {amount_str}")

        # Balance is optional; an unreadable value is dropped rather than failing the row
        balance = parse_amount(balance_str, culture) if balance_str else None

        return {
            "id": str(uuid.uuid4()),
            "date": date,
            "description": description.strip()[:500],
            "amount": amount,
            "balance": balance,
            "category": category.strip()[:100] if category and category.strip() else DEFAULT_CATEGORY,
            "imported_at": datetime.utcnow(),
        }

    @staticmethod
    def _get_value(row: Dict[str, Any], detection: Optional[CsvStructureDetectionResult], key: str) -> Optional[str]:
        """Read a column via the detected mapping first, then the English fallbacks."""
        if detection and detection.column_mappings:
            detected_column = detection.column_mappings.get(key)
            if detected_column:
                value = row.get(detected_column)
                if value is not None:
                    return str(value).strip()

        for column_name in FALLBACK_COLUMNS[key]:
            value = row.get(column_name)
            if value is not None:
                return str(value).strip()
        return None
