from datetime import datetime

from app.models.schemas import CsvStructureDetectionResult, DetectionMethod
from app.parsers.csv_importer import CsvImporter, DEFAULT_CATEGORY
from app.parsers.detection import CsvStructureDetector


def test_parse_csv_with_english_fallback_columns():
    content = (
        "Date,Description,Amount,Balance,Category\n"
        "01/15/2024,STARBUCKS #1234,-4.50,995.50,Dining\n"
        "01/16/2024,PAYROLL ACME,2000.00,,\n"
    )

    result, transactions = CsvImporter().parse_csv(content, "statement.csv", "user-1", "Checking")

    assert result.total_rows == 2
    assert result.imported_count == 2
    assert result.failed_count == 0
    assert result.errors == []

    first, second = transactions
    assert first["date"] == datetime(2024, 1, 15)
    assert first["amount"] == -4.5
    assert first["balance"] == 995.5
    assert first["category"] == "Dining"
    assert first["user_id"] == "user-1"
    assert first["account"] == "Checking"
    assert second["balance"] is None
    assert second["category"] == DEFAULT_CATEGORY


def test_row_errors_are_reported_and_counted():
    content = (
        "Date,Description,Amount\n"
        "01/15/2024,Coffee,abc\n"
        "01/16/2024,,-3.00\n"
        "someday,Lunch,-12.00\n"
        "01/17/2024,Dinner,-30.00\n"
    )

    result, transactions = CsvImporter().parse_csv(content, "statement.csv", "user-1", "Checking")

    assert result.total_rows == 4
    assert result.imported_count == 1
    assert result.failed_count == 3
    assert result.errors == [
        "Row 1: Invalid amount format: abc",
        "Row 2: Description is required",
        "Row 3: Invalid date format: someday",
    ]
    assert transactions[0]["description"] == "Dinner"


def test_detected_mapping_and_culture_are_used():
    content = (
        "Data;Descrição;Valor;Saldo\n"
        "05/02/2024;COMPRA CONTINENTE;-1.023,40;2.000,00\n"
    )
    detection = CsvStructureDetectionResult(
        delimiter=";",
        column_mappings={"Date": "Data", "Description": "Descrição", "Amount": "Valor", "Balance": "Saldo"},
        culture_code="pt-PT",
        date_format="dd/MM/yyyy",
        confidence_score=90,
        detection_method=DetectionMethod.AI,
    )

    result, transactions = CsvImporter().parse_csv(content, "extrato.csv", "user-1", "Millennium", detection)

    assert result.imported_count == 1
    assert transactions[0]["date"] == datetime(2024, 2, 5)
    assert transactions[0]["amount"] == -1023.4
    assert transactions[0]["balance"] == 2000.0
    assert transactions[0]["description"] == "COMPRA CONTINENTE"


def test_unparsable_balance_is_ignored():
    content = "Date,Description,Amount,Balance\n2024-01-15,Coffee,-4.50,n/a\n"

    result, transactions = CsvImporter().parse_csv(content, "statement.csv", "user-1", "Checking")

    assert result.imported_count == 1
    assert transactions[0]["balance"] is None


def test_long_descriptions_are_truncated():
    content = f"Date,Description,Amount\n2024-01-15,{'X' * 600},-1.00\n"

    _, transactions = CsvImporter().parse_csv(content, "statement.csv", "user-1", "Checking")

    assert len(transactions[0]["description"]) == 500


def test_headers_with_spaces_after_delimiter():
    content = (
        "Date, Description, Amount\n"
        "01/15/2024,Coffee,-4.50\n"
        "01/16/2024,Lunch,-12.00\n"
    )
    detection = CsvStructureDetector().detect_structure(content)

    result, transactions = CsvImporter().parse_csv(content, "statement.csv", "user-1", "Checking", detection)

    assert detection.column_mappings["Description"] == "Description"
    assert result.errors == []
    assert result.imported_count == 2
    assert transactions[0]["description"] == "Coffee"
    assert transactions[0]["amount"] == -4.5
