from datetime import datetime

from app.parsers.csv_formats import dotnet_to_strptime, get_separators, parse_amount, parse_date


def test_parse_amount_us_formats():
    assert parse_amount("$1,234.56") == 1234.56
    assert parse_amount("-4.50", "en-US") == -4.5
    assert parse_amount("(12.50)") == -12.5
    assert parse_amount("12.50-") == -12.5
    assert parse_amount("+7") == 7.0


def test_parse_amount_european_formats():
    assert parse_amount("1.234,56", "de-DE") == 1234.56
    assert parse_amount("-4,50 €", "pt-PT") == -4.5
    assert parse_amount("1 234,56", "fr-FR") == 1234.56
    assert parse_amount("R$ 1.000,00", "pt-BR") == 1000.0


def test_parse_amount_rejects_garbage():
    assert parse_amount("abc") is None
    assert parse_amount("") is None
    assert parse_amount(None) is None


def test_get_separators_falls_back_to_language_then_default():
    assert get_separators("de-CH") == (".", "'")
    assert get_separators("es-MX") == (",", ".")
    assert get_separators("xx-YY") == (".", ",")
    assert get_separators(None) == (".", ",")


def test_dotnet_patterns_translate_to_strptime():
    assert dotnet_to_strptime("dd/MM/yyyy") == "%d/%m/%Y"
    assert dotnet_to_strptime("yyyy-MM-dd HH:mm:ss") == "%Y-%m-%d %H:%M:%S"
    assert dotnet_to_strptime("d MMM yyyy") == "%d %b %Y"


def test_parse_date_follows_culture_order():
    assert parse_date("01/02/2024", "en-US") == datetime(2024, 1, 2)
    assert parse_date("01/02/2024", "pt-PT") == datetime(2024, 2, 1)
    assert parse_date("2024-03-15", "en-US") == datetime(2024, 3, 15)


def test_parse_date_prefers_detected_format():
    assert parse_date("03.04.2024", "en-US", "dd.MM.yyyy") == datetime(2024, 4, 3)


def test_parse_date_converts_offsets_to_utc():
    assert parse_date("2024-03-15T10:00:00+02:00") == datetime(2024, 3, 15, 8, 0)


def test_parse_date_invalid_returns_none():
    assert parse_date("not a date", "en-US") is None
    assert parse_date("   ") is None
