"""
Culture-aware date and amount parsing shared by the CSV detector and importer.
"""

import re
from datetime import datetime, timezone
from typing import Optional, Tuple

CURRENCY_SYMBOLS = ("R$", "$", "€", "£", "¥")

# culture code -> (decimal separator, thousands separator)
_SEPARATORS = {
    "en": (".", ","),
    "ja": (".", ","),
    "zh": (".", ","),
    "de": (",", "."),
    "pt": (",", "."),
    "es": (",", "."),
    "it": (",", "."),
    "nl": (",", "."),
    "da": (",", "."),
    "tr": (",", "."),
    "id": (",", "."),
    "fr": (",", " "),
    "pl": (",", " "),
    "sv": (",", " "),
    "nb": (",", " "),
    "fi": (",", " "),
    "cs": (",", " "),
    "ru": (",", " "),
}
_SEPARATOR_OVERRIDES = {
    "de-ch": (".", "'"),
    "fr-ch": (".", "'"),
    "pt-br": (",", "."),
    "en-za": (",", " "),
}

_MONTH_FIRST_CULTURES = {"en-us", "en-ph", "es-us"}
_YEAR_FIRST_LANGUAGES = {"ja", "zh", "ko", "hu", "lt", "sv"}

_MONTH_FIRST_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y", "%m.%d.%Y")
_DAY_FIRST_FORMATS = ("%d/%m/%Y", "%d/%m/%y", "%d.%m.%Y", "%d.%m.%y", "%d-%m-%Y", "%d-%m-%y")
_YEAR_FIRST_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y%m%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
)
_NAMED_MONTH_FORMATS = ("%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y", "%d-%b-%Y", "%d-%b-%y")

# .NET custom date format tokens -> strptime directives, longest first
_DOTNET_TOKENS = [
    ("yyyy", "%Y"),
    ("yy", "%y"),
    ("MMMM", "%B"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("M", "%m"),
    ("dd", "%d"),
    ("d", "%d"),
    ("HH", "%H"),
    ("H", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
]
_DOTNET_PATTERN = re.compile("|".join(re.escape(token) for token, _ in _DOTNET_TOKENS))
_DOTNET_MAP = dict(_DOTNET_TOKENS)


def get_separators(culture_code: Optional[str]) -> Tuple[str, str]:
    """Decimal and thousands separators for a culture code such as 'pt-PT'."""
    code = (culture_code or "en-US").strip().lower().replace("_", "-")
    if code in _SEPARATOR_OVERRIDES:
        return _SEPARATOR_OVERRIDES[code]
    language = code.split("-")[0]
    return _SEPARATORS.get(language, (".", ","))


def dotnet_to_strptime(pattern: str) -> str:
    """Translate a .NET style date pattern (e.g. 'dd/MM/yyyy') to strptime syntax."""
    return _DOTNET_PATTERN.sub(lambda m: _DOTNET_MAP[m.group(0)], pattern)


def _candidate_formats(culture_code: Optional[str]):
    code = (culture_code or "en-US").strip().lower().replace("_", "-")
    language = code.split("-")[0]
    if code in _MONTH_FIRST_CULTURES:
        ordered = _MONTH_FIRST_FORMATS + _YEAR_FIRST_FORMATS + _DAY_FIRST_FORMATS
    elif language in _YEAR_FIRST_LANGUAGES:
        ordered = _YEAR_FIRST_FORMATS + _DAY_FIRST_FORMATS + _MONTH_FIRST_FORMATS
    else:
        ordered = _DAY_FIRST_FORMATS + _YEAR_FIRST_FORMATS + _MONTH_FIRST_FORMATS
    return ordered + _NAMED_MONTH_FORMATS


def parse_date(value: str, culture_code: Optional[str] = None, date_format: Optional[str] = None) -> Optional[datetime]:
    """
    Parse a statement date, returning a naive UTC datetime or None.

    The detected format is tried first, then formats ordered by the
    culture's day/month convention, then ISO 8601.
    """
    if not value:
        return None
    text = value.strip().strip('"')
    if not text:
        return None

    formats = []
    if date_format:
        formats.append(dotnet_to_strptime(date_format))
    formats.extend(_candidate_formats(culture_code))

    for fmt in formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_amount(value: str, culture_code: Optional[str] = None) -> Optional[float]:
    """
    Parse a currency amount using the culture's separators.

    Currency symbols are stripped; parentheses and trailing minus signs
    denote negative values.
    """
    if value is None:
        return None
    text = str(value).strip().strip('"')
    if not text:
        return None

    for symbol in CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")
    text = text.replace("\u00a0", " ").strip()

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    if text.endswith("-"):
        negative = True
        text = text[:-1].strip()
    if text.startswith("-"):
        negative = not negative
        text = text[1:].strip()
    elif text.startswith("+"):
        text = text[1:].strip()

    decimal_sep, thousands_sep = get_separators(culture_code)
    text = text.replace(thousands_sep, "")
    if thousands_sep == " ":
        text = text.replace(" ", "")
    if decimal_sep != ".":
        text = text.replace(decimal_sep, ".")

    if not re.fullmatch(r"\d+(\.\d+)?|\.\d+", text):
        return None

    amount = float(text)
    return -amount if negative else amount
