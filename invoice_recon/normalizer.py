"""
Locale-tolerant parsing of money amounts and dates.

Every function here is pure and never raises: text that cannot be read
unambiguously yields ``None``.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil import parser as date_parser

from .config import CURRENCY_SYMBOLS, DATE_FORMATS, SUPPORTED_CURRENCIES


_CURRENCY_NOISE = re.compile(
    r"(?i)(?:AED|USD|EUR|SAR|QAR|GBP|Dhs?\.?|SR)|د\.إ|[\$€£₹¥﷼]|\s"
)
_AMOUNT_SHAPE = re.compile(r"-?[\d.,]+")
_DOTTED_THOUSANDS = re.compile(r"\d{1,3}(?:\.\d{3})+")

_ISO_DATE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})$")
_NUMERIC_DATE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})$")

_CURRENCY_CODE = re.compile(
    r"\b(" + "|".join(sorted(SUPPORTED_CURRENCIES | {"GBP"})) + r")\b"
)

_PAYMENT_TERMS = [
    re.compile(r"(?i)\bnet\s*(\d{1,3})\b(?![.,]\d)"),
    re.compile(r"(?i)\bpayment\s+(?:within|in)\s+(\d{1,3})\s+days?\b"),
    re.compile(r"(?i)\bdue\s+(?:within|in)\s+(\d{1,3})\s+days?\b"),
    re.compile(r"(?i)\b(\d{1,3})\s+days?\s+net\b"),
]


def normalize_amount(value: Union[str, int, float, None]) -> Optional[float]:
    """
    Parse a money amount written with either decimal convention.

    Handles:
    - US/UK format: 1,234.56 (comma = thousand separator, period = decimal)
    - European format: 1.234,56 (period = thousand separator, comma = decimal)
    - A lone comma followed by exactly two digits is a decimal comma (234,56)
    - Several periods are thousand separators only when grouped by three
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    value_str = _CURRENCY_NOISE.sub("", str(value))
    if not value_str or not _AMOUNT_SHAPE.fullmatch(value_str):
        return None

    negative = value_str.startswith("-")
    digits = value_str.lstrip("-")

    if "," in digits and "." in digits:
        if digits.rfind(",") > digits.rfind("."):
            digits = digits.replace(".", "").replace(",", ".")
        else:
            digits = digits.replace(",", "")
    elif "," in digits:
        head, _, tail = digits.rpartition(",")
        if len(tail) == 2:
            digits = head.replace(",", "") + "." + tail
        else:
            digits = digits.replace(",", "")
    elif digits.count(".") > 1:
        if not _DOTTED_THOUSANDS.fullmatch(digits):
            return None
        digits = digits.replace(".", "")

    try:
        number = float(digits)
    except ValueError:
        return None
    return -number if negative else number


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    if year < 100:
        year += 2000
    if not 1900 <= year <= 2100:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(
    value: Union[str, date, datetime, None],
    prefer: Optional[str] = None,
) -> Optional[date]:
    """
    Parse an invoice date.

    Numeric dates are read as YYYY-MM-DD, or as DD/MM/YYYY vs MM/DD/YYYY
    decided by whichever component exceeds 12. When both components could
    be a month the date is ambiguous: ``prefer`` ("DMY" or "MDY") decides,
    otherwise ``None`` is returned. Month-name dates ("28 Apr 2025",
    "April 28, 2025") are also accepted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip().rstrip(".,")
    if not text:
        return None

    match = _ISO_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _safe_date(year, month, day)

    match = _NUMERIC_DATE.match(text)
    if match:
        first, second, year = (int(g) for g in match.groups())
        if first > 12 and second > 12:
            return None
        if first > 12:
            day, month = first, second
        elif second > 12:
            month, day = first, second
        elif first == second:
            day = month = first
        elif prefer == "DMY":
            day, month = first, second
        elif prefer == "MDY":
            month, day = first, second
        else:
            return None
        return _safe_date(year, month, day)

    # Only month-name dates are left; they need letters and a day or year
    if not re.search(r"[A-Za-z]", text) or not re.search(r"\d", text):
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        parsed = date_parser.parse(text, dayfirst=(prefer == "DMY"))
    except (ValueError, OverflowError):
        return None
    return _safe_date(parsed.year, parsed.month, parsed.day)


def detect_currency(text: Optional[str]) -> Optional[str]:
    """Return the ISO code of the first currency mentioned in ``text``."""
    if not text:
        return None
    match = _CURRENCY_CODE.search(text.upper())
    if match:
        return match.group(1)
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    return None


def parse_payment_terms(text: Optional[str]) -> Optional[int]:
    """Return the number of days in a payment-terms phrase such as "Net 30"."""
    if not text:
        return None
    for pattern in _PAYMENT_TERMS:
        match = pattern.search(text)
        if match:
            days = int(match.group(1))
            if 0 < days <= 365:
                return days
    return None


def add_days(start: date, days: int) -> date:
    return start + timedelta(days=days)
