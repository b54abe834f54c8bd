"""
Value normalization shared by the channel parsers: money, dates, text and
entry direction.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Optional

import structlog

from .models import EntryDirection

logger = structlog.get_logger(__name__)

# Single-row amounts above this are suspicious in marketplace reports
SUSPICIOUS_AMOUNT = 50_000
# Anything above this is almost certainly a misread date or id
REJECTED_AMOUNT = 100_000_000

DEBIT_KEYWORDS = (
    "comiss",
    "commission",
    "tarifa",
    "fee",
    "taxa",
    "tax",
    "frete",
    "shipping",
    "desconto",
    "discount",
)

_DATE_LIKE_PATTERNS = [
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$"),
    re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"),
    re.compile(r"^\d{1,2}-\d{1,2}-\d{2,4}$"),
    re.compile(r"^\d{1,2}\.\d{1,2}\.\d{2,4}$"),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}\s+\d"),
]
_CURRENCY_CHARS = re.compile(r"[R$€£¥₹\s]|BRL|USD", re.IGNORECASE)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def clean_text(value: Any) -> str:
    """Stringify a cell, collapsing internal whitespace."""
    if is_blank(value):
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def parse_money(value: Any) -> float:
    """
    Parse a locale-formatted monetary value into a float.

    Handles Brazilian ("R$ 1.234,56") and US ("1,234.56") formats, currency
    prefixes and parenthesized negatives. Date-looking strings, garbage and
    absurdly large values degrade to 0.0.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return 0.0
        return _sanity_checked(float(value), value)
    if is_blank(value):
        return 0.0

    text = str(value).strip()

    for pattern in _DATE_LIKE_PATTERNS:
        if pattern.search(text):
            return 0.0
    if re.search(r"\d+/\d+", text):
        return 0.0

    negative = text.startswith("(") and text.endswith(")")
    text = _CURRENCY_CHARS.sub("", text.strip("()"))

    dots = text.count(".")
    commas = text.count(",")
    if dots > 1:
        text = text.replace(".", "").replace(",", ".", 1)
    elif commas > 1:
        text = text.replace(",", "")
    elif dots == 1 and commas == 1:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif commas == 1:
        text = text.replace(",", ".")

    text = re.sub(r"[^\d.\-]", "", text)
    try:
        amount = float(text)
    except ValueError:
        return 0.0

    if negative:
        amount = -abs(amount)
    return _sanity_checked(amount, value)


def _sanity_checked(amount: float, raw: Any) -> float:
    if abs(amount) > REJECTED_AMOUNT:
        logger.warning("amount_rejected", raw=str(raw), parsed=amount)
        return 0.0
    if abs(amount) > SUSPICIOUS_AMOUNT:
        logger.warning("amount_suspicious", raw=str(raw), parsed=amount)
    return amount


def normalize_date(value: Any) -> str:
    """
    Normalize a date cell to ISO ``YYYY-MM-DD``.

    Strings are split on "/" or "-": a 4-digit first part means year-first,
    otherwise day-first. Any time component is ignored. Returns "" when the
    value cannot be read as a calendar date.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if is_blank(value):
        return ""

    text = str(value).strip()
    text = re.split(r"[\sT]", text, maxsplit=1)[0]
    parts = re.split(r"[/\-]", text)
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return ""

    if len(parts[0]) == 4:
        year, month, day = parts
    else:
        day, month, year = parts
    if len(year) == 2:
        year = "20" + year

    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return ""


def parse_quantity(value: Any) -> int:
    """Item quantity, never below 1."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return 1
        return max(1, int(value))
    match = re.match(r"\s*(\d+)", str(value or ""))
    if not match:
        return 1
    return max(1, int(match.group(1)))


def infer_entry_direction(
    description: str, net_amount: float, type_label: Optional[str] = None
) -> EntryDirection:
    """Debit when the text names a deduction or the net amount is negative."""
    text = f"{description} {type_label or ''}"
    if contains_any(text, DEBIT_KEYWORDS) or net_amount < 0:
        return EntryDirection.DEBIT
    return EntryDirection.CREDIT
