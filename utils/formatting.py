"""
Formatting utilities — pure functions that turn raw values into the
localized strings printed on reports.

Every renderer goes through these helpers so that a KPI card, a table
cell and a chart axis agree on how "12345.5" is written.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Optional

import numpy as np
import pandas as pd

from config.settings import CURRENCY, DATE_FORMAT, TIMEZONE

EMPTY = "-"

CURRENCY_SYMBOLS = {
    "KES": "KSh",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "NGN": "₦",
    "TZS": "TSh",
    "UGX": "USh",
}

# Symbols written flush against the amount ("$1,200.00" not "KSh 1,200")
_ATTACHED_SYMBOLS = {"$", "€", "£"}

_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")
_PARTIAL_YEAR_RE = re.compile(r"^\d{4}$")
_PARTIAL_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


# ── Numbers ──────────────────────────────────────────────────────────

def to_number(value: Any) -> Optional[float]:
    """Coerce *value* to a finite float, or None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            return None
    try:
        number = float(pd.to_numeric(value, errors="coerce"))
    except (TypeError, ValueError):
        return None
    if not np.isfinite(number):
        return None
    return number


def _trim_decimals(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_number(value: Any, decimals: int = 0) -> str:
    number = to_number(value)
    if number is None:
        return EMPTY
    return f"{number:,.{decimals}f}"


def format_number_compact(value: Any) -> str:
    """1234 → 1.2K, 12345678 → 12.3M. Values under 1,000 keep grouping."""
    number = to_number(value)
    if number is None:
        return EMPTY
    magnitude = abs(number)
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if magnitude >= threshold:
            return f"{_trim_decimals(f'{number / threshold:.1f}')}{suffix}"
    return _trim_decimals(f"{number:,.2f}")


def currency_symbol(currency: Optional[str] = None) -> str:
    code = (currency or CURRENCY).upper()
    return CURRENCY_SYMBOLS.get(code, code)


def currency_prefix(currency: Optional[str] = None) -> str:
    """Text written before an amount: "KSh " or "$"."""
    symbol = currency_symbol(currency)
    return symbol if symbol in _ATTACHED_SYMBOLS else f"{symbol} "


def _with_symbol(symbol: str, amount: str) -> str:
    if amount.startswith("-"):
        return f"-{_with_symbol(symbol, amount[1:])}"
    if symbol in _ATTACHED_SYMBOLS:
        return f"{symbol}{amount}"
    return f"{symbol} {amount}"


def format_currency(value: Any, currency: Optional[str] = None,
                    decimals: Optional[int] = None) -> str:
    """Format an amount with the currency symbol.

    Dollar/euro/pound amounts always carry two decimals; the regional
    currencies drop trailing zeros ("KSh 1,250", "KSh 1,250.5").
    """
    number = to_number(value)
    if number is None:
        return EMPTY
    symbol = currency_symbol(currency)
    if decimals is not None:
        amount = f"{number:,.{decimals}f}"
    elif symbol in _ATTACHED_SYMBOLS:
        amount = f"{number:,.2f}"
    else:
        amount = _trim_decimals(f"{number:,.2f}")
    return _with_symbol(symbol, amount)


def format_currency_compact(value: Any, currency: Optional[str] = None) -> str:
    number = to_number(value)
    if number is None:
        return EMPTY
    if abs(number) < 1000:
        return format_currency(number, currency)
    return _with_symbol(currency_symbol(currency), format_number_compact(number))


def format_percent(value: Any, decimals: int = 1) -> str:
    """Values are already percentages: 87.5 → "87.5%"."""
    number = to_number(value)
    if number is None:
        return EMPTY
    return f"{number:,.{decimals}f}%"


# ── Dates ────────────────────────────────────────────────────────────

def to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """Parse *value* into a pandas Timestamp, or None when invalid."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.strip()
        if _PARTIAL_YEAR_RE.match(value):
            value = f"{value}-01-01"
        elif _PARTIAL_MONTH_RE.match(value):
            value = f"{value}-01"
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(TIMEZONE)
    return ts


def format_date(value: Any, pattern: Optional[str] = None) -> str:
    ts = to_timestamp(value)
    if ts is None:
        return EMPTY
    return ts.strftime(pattern or DATE_FORMAT)


def format_duration(days: Any) -> str:
    """Human duration from a number of days."""
    number = to_number(days)
    if number is None:
        return EMPTY
    if number < 1:
        return "< 1 day"
    if number < 30:
        n = int(round(number))
        return f"{n} day" if n == 1 else f"{n} days"
    if number < 365:
        n = int(round(number / 30))
        return f"{n} month" if n == 1 else f"{n} months"
    n = round(number / 365, 1)
    label = _trim_decimals(f"{n:.1f}")
    return f"{label} year" if label == "1" else f"{label} years"


def today(pattern: Optional[str] = None) -> str:
    return pd.Timestamp.now(tz=TIMEZONE).strftime(pattern or DATE_FORMAT)


# ── Generic dispatch ─────────────────────────────────────────────────

def format_value(value: Any, fmt: Optional[str] = None,
                 decimals: Optional[int] = None,
                 currency: Optional[str] = None) -> str:
    """Format *value* according to a format hint.

    Hints: currency, number, percent, date, duration, text.  Unknown or
    missing hints print numbers with grouping and everything else as-is.
    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return EMPTY
    if fmt == "currency":
        return format_currency(value, currency, decimals)
    if fmt == "percent":
        return format_percent(value, 1 if decimals is None else decimals)
    if fmt == "number":
        return format_number(value, decimals or 0)
    if fmt == "date":
        return format_date(value)
    if fmt == "duration":
        return format_duration(value)
    if isinstance(value, (datetime, date)):
        return format_date(value)
    if isinstance(value, (int, float, np.number)) and not isinstance(value, bool):
        number = to_number(value)
        if number is None:
            return EMPTY
        if decimals is None:
            return _trim_decimals(f"{number:,.2f}")
        return f"{number:,.{decimals}f}"
    return str(value)


def compact_text(text: str) -> str:
    """Compact the first grouped number inside an already formatted string.

    "KSh 12,345,678" → "KSh 12.3M".  Only thousands-grouped figures or a
    bare numeric string are touched, so years, dates and reference
    numbers ("Collections 2024", "2024-01-05") come back unchanged.
    """
    stripped = text.strip()
    for match in _NUMBER_RE.finditer(text):
        grouped = "," in match.group(0)
        if not grouped and match.group(0) != stripped:
            continue
        number = to_number(match.group(0))
        if number is None or abs(number) < 1000:
            return text
        return f"{text[:match.start()]}{format_number_compact(number)}{text[match.end():]}"
    return text


# ── Text ─────────────────────────────────────────────────────────────

def humanize_key(key: str) -> str:
    """collection_rate / collectionRate → "Collection Rate"."""
    spaced = _CAMEL_RE.sub(" ", str(key)).replace("_", " ").replace("-", " ")
    return " ".join(word.capitalize() for word in spaced.split())


def slugify(text: str) -> str:
    """Lowercase, drop punctuation, hyphenate whitespace."""
    cleaned = re.sub(r"[^A-Za-z0-9\s-]", "", str(text or ""))
    return re.sub(r"[\s-]+", "-", cleaned.strip()).strip("-").lower()
