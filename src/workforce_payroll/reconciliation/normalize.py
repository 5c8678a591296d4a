"""String normalization shared by matching, diffing and header resolution."""

from __future__ import annotations

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any

from workforce_payroll.errors import ValidationError

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_CURRENCY_NOISE = re.compile(r"[$,\s]")
_PARENS_NEGATIVE = re.compile(r"^\((.+)\)$")

# Particles that stay lowercase inside Spanish/English names
LOWERCASE_PARTICLES = frozenset({
    "de", "del", "la", "las", "los", "el", "y", "e",
    "da", "do", "dos", "van", "von", "di",
})


def is_blank(value: Any) -> bool:
    """None, empty and whitespace-only values are blank."""
    return value is None or (isinstance(value, str) and not value.strip())


def clean_text(value: Any) -> str:
    """Trim and collapse internal whitespace."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def strip_accents(value: str) -> str:
    """Drop combining marks: 'Cortés' -> 'Cortes', 'Peña' -> 'Pena'."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(value: Any) -> str:
    """Comparison key for person names: accent-free, casefolded, single-spaced."""
    return strip_accents(clean_text(value)).casefold()


def normalize_phone(value: Any) -> str:
    """Digits only: '(555) 010-2020' -> '5550102020'."""
    if value is None:
        return ""
    return _NON_DIGIT.sub("", str(value))


def normalize_header(value: Any) -> str:
    """Header comparison key, insensitive to case, spacing, punctuation and accents."""
    return _NON_ALNUM.sub("", normalize_name(value))


def normalize_value(value: Any) -> str:
    """Generic comparison key for free-text fields."""
    return clean_text(value).casefold()


def _capitalize_word(word: str, is_first: bool) -> str:
    lower = word.lower()
    if not is_first and lower in LOWERCASE_PARTICLES:
        return lower
    return "-".join(part[:1].upper() + part[1:] for part in lower.split("-"))


def format_person_name(value: Any) -> str:
    """Title-case a person name, keeping particles lowercase.

    'JORGE CORTÉS' -> 'Jorge Cortés'
    'maria de los angeles' -> 'Maria de los Angeles'
    """
    cleaned = clean_text(value)
    if not cleaned:
        return ""
    return " ".join(_capitalize_word(w, i == 0) for i, w in enumerate(cleaned.split(" ")))


def parse_currency(value: Any) -> Decimal | None:
    """Parse a spreadsheet money cell.

    Accepts '$1,234.50', '  12 ', and accounting negatives '(45.00)'.
    Blank cells give None; anything else unparseable is a ValidationError.
    """
    if is_blank(value):
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    cleaned = _CURRENCY_NOISE.sub("", str(value))
    match = _PARENS_NEGATIVE.match(cleaned)
    if match:
        cleaned = "-" + match.group(1)
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise ValidationError(f"'{value}' is not a valid amount") from None
