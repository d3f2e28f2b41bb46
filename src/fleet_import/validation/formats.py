"""Field format checks and normalizers.

All checkers take the trimmed text form of a cell and return bool; they are
referenced from entity rule sets as ``check`` / ``pattern`` params.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime

NATIONAL_ID_PATTERN = r"\d{7,8}"
# 旧形式 AAA999 / 新形式 AA999AA
PLATE_PATTERN = r"[A-Z]{3}\d{3}|[A-Z]{2}\d{3}[A-Z]{2}"
EMAIL_PATTERN = r"[^\s@]+@[^\s@]+\.[^\s@]+"

_CUIT_WEIGHTS = (5, 4, 3, 2, 7, 6, 5, 4, 3, 2)
_CUIL_FORMATTED = re.compile(r"\d{2}-\d{8}-\d")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")


def normalize_space(value: str) -> str:
    """Collapse internal whitespace runs and trim."""
    return re.sub(r"\s+", " ", value).strip()


def normalize_key(value: str) -> str:
    """Case-insensitive comparison key: collapsed whitespace, lower-cased."""
    return normalize_space(value).lower()


def normalize_plate(value: str) -> str:
    return re.sub(r"[\s\-]", "", value).upper()


def normalize_national_id(value: str) -> str:
    return re.sub(r"[\s\.]", "", value)


def strip_accents(value: str) -> str:
    return "".join(
        c for c in unicodedata.normalize("NFKD", value) if not unicodedata.combining(c)
    )


def is_valid_cuit(value: str) -> bool:
    """CUIT/CUIL: 11 digits (dashes optional) with a valid check digit."""
    digits = value.replace("-", "").strip()
    if not re.fullmatch(r"\d{11}", digits):
        return False
    total = sum(int(d) * w for d, w in zip(digits[:10], _CUIT_WEIGHTS))
    remainder = total % 11
    if remainder == 0:
        expected = 0
    elif remainder == 1:
        expected = 9
    else:
        expected = 11 - remainder
    return expected == int(digits[10])


def is_valid_cuil(value: str) -> bool:
    """CUIL as written on personnel sheets: NN-NNNNNNNN-N plus check digit."""
    return bool(_CUIL_FORMATTED.fullmatch(value.strip())) and is_valid_cuit(value)


def is_valid_phone(value: str) -> bool:
    clean = re.sub(r"[\s\-+()]", "", value)
    return bool(re.fullmatch(r"\d{8,15}", clean))


def parse_date(value: str | date | datetime) -> date | None:
    """Parse a date cell; None when the text matches no accepted format."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    # Excel/pandas の "YYYY-MM-DDTHH:MM:SS" 表記
    if "T" in text:
        text = text.split("T", 1)[0]
    elif " " in text:
        text = text.split(" ", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def is_valid_date(value: str) -> bool:
    return parse_date(value) is not None


def is_valid_year(value: str) -> bool:
    """Vehicle model year between 1950 and next calendar year."""
    try:
        year = int(float(value))
    except (ValueError, OverflowError):
        return False
    return 1950 <= year <= date.today().year + 1


def matches(pattern: str, value: str) -> bool:
    return re.fullmatch(pattern, value) is not None


def match_choice(value: str, choices: tuple[str, ...]) -> str | None:
    """Return the canonical choice matching value (case-insensitive), else None.

    Accents are compared loosely so 'Camion' matches 'Camión'.
    """
    wanted = strip_accents(normalize_key(value))
    for choice in choices:
        if strip_accents(choice.lower()) == wanted:
            return choice
    return None
