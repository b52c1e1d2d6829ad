"""Calendar normalizer for dates in Taiwanese government correspondence.

Accepted shapes (first match wins):

1. Explicit Republic-of-China phrasing: ``民國114年11月21日`` / ``中華民國 114 年 11 月 21 日``
2. Bare ``年月日`` dates: ``114年11月21日`` or ``2025年11月21日``
3. ISO: ``2025-11-21``
4. Delimited numerics: ``114/11/21``, ``114-11-21``, ``114.11.21``, ``2025/11/21``

A leading year below 200 is an ROC year and is converted by adding 1911.
Anything that fails to match, or lands outside 1990-2100 / an invalid
month-day combination, yields ``None``.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from typing import Optional

ROC_OFFSET = 1911
MIN_YEAR = 1990
MAX_YEAR = 2100

ROC_DATE_RE = re.compile(r"(?:中華)?民國\s*(\d{1,3})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日")
YMD_CJK_RE = re.compile(r"(?<!\d)(\d{2,4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日")
ISO_DATE_RE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")
DELIMITED_DATE_RE = re.compile(r"(?<!\d)(\d{2,4})\s*([/.\-])\s*(\d{1,2})\s*\2\s*(\d{1,2})(?!\d)")

# Fragment used inside fallback patterns to capture any of the shapes above.
DATE_FRAGMENT = (
    r"(?P<date>(?:中華)?(?:民國)?\s*\d{2,4}\s*年\s*\d{1,2}\s*月\s*\d{1,2}\s*日"
    r"|\d{2,4}\s*[/.\-]\s*\d{1,2}\s*[/.\-]\s*\d{1,2})"
)


def roc_to_gregorian(year: int) -> int:
    return year + ROC_OFFSET


def build_iso_date(year: int, month: int, day: int) -> Optional[str]:
    """Return ``YYYY-MM-DD`` if the components form a valid in-range date."""
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _resolve_year(raw: str, *, force_roc: bool = False) -> int:
    year = int(raw)
    if force_roc or year < 200:
        return roc_to_gregorian(year)
    return year


def normalize_date(value: object) -> Optional[str]:
    """Normalize a date-like string to ISO format, or ``None``."""
    if not isinstance(value, str):
        return None

    text = unicodedata.normalize("NFKC", value).strip()
    if not text:
        return None

    match = ROC_DATE_RE.search(text)
    if match:
        year = _resolve_year(match.group(1), force_roc=True)
        return build_iso_date(year, int(match.group(2)), int(match.group(3)))

    match = YMD_CJK_RE.search(text)
    if match:
        year = _resolve_year(match.group(1))
        return build_iso_date(year, int(match.group(2)), int(match.group(3)))

    match = ISO_DATE_RE.search(text)
    if match:
        return build_iso_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = DELIMITED_DATE_RE.search(text)
    if match:
        year = _resolve_year(match.group(1))
        return build_iso_date(year, int(match.group(3)), int(match.group(4)))

    return None
