"""Cell-level parsing for spreadsheet imports.

Every coercer here is total: malformed input degrades to an empty string,
zero, ``False`` or ``pending`` instead of raising. The ``coerce_*`` variants
return a :class:`Coerced` so callers can surface a soft warning when a
default was substituted; the ``parse_*``/``normalize_*`` variants return the
bare value.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable

SPREADSHEET_EPOCH = date(1899, 12, 30)
EMPTY_MARKERS = {"", "-"}

_NUMBER_NOISE = re.compile(r"[,\s¥￥$€£円]")
_HANDLE_NOISE = re.compile(r"[\r\n\"']")

_MONTH_DAY = re.compile(r"^(\d{1,2})/(\d{1,2})$")
_SLASH_FULL = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD_SLASH = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_YMD_DASH = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_KANJI_FULL = re.compile(r"^(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日$")
_KANJI_MONTH_DAY = re.compile(r"^(\d{1,2})\s*月\s*(\d{1,2})\s*日$")

_FALLBACK_DATE_FORMATS = (
    "%Y.%m.%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d.%m.%Y",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)


class CampaignStatus(str, Enum):
    PENDING = "pending"
    AGREE = "agree"
    DISAGREE = "disagree"
    CANCELLED = "cancelled"


STATUS_SYNONYMS: dict[CampaignStatus, tuple[str, ...]] = {
    CampaignStatus.AGREE: ("agree", "agreed", "ok", "yes", "y", "accepted", "合意", "承諾", "ok済", "○", "〇", "◯"),
    CampaignStatus.DISAGREE: ("disagree", "disagreed", "ng", "no", "n", "declined", "rejected", "不合意", "辞退", "×", "✕", "✖"),
    CampaignStatus.CANCELLED: ("cancelled", "canceled", "cancel", "キャンセル", "中止", "取消", "取り消し"),
    CampaignStatus.PENDING: ("pending", "hold", "waiting", "保留", "検討中", "未定", "交渉中", "△"),
}

_TRUTHY_FLAGS = {"true", "yes", "y", "1", "on", "x", "○", "〇", "◯", "有", "あり", "海外"}


@dataclass(frozen=True)
class Coerced:
    value: Any
    was_defaulted: bool = False
    ambiguous: bool = False


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("\xa0", " ").strip()


def is_blank(value: Any) -> bool:
    return clean_text(value) == ""


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_DateBuilder = Callable[[re.Match, int], tuple[int, int, int]]

_MONTH_DAY_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "M/D", _MONTH_DAY, lambda m, year: (year, int(m[1]), int(m[2]))
)
_MONTH_FIRST_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "M/D/YYYY", _SLASH_FULL, lambda m, year: (int(m[3]), int(m[1]), int(m[2]))
)
_YMD_SLASH_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "YYYY/M/D", _YMD_SLASH, lambda m, year: (int(m[1]), int(m[2]), int(m[3]))
)
_YMD_DASH_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "YYYY-M-D", _YMD_DASH, lambda m, year: (int(m[1]), int(m[2]), int(m[3]))
)
_DAY_FIRST_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "D/M/YYYY", _SLASH_FULL, lambda m, year: (int(m[3]), int(m[2]), int(m[1]))
)
_KANJI_FULL_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "YYYY年M月D日", _KANJI_FULL, lambda m, year: (int(m[1]), int(m[2]), int(m[3]))
)
_KANJI_MONTH_DAY_PATTERN: tuple[str, re.Pattern, _DateBuilder] = (
    "M月D日", _KANJI_MONTH_DAY, lambda m, year: (year, int(m[1]), int(m[2]))
)


def date_patterns(day_first: bool = False) -> list[tuple[str, re.Pattern, _DateBuilder]]:
    """Ordered string patterns tried by :func:`coerce_date`; the first valid match wins.

    ``M/D/YYYY`` and ``D/M/YYYY`` share one shape, so whichever is listed
    first decides every input where both readings are valid calendar dates.
    ``day_first`` moves ``D/M/YYYY`` ahead of ``M/D/YYYY``.
    """
    first, second = _MONTH_FIRST_PATTERN, _DAY_FIRST_PATTERN
    if day_first:
        first, second = second, first
    return [
        _MONTH_DAY_PATTERN,
        first,
        _YMD_SLASH_PATTERN,
        _YMD_DASH_PATTERN,
        second,
        _KANJI_FULL_PATTERN,
        _KANJI_MONTH_DAY_PATTERN,
    ]


def _from_serial(value: float) -> str:
    try:
        return (SPREADSHEET_EPOCH + timedelta(days=math.floor(value))).isoformat()
    except (OverflowError, ValueError):
        return ""


def _fallback_date(raw: str) -> str:
    try:
        return datetime.fromisoformat(raw).date().isoformat()
    except ValueError:
        pass
    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue
    return ""


def coerce_date(value: Any, *, day_first: bool = False, today: date | None = None) -> Coerced:
    if isinstance(value, datetime):
        return Coerced(value.date().isoformat())
    if isinstance(value, date):
        return Coerced(value.isoformat())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = _from_serial(value)
        return Coerced(parsed, was_defaulted=not parsed)

    raw = clean_text(value)
    if raw in EMPTY_MARKERS:
        return Coerced("", was_defaulted=True)

    current_year = (today or date.today()).year
    for _name, pattern, build in date_patterns(day_first):
        match = pattern.match(raw)
        if match is None:
            continue
        try:
            parsed = date(*build(match, current_year))
        except ValueError:
            continue
        ambiguous = False
        if pattern is _SLASH_FULL:
            lead, second = int(match[1]), int(match[2])
            ambiguous = lead != second and lead <= 12 and second <= 12
        return Coerced(parsed.isoformat(), ambiguous=ambiguous)

    parsed_text = _fallback_date(raw)
    return Coerced(parsed_text, was_defaulted=not parsed_text)


def normalize_date(value: Any, *, day_first: bool = False, today: date | None = None) -> str:
    return coerce_date(value, day_first=day_first, today=today).value


# ---------------------------------------------------------------------------
# Numbers, statuses, flags, handles
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> Coerced:
    if isinstance(value, bool):
        return Coerced(float(value))
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return Coerced(0.0, was_defaulted=True)
        return Coerced(float(value))

    raw = clean_text(value)
    if raw in EMPTY_MARKERS:
        return Coerced(0.0, was_defaulted=True)
    try:
        number = float(_NUMBER_NOISE.sub("", raw))
    except ValueError:
        return Coerced(0.0, was_defaulted=True)
    if not math.isfinite(number):
        return Coerced(0.0, was_defaulted=True)
    return Coerced(number)


def parse_number(value: Any) -> float:
    return coerce_number(value).value


def coerce_status(value: Any) -> Coerced:
    raw = clean_text(value).lower()
    if not raw:
        return Coerced(CampaignStatus.PENDING, was_defaulted=True)
    for status, synonyms in STATUS_SYNONYMS.items():
        if raw in synonyms:
            return Coerced(status)
    return Coerced(CampaignStatus.PENDING, was_defaulted=True)


def parse_status(value: Any) -> CampaignStatus:
    return coerce_status(value).value


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    return clean_text(value).lower() in _TRUTHY_FLAGS


def clean_handle(value: Any) -> str:
    raw = clean_text(value)
    if raw.startswith("@"):
        raw = raw[1:]
    return _HANDLE_NOISE.sub("", raw).strip()
