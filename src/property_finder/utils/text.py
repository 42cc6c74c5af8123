"""Free-text helpers used by source mappers."""

import re
from datetime import date
from typing import Optional

# "bis 31.12", "until 1. March", "to 31.12.2025", "befristet bis 30.6.26"
END_DATE_RE = re.compile(
    r"(?:befristet bis|bis|until|to|-)\s+(?P<day>\d{1,2})\.\s*"
    r"(?:(?P<month_num>\d{1,2})|(?P<month_name>[a-zA-Zäöü]+))\s*\.?"
    r"(?:\s*(?P<year>\d{2,4}))?",
    re.IGNORECASE,
)

MONTHS = {
    "januar": 1, "january": 1, "jan": 1,
    "februar": 2, "february": 2, "feb": 2,
    "märz": 3, "maerz": 3, "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "mai": 5, "may": 5,
    "juni": 6, "june": 6, "jun": 6,
    "juli": 7, "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9,
    "oktober": 10, "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "dezember": 12, "december": 12, "dec": 12,
}


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_temporary_text(text: str, today: Optional[date] = None) -> bool:
    """True if the text mentions an end date within the next year."""
    if not text:
        return False

    today = today or date.today()
    one_year_ahead = _safe_date(today.year + 1, today.month, today.day) or date(
        today.year + 1, today.month, 28
    )

    for match in END_DATE_RE.finditer(text):
        day = int(match.group("day"))
        if match.group("month_num"):
            month = int(match.group("month_num"))
        else:
            month = MONTHS.get(match.group("month_name").lower())
        if not month or not 1 <= month <= 12 or day <= 0:
            continue

        year_text = match.group("year")
        if year_text:
            year = int(f"20{year_text}") if len(year_text) == 2 else int(year_text)
        else:
            year = today.year

        end_date = _safe_date(year, month, day)
        if end_date is None:
            continue
        # A date without a year that already passed means next year
        if not year_text and end_date < today:
            end_date = _safe_date(year + 1, month, day)
            if end_date is None:
                continue

        if today < end_date < one_year_ahead:
            return True
    return False
