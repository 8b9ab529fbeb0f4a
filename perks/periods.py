"""
Reset-period bucketing for perk usage.

A perk's usage is counted per reset period. Every calendar month inside the
same period resolves to the same bucket key, so checking a quarterly perk off
in February is visible in January and March too.
"""
from __future__ import annotations
from datetime import date, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from perks.models import Cadence


CadenceLike = Union[Cadence, str, None]

CADENCE_NAMES = {
    Cadence.MONTHLY: "Monthly",
    Cadence.QUARTERLY: "Quarterly",
    Cadence.SEMI_ANNUALLY: "Semi-Annually",
    Cadence.ANNUALLY: "Annually",
}


def quarter_of(month: int) -> int:
    return (month + 2) // 3


def half_of(month: int) -> str:
    return "H1" if month <= 6 else "H2"


def period_label(cadence: CadenceLike, year: int, month: int) -> str:
    """Name of the period containing (year, month), e.g. 2025-Q1 or 2025-H2."""
    kind = Cadence.parse(cadence)
    if kind is Cadence.MONTHLY:
        return f"{year}-{month}"
    elif kind is Cadence.QUARTERLY:
        return f"{year}-Q{quarter_of(month)}"
    elif kind is Cadence.SEMI_ANNUALLY:
        return f"{year}-{half_of(month)}"
    elif kind is Cadence.ANNUALLY:
        return f"{year}"
    else:
        # unknown cadence: count per calendar month
        return f"{year}-{month}"


def bucket_key(perk_id: str, cadence: CadenceLike, year: int, month: int) -> str:
    """Ledger key shared by every month of the perk's reset period.

    month is 1-based (January = 1).
    """
    return f"{perk_id}-{period_label(cadence, year, month)}"


def period_bounds(cadence: CadenceLike, year: int, month: int) -> tuple[date, date]:
    """First and last day of the reset period containing (year, month)."""
    kind = Cadence.parse(cadence)
    if kind is Cadence.QUARTERLY:
        start, length = date(year, (quarter_of(month) - 1) * 3 + 1, 1), 3
    elif kind is Cadence.SEMI_ANNUALLY:
        start, length = date(year, 1 if month <= 6 else 7, 1), 6
    elif kind is Cadence.ANNUALLY:
        start, length = date(year, 1, 1), 12
    else:
        start, length = date(year, month, 1), 1

    end = start + relativedelta(months=length) - timedelta(days=1)
    return start, end


def format_cadence(cadence: CadenceLike) -> str:
    kind = Cadence.parse(cadence)
    if kind is None:
        return cadence or ""
    return CADENCE_NAMES[kind]


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    target = date(year, month, 1) + relativedelta(months=delta)
    return target.year, target.month


def parse_month(value: str) -> tuple[int, int]:
    """Parse YYYY-MM into (year, month)"""
    try:
        year_str, month_str = value.strip().split("-")
        year, month = int(year_str), int(month_str)
    except ValueError:
        raise ValueError("Month must be in YYYY-MM format")
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 01 and 12")
    return year, month


def current_month(today: Optional[date] = None) -> tuple[int, int]:
    today = today or date.today()
    return today.year, today.month
