"""Month arithmetic and input parsing shared by the simulator modules.

The ledger is indexed by simulated month, so the engine and the exporters
need to turn a month number into a calendar ``YYYY-MM`` label. Config files,
CLI options and web requests carry amounts as loose strings
(``"631,489,642"``), which are normalised to ``Decimal`` here.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal, InvalidOperation, getcontext
from typing import Optional

getcontext().prec = 28


def parse_year_month(ym: str) -> date:
    """Return the first day of the month named by a ``"YYYY-MM"`` string.

    Parameters
    ----------
    ym: str
        Loan start month, e.g. ``"2026-01"``. A trailing day component
        (``"2026-01-15"``) is ignored.

    Returns
    -------
    date
        The first day of that month.

    Raises
    ------
    ValueError
        If the value does not name a calendar month.
    """
    try:
        parts = ym.split("-")
        if len(parts) < 2:
            raise ValueError
        return date(int(parts[0]), int(parts[1]), 1)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def add_months(dt: date, months: int) -> date:
    """Shift ``dt`` forward by ``months`` calendar months.

    Month-end days are clamped, so Jan 31 plus one month is the last day of
    February.
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def format_month(start: date, month_number: Optional[int]) -> Optional[str]:
    """Return the ``YYYY-MM`` label of a 1-based simulated month, or ``None``."""
    if month_number is None:
        return None
    return add_months(start, month_number - 1).strftime("%Y-%m")


def decimal_from_str(value: str) -> Decimal:
    """Parse an amount such as ``"1,500,000"`` or ``"0.0365"`` into a ``Decimal``.

    Thousands separators (commas, underscores) are dropped. NaN and infinity
    are rejected along with unparsable text, as ``ValueError``.
    """
    try:
        cleaned = str(value).replace(",", "").replace("_", "").strip()
        result = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result
