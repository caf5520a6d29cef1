from __future__ import annotations
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from payroll_api.extensions import db

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def dec(x) -> Decimal:
    """Coerce a Numeric column / JSON number / str to Decimal (None → 0)."""
    if x is None or x == "":
        return Decimal("0")
    if isinstance(x, Decimal):
        return x
    try:
        return Decimal(str(x))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a number: {x!r}") from e


def money(x) -> Decimal:
    return dec(x).quantize(CENT, rounding=ROUND_HALF_UP)


def overlaps_window(from_col, to_col, start: date, end: date):
    """
    SQL filter: the row's [from_col, to_col] interval overlaps [start, end].
    `to_col IS NULL` means open-ended. Overlap, not containment.
    """
    return db.and_(
        from_col <= end,
        db.or_(to_col.is_(None), to_col >= start),
    )


def effective_on(from_col, to_col, on_date: date):
    return overlaps_window(from_col, to_col, on_date, on_date)


def first_day_of_next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)
