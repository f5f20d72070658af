"""Utility functions."""

from app.utils.time import (
    add_months,
    clinic_now,
    month_bounds,
    month_days,
    parse_date,
    parse_datetime,
    parse_time,
    shift_month,
)

__all__ = [
    "clinic_now",
    "parse_date",
    "parse_time",
    "parse_datetime",
    "month_bounds",
    "month_days",
    "shift_month",
    "add_months",
]
