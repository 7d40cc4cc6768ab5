"""Aggregate views over a user's expenses.

Everything here is pure: callers fetch the already filtered expense and
category rows and pass them in, so the functions can be exercised without a
database. Amounts are summed exactly as stored (``Decimal`` from the ORM).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from models import Category, Expense
from periods import Period, add_months, month_start, start_of_day

UNKNOWN_CATEGORY_NAME = "Unknown"
UNKNOWN_CATEGORY_COLOR = "#CCCCCC"

DEFAULT_MONTHS = 6
MIN_MONTHS = 1
MAX_MONTHS = 12

ZERO = Decimal("0")


@dataclass(frozen=True)
class CategoryTotal:
    category_id: str
    name: str
    color: str
    amount: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.category_id,
            "name": self.name,
            "color": self.color,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class DailyPoint:
    day: str
    amount: Decimal

    def to_dict(self) -> dict[str, object]:
        return {"date": self.day, "amount": self.amount}


@dataclass(frozen=True)
class MonthlyPoint:
    month: str
    month_name: str
    amount: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "month": self.month,
            "monthName": self.month_name,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class Pagination:
    total_items: int
    total_pages: int
    current_page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.page_size

    def to_dict(self) -> dict[str, int]:
        return {
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "currentPage": self.current_page,
            "pageSize": self.page_size,
        }


@dataclass(frozen=True)
class AnnotatedExpense:
    expense: Expense
    category_name: str
    category_color: str


class CategoryLookup:
    """Category rows indexed for the two lookup tiers.

    ``exact`` matches the id as stored; ``normalized`` compares lower-cased
    ids. The tiers are kept apart so listings can use exact matching alone.
    """

    def __init__(self, categories: Iterable[Category]) -> None:
        self._exact: dict[str, Category] = {}
        self._normalized: dict[str, Category] = {}
        for category in categories:
            self._exact[category.id] = category
            self._normalized.setdefault(category.id.lower(), category)

    def exact(self, category_id: str) -> Optional[Category]:
        return self._exact.get(category_id)

    def normalized(self, category_id: str) -> Optional[Category]:
        return self._normalized.get(category_id.lower())

    def resolve(self, category_id: str) -> Optional[Category]:
        return self.exact(category_id) or self.normalized(category_id)


def _expense_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def category_totals(
    expenses: Iterable[Expense], categories: Iterable[Category]
) -> list[CategoryTotal]:
    """One total per resolved category id, largest first.

    Ids that match no category, not even case-insensitively, each keep their
    own ``Unknown`` bucket. Ties keep the order ids were first seen in.
    """
    lookup = CategoryLookup(categories)
    sums: dict[str, Decimal] = {}
    matched: dict[str, Optional[Category]] = {}
    for expense in expenses:
        category = lookup.resolve(expense.category)
        key = category.id if category is not None else expense.category
        sums[key] = sums.get(key, ZERO) + expense.amount
        matched.setdefault(key, category)

    totals = [
        CategoryTotal(
            category_id=key,
            name=category.name if category else UNKNOWN_CATEGORY_NAME,
            color=category.color if category else UNKNOWN_CATEGORY_COLOR,
            amount=sums[key],
        )
        for key, category in matched.items()
    ]
    totals.sort(key=lambda total: total.amount, reverse=True)
    return totals


def daily_trend(
    expenses: Iterable[Expense], start: date, end: date
) -> list[DailyPoint]:
    """Dense per-day sums for ``start..end`` inclusive.

    Expenses dated outside the initialised days are dropped, not appended.
    A reversed range gives an empty series.
    """
    buckets: dict[str, Decimal] = {}
    for offset in range((end - start).days + 1):
        buckets[(start + timedelta(days=offset)).isoformat()] = ZERO

    for expense in expenses:
        key = _expense_day(expense.date).isoformat()
        if key in buckets:
            buckets[key] += expense.amount

    return [DailyPoint(day=key, amount=buckets[key]) for key in sorted(buckets)]


def daily_trend_for_period(
    expenses: Iterable[Expense], period: Period
) -> list[DailyPoint]:
    if period.start > period.end:
        return []
    return daily_trend(expenses, period.first_day, period.last_day)


def clamp_months(months: Optional[int]) -> int:
    if months is None:
        return DEFAULT_MONTHS
    return min(max(months, MIN_MONTHS), MAX_MONTHS)


def month_keys(months: int, now: datetime) -> list[date]:
    """First days of the ``months`` months ending at ``now``, newest first."""
    current = month_start(now.date())
    return [add_months(current, -offset) for offset in range(months)]


def month_window(months: int, now: datetime) -> Period:
    oldest = month_keys(months, now)[-1]
    return Period("months", start_of_day(oldest), now)


def monthly_comparison(
    expenses: Iterable[Expense], months: int, now: datetime
) -> list[MonthlyPoint]:
    """Dense per-month sums for the last ``months`` months, oldest first."""
    months = clamp_months(months)
    labels: dict[str, str] = {}
    buckets: dict[str, Decimal] = {}
    for first in month_keys(months, now):
        key = f"{first.year:04d}-{first.month:02d}"
        buckets[key] = ZERO
        labels[key] = first.strftime("%b %Y")

    for expense in expenses:
        day = _expense_day(expense.date)
        key = f"{day.year:04d}-{day.month:02d}"
        if key in buckets:
            buckets[key] += expense.amount

    return [
        MonthlyPoint(month=key, month_name=labels[key], amount=buckets[key])
        for key in sorted(buckets)
    ]


def paginate(total_items: int, page: int, page_size: int) -> Pagination:
    # the count comes from its own query; it may drift from the page fetch
    return Pagination(
        total_items=total_items,
        total_pages=math.ceil(total_items / page_size),
        current_page=page,
        page_size=page_size,
    )


def annotate_expenses(
    expenses: Sequence[Expense], categories: Iterable[Category]
) -> list[AnnotatedExpense]:
    """Attach category display fields using exact id matches only."""
    lookup = CategoryLookup(categories)
    annotated = []
    for expense in expenses:
        category = lookup.exact(expense.category)
        annotated.append(
            AnnotatedExpense(
                expense=expense,
                category_name=category.name if category else UNKNOWN_CATEGORY_NAME,
                category_color=category.color if category else UNKNOWN_CATEGORY_COLOR,
            )
        )
    return annotated
