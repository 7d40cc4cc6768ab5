from datetime import date, datetime
from decimal import Decimal

from aggregation import (
    UNKNOWN_CATEGORY_COLOR,
    UNKNOWN_CATEGORY_NAME,
    CategoryLookup,
    annotate_expenses,
    category_totals,
    clamp_months,
    daily_trend,
    daily_trend_for_period,
    month_window,
    monthly_comparison,
    paginate,
)
from models import Category, Expense
from periods import resolve_period


def _category(cid: str, name: str, color: str = "#112233") -> Category:
    return Category(id=cid, name=name, color=color, user_id=1)


def _expense(
    amount: str, category: str = "A", when: datetime = datetime(2025, 3, 2, 12)
) -> Expense:
    return Expense(
        title="x", amount=Decimal(amount), category=category, date=when, user_id=1
    )


def test_lookup_tries_exact_then_lowercased_id() -> None:
    food = _category("A", "Food")
    lookup = CategoryLookup([food])

    assert lookup.exact("A") is food
    assert lookup.exact("a") is None
    assert lookup.normalized("a") is food
    assert lookup.resolve("a") is food
    assert lookup.resolve("b") is None


def test_case_mismatched_id_merges_into_matching_category() -> None:
    totals = category_totals(
        [_expense("50", "A"), _expense("30", "a")], [_category("A", "Food")]
    )

    assert len(totals) == 1
    assert totals[0].category_id == "A"
    assert totals[0].name == "Food"
    assert totals[0].amount == Decimal("80")


def test_category_totals_preserve_grand_total() -> None:
    expenses = [
        _expense("12.50", "A"),
        _expense("7.25", "B"),
        _expense("3.10", "ghost"),
        _expense("0.15", "a"),
    ]
    categories = [_category("A", "Food"), _category("B", "Rent")]

    totals = category_totals(expenses, categories)

    assert sum(t.amount for t in totals) == sum(e.amount for e in expenses)


def test_unmatched_ids_stay_separate_unknown_buckets() -> None:
    totals = category_totals(
        [
            _expense("5", "orphan-1"),
            _expense("5", "orphan-2"),
            _expense("1", "orphan-1"),
        ],
        [_category("A", "Food")],
    )

    assert [t.category_id for t in totals] == ["orphan-1", "orphan-2"]
    assert all(t.name == UNKNOWN_CATEGORY_NAME for t in totals)
    assert all(t.color == UNKNOWN_CATEGORY_COLOR for t in totals)
    assert [t.amount for t in totals] == [Decimal("6"), Decimal("5")]


def test_category_totals_sorted_desc_with_stable_ties() -> None:
    categories = [_category("A", "Food"), _category("B", "Rent"), _category("C", "Fun")]
    totals = category_totals(
        [_expense("10", "B"), _expense("40", "C"), _expense("10", "A")], categories
    )

    assert [t.name for t in totals] == ["Fun", "Rent", "Food"]


def test_category_totals_of_nothing_is_empty() -> None:
    assert category_totals([], [_category("A", "Food")]) == []


def test_daily_trend_is_dense_and_ascending() -> None:
    points = daily_trend(
        [_expense("20", when=datetime(2025, 3, 2, 9, 30))],
        date(2025, 3, 1),
        date(2025, 3, 3),
    )

    assert [p.to_dict() for p in points] == [
        {"date": "2025-03-01", "amount": Decimal("0")},
        {"date": "2025-03-02", "amount": Decimal("20")},
        {"date": "2025-03-03", "amount": Decimal("0")},
    ]


def test_daily_trend_bounds_are_inclusive() -> None:
    expenses = [
        _expense("1", when=datetime(2025, 3, 1, 0, 0)),
        _expense("2", when=datetime(2025, 3, 10, 23, 59)),
        _expense("4", when=datetime(2025, 2, 28, 23, 59)),
        _expense("8", when=datetime(2025, 3, 11, 0, 0)),
    ]

    points = daily_trend(expenses, date(2025, 3, 1), date(2025, 3, 10))

    assert len(points) == 10
    assert points[0].amount == Decimal("1")
    assert points[-1].amount == Decimal("2")
    assert all(p.amount >= 0 for p in points)


def test_daily_trend_drops_expenses_outside_range() -> None:
    # current behaviour: no overflow into the boundary buckets
    points = daily_trend(
        [_expense("99", when=datetime(2025, 4, 1, 12))],
        date(2025, 3, 1),
        date(2025, 3, 2),
    )

    assert [p.amount for p in points] == [Decimal("0"), Decimal("0")]


def test_daily_trend_reversed_range_is_empty() -> None:
    assert daily_trend([_expense("5")], date(2025, 3, 5), date(2025, 3, 1)) == []


def test_daily_trend_reversed_times_on_same_day_is_empty() -> None:
    period = resolve_period(
        "custom",
        "2025-03-01T10:00:00",
        "2025-03-01T09:00:00",
        now=datetime(2025, 3, 15),
    )

    expenses = [_expense("5", when=datetime(2025, 3, 1, 9, 30))]

    assert daily_trend_for_period(expenses, period) == []


def test_daily_trend_for_period_keeps_same_day_range() -> None:
    period = resolve_period(
        "custom",
        "2025-03-01T09:00:00",
        "2025-03-01T10:00:00",
        now=datetime(2025, 3, 15),
    )

    expenses = [_expense("5", when=datetime(2025, 3, 1, 9, 30))]

    points = daily_trend_for_period(expenses, period)

    assert [(p.day, p.amount) for p in points] == [("2025-03-01", Decimal("5"))]


def test_daily_trend_reaches_last_representable_day() -> None:
    points = daily_trend([], date(9999, 12, 30), date(9999, 12, 31))

    assert [p.day for p in points] == ["9999-12-30", "9999-12-31"]


def test_daily_trend_spans_month_boundary() -> None:
    points = daily_trend([], date(2024, 2, 27), date(2024, 3, 2))

    assert [p.day for p in points] == [
        "2024-02-27",
        "2024-02-28",
        "2024-02-29",
        "2024-03-01",
        "2024-03-02",
    ]


def test_clamp_months() -> None:
    assert clamp_months(None) == 6
    assert clamp_months(0) == 1
    assert clamp_months(-4) == 1
    assert clamp_months(3) == 3
    assert clamp_months(40) == 12


def test_monthly_comparison_has_exactly_n_entries() -> None:
    now = datetime(2025, 3, 15, 10)
    for months in (1, 6, 12):
        assert len(monthly_comparison([], months, now)) == months
    assert len(monthly_comparison([], 99, now)) == 12
    assert len(monthly_comparison([], 0, now)) == 1


def test_monthly_comparison_walks_back_across_year() -> None:
    now = datetime(2025, 2, 10, 8)
    expenses = [
        _expense("10", when=datetime(2024, 12, 24, 18)),
        _expense("5", when=datetime(2025, 2, 1, 0)),
        _expense("7", when=datetime(2025, 2, 9, 12)),
    ]

    points = monthly_comparison(expenses, 3, now)

    assert [p.to_dict() for p in points] == [
        {"month": "2024-12", "monthName": "Dec 2024", "amount": Decimal("10")},
        {"month": "2025-01", "monthName": "Jan 2025", "amount": Decimal("0")},
        {"month": "2025-02", "monthName": "Feb 2025", "amount": Decimal("12")},
    ]


def test_monthly_comparison_drops_expenses_outside_window() -> None:
    now = datetime(2025, 3, 31, 22)
    points = monthly_comparison(
        [_expense("3", when=datetime(2024, 12, 31, 23, 59))], 3, now
    )

    assert [p.month for p in points] == ["2025-01", "2025-02", "2025-03"]
    assert all(p.amount == 0 for p in points)


def test_month_window_starts_on_first_of_oldest_month_and_ends_now() -> None:
    now = datetime(2025, 3, 31, 22, 5)
    window = month_window(6, now)

    assert window.start == datetime(2024, 10, 1)
    assert window.end == now


def test_paginate_rounds_total_pages_up() -> None:
    pagination = paginate(25, 4, 10)

    assert pagination.to_dict() == {
        "totalItems": 25,
        "totalPages": 3,
        "currentPage": 4,
        "pageSize": 10,
    }
    assert pagination.offset == 30
    assert paginate(0, 1, 10).total_pages == 0
    assert paginate(20, 1, 10).total_pages == 2


def test_annotation_matches_exact_ids_only() -> None:
    food = _category("A", "Food", "#00FF00")
    expenses = [_expense("1", "A"), _expense("1", "a")]

    annotated = annotate_expenses(expenses, [food])

    assert (annotated[0].category_name, annotated[0].category_color) == (
        "Food",
        "#00FF00",
    )
    assert (annotated[1].category_name, annotated[1].category_color) == (
        UNKNOWN_CATEGORY_NAME,
        UNKNOWN_CATEGORY_COLOR,
    )
