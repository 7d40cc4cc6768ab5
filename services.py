from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from passlib.hash import pbkdf2_sha256
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import (
    CategoryTotal,
    DailyPoint,
    MonthlyPoint,
    category_totals,
    clamp_months,
    daily_trend_for_period,
    month_window,
    monthly_comparison,
)
from models import Category, Expense, User
from periods import Period, current_month_period, local_now, to_local_naive
from schemas import CategoryIn, ExpenseIn, SignUpIn

logger = logging.getLogger(__name__)


class CategoryInUse(ValueError):
    pass


class DuplicateRecord(ValueError):
    pass


@dataclass
class ExpenseFilters:
    category: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def for_period(
        cls, period: Optional[Period], category: Optional[str] = None
    ) -> "ExpenseFilters":
        if period is None:
            return cls(category=category)
        return cls(category=category, start=period.start, end=period.end)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(User.email == _normalize_email(email))
        )

    def email_exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def create(self, data: SignUpIn) -> User:
        if self.email_exists(data.email):
            raise DuplicateRecord("User with this email already exists")
        user = User(
            name=data.name.strip(),
            email=_normalize_email(data.email),
            password_hash=pbkdf2_sha256.hash(data.password),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.get_by_email(email)
        if not user or not pbkdf2_sha256.verify(password, user.password_hash):
            return None
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def _ensure_unique_name(self, name: str, exclude_id: Optional[str] = None) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id, Category.name == name
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise DuplicateRecord("Category with this name already exists")

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateRecord("Category with this name already exists") from exc

    def create(self, data: CategoryIn) -> Category:
        self._ensure_unique_name(data.name)
        category = Category(
            user_id=self.user_id,
            name=data.name,
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        self._commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: str, data: CategoryIn) -> Category:
        category = self.get(category_id)
        self._ensure_unique_name(data.name, exclude_id=category.id)
        category.name = data.name
        category.color = data.color
        category.icon = data.icon
        self._commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: str) -> None:
        usage = ExpenseService(self.session, self.user_id).count(
            ExpenseFilters(category=category_id)
        )
        if usage > 0:
            raise CategoryInUse("Cannot delete category that is being used by expenses")
        category = self.get(category_id)
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id} user={self.user_id}")


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _filtered(self, stmt, filters: ExpenseFilters):
        stmt = stmt.where(Expense.user_id == self.user_id)
        if filters.category:
            stmt = stmt.where(Expense.category == filters.category)
        if filters.start is not None:
            stmt = stmt.where(Expense.date >= filters.start)
        if filters.end is not None:
            stmt = stmt.where(Expense.date <= filters.end)
        return stmt

    def find(
        self,
        filters: Optional[ExpenseFilters] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Expense]:
        filters = filters or ExpenseFilters()
        stmt = self._filtered(select(Expense), filters).order_by(
            Expense.date.desc(), Expense.created_at.desc()
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def count(self, filters: Optional[ExpenseFilters] = None) -> int:
        filters = filters or ExpenseFilters()
        stmt = self._filtered(select(func.count(Expense.id)), filters)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def get(self, expense_id: str) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise ValueError("Expense not found")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            user_id=self.user_id,
            title=data.title,
            amount=data.amount,
            date=to_local_naive(data.date),
            category=data.category,
            description=data.description,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: str, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        expense.title = data.title
        expense.amount = data.amount
        expense.date = to_local_naive(data.date)
        expense.category = data.category
        expense.description = data.description
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: str) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id} user={self.user_id}")


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.expenses = ExpenseService(session, user_id)
        self.categories = CategoryService(session, user_id)

    def category_totals(self, period: Optional[Period]) -> list[CategoryTotal]:
        expenses = self.expenses.find(ExpenseFilters.for_period(period))
        totals = category_totals(expenses, self.categories.list_all())
        logger.info(
            f"category_totals: user={self.user_id} expenses={len(expenses)} "
            f"buckets={len(totals)}"
        )
        return totals

    def daily_trend(
        self, period: Optional[Period], *, now: Optional[datetime] = None
    ) -> list[DailyPoint]:
        if period is None:
            period = current_month_period(now)
        expenses = self.expenses.find(ExpenseFilters.for_period(period))
        return daily_trend_for_period(expenses, period)

    def monthly_comparison(
        self, months: Optional[int] = None, *, now: Optional[datetime] = None
    ) -> list[MonthlyPoint]:
        now = now or local_now()
        count = clamp_months(months)
        window = month_window(count, now)
        expenses = self.expenses.find(ExpenseFilters.for_period(window))
        return monthly_comparison(expenses, count, now)
