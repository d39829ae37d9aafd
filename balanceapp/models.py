from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
    Boolean,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Europe/Rome"))
except Exception:
    LOCAL_ZONE = ZoneInfo("Europe/Rome")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)

    profile: Mapped["UserProfile"] = relationship(back_populates="user", uselist=False)


class UserProfile(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100))
    base_currency: Mapped[str | None] = mapped_column(String(3))
    locale: Mapped[str | None] = mapped_column(String(32))  # push notification language (en, it, ...)
    timezone: Mapped[str | None] = mapped_column(String(64))
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notification_token: Mapped[str | None] = mapped_column(String(255))

    user: Mapped[User] = relationship(back_populates="profile")

    @property
    def can_receive_push(self) -> bool:
        return bool(self.notifications_enabled and self.notification_token)


class Account(Base, TimestampMixin):
    """Money account owned by a single user."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_balance: Mapped[float] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_account_name"),
    )


class TxnType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class CategoryGroup(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Global macro categories (shared across application)
    type: Mapped[str] = mapped_column(String(1), nullable=False)  # I/E
    code_gg: Mapped[int] = mapped_column(Integer, nullable=False)  # 0~99
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("type", "code_gg", name="uq_group_code"),
    )


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("categorygroup.id"), nullable=False)
    code_cc: Mapped[int] = mapped_column(Integer, nullable=False)  # 0~99
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    full_code: Mapped[str] = mapped_column(String(5), nullable=False)  # e.g., E0102

    group: Mapped[CategoryGroup] = relationship("CategoryGroup")

    __table_args__ = (
        UniqueConstraint("group_id", "code_cc", name="uq_category_cc"),
        UniqueConstraint("full_code", name="uq_category_full_code"),
    )


class Transaction(Base, TimestampMixin):
    """Immutable ledger entry. Recurring instances are tagged with their rule."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="txn_type"), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)  # signed
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    external_id: Mapped[str | None] = mapped_column(String(64))
    is_recurring_instance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_rule_id: Mapped[int | None] = mapped_column(ForeignKey("recurringrule.id"))

    account: Mapped[Account] = relationship("Account")
    category: Mapped[Category | None] = relationship("Category")

    __table_args__ = (
        Index("ix_txn_user_date", "user_id", "occurred_at"),
        Index("ix_txn_recurring_rule", "recurring_rule_id"),
        UniqueConstraint("user_id", "external_id", name="uq_txn_external_id"),
        CheckConstraint(
            "recurring_rule_id IS NULL OR is_recurring_instance = 1",
            name="ck_txn_recurring_tag",
        ),
    )


class RecurringFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class RecurringRule(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)  # unsigned magnitude
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency: Mapped[RecurringFrequency] = mapped_column(SAEnum(RecurringFrequency), nullable=False)
    frequency_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    day_of_week: Mapped[int | None] = mapped_column(Integer)  # 0=Sun .. 6=Sat
    day_of_month: Mapped[int | None] = mapped_column(Integer)  # 1..31, clamped per month

    end_date: Mapped[date | None] = mapped_column(Date)
    total_occurrences: Mapped[int | None] = mapped_column(Integer)
    is_installment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    next_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    occurrences_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_first_occurrence_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_processed_at: Mapped[datetime | None] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Batch lease: set while a run is advancing this rule
    processing_key: Mapped[str | None] = mapped_column(String(64))
    processing_expires_at: Mapped[datetime | None] = mapped_column(DateTime)

    user: Mapped[User] = relationship("User")
    account: Mapped[Account] = relationship("Account")
    category: Mapped[Category | None] = relationship("Category")

    __table_args__ = (
        Index("ix_recurring_due", "is_active", "next_due_date"),
        CheckConstraint("frequency_interval >= 1", name="ck_recurring_interval_positive"),
        CheckConstraint("occurrences_generated >= 0", name="ck_recurring_occurrences_nonneg"),
        CheckConstraint("next_due_date >= start_date", name="ck_recurring_due_after_start"),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_recurring_day_of_week",
        ),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)",
            name="ck_recurring_day_of_month",
        ),
    )

    @property
    def signed_amount(self) -> float:
        magnitude = abs(float(self.amount))
        if self.type == TxnType.EXPENSE:
            return -magnitude
        return magnitude

    def occurrence_tag(self, occurred_at: date) -> str:
        return f"rule-{self.id}-{occurred_at.isoformat()}"
