from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..core.errors import BadRequestError, NotFoundError
from ..schemas import RecurringRuleCreate, RecurringRuleUpdate
from .frequency_normalizer import FrequencySpec, from_days
from .invalidation import InvalidationQueue
from .ledger_service import LedgerService, TransactionDraft
from .recurrence_calendar import iter_occurrences, next_occurrence

logger = logging.getLogger(__name__)


class RescheduleAnchor(str, Enum):
    """Which date a changed schedule is recomputed from."""

    CURRENT_DUE_DATE = "CURRENT_DUE_DATE"
    START_DATE = "START_DATE"


RECURRENCE_FIELDS = ("frequency", "frequency_interval", "day_of_week", "day_of_month")
NON_NULLABLE_FIELDS = (
    "account_id",
    "description",
    "amount",
    "currency",
    "type",
    "start_date",
    "frequency",
    "frequency_interval",
    "is_installment",
    "is_active",
)


class RecurringRuleService:
    """Create, edit, pause and delete recurring rules owned by a user."""

    def __init__(
        self,
        db: Session,
        invalidation: InvalidationQueue | None = None,
        anchor: RescheduleAnchor | str | None = None,
    ) -> None:
        self.db = db
        self.invalidation = invalidation or InvalidationQueue()
        self.ledger = LedgerService(db, self.invalidation)
        self.anchor = RescheduleAnchor(anchor or settings.RECURRING_RESCHEDULE_ANCHOR)

    # ----- queries -----

    def get(self, rule_id: int, user_id: int) -> models.RecurringRule:
        rule = (
            self.db.query(models.RecurringRule)
            .filter(models.RecurringRule.id == rule_id, models.RecurringRule.user_id == user_id)
            .first()
        )
        if rule is None:
            raise NotFoundError("Recurring rule not found")
        return rule

    def list(self, user_id: int, is_installment: Optional[bool] = None) -> list[models.RecurringRule]:
        q = self.db.query(models.RecurringRule).filter(models.RecurringRule.user_id == user_id)
        if is_installment is not None:
            q = q.filter(models.RecurringRule.is_installment == is_installment)
        return q.order_by(models.RecurringRule.next_due_date, models.RecurringRule.id).all()

    def preview(self, rule_id: int, user_id: int, count: int = 5) -> list[date]:
        """Upcoming due dates starting at ``next_due_date``, bounded by the rule's termination."""
        rule = self.get(rule_id, user_id)
        limit = count
        if rule.is_installment and rule.total_occurrences is not None:
            limit = min(limit, max(rule.total_occurrences - rule.occurrences_generated, 0))
        dates = iter_occurrences(
            rule.next_due_date,
            rule.frequency,
            rule.frequency_interval,
            rule.day_of_month,
            rule.day_of_week,
            limit=limit,
        )
        return [d for d in dates if rule.end_date is None or d <= rule.end_date]

    @staticmethod
    def convert_frequency(days: int) -> FrequencySpec:
        try:
            return from_days(days)
        except ValueError as exc:
            raise BadRequestError(str(exc)) from exc

    # ----- mutations -----

    def create(self, payload: RecurringRuleCreate, user_id: int, today: date | None = None) -> models.RecurringRule:
        self._get_owned_account(payload.account_id, user_id)
        if payload.category_id is not None:
            self._ensure_category(payload.category_id)

        if payload.frequency_days is not None:
            frequency, interval = self.convert_frequency(payload.frequency_days)
        else:
            frequency, interval = payload.frequency, payload.frequency_interval

        day_of_month = payload.day_of_month
        if frequency == models.RecurringFrequency.MONTHLY and day_of_month is None:
            day_of_month = payload.start_date.day

        currency = payload.currency
        if "currency" not in payload.model_fields_set:
            # 통화 미지정 시 계좌 통화 사용
            currency = self.db.get(models.Account, payload.account_id).currency

        rule = models.RecurringRule(
            user_id=user_id,
            account_id=payload.account_id,
            category_id=payload.category_id,
            description=payload.description,
            amount=payload.amount,
            currency=currency,
            type=payload.type,
            notes=payload.notes,
            start_date=payload.start_date,
            frequency=frequency,
            frequency_interval=interval,
            day_of_week=payload.day_of_week,
            day_of_month=day_of_month,
            end_date=payload.end_date,
            total_occurrences=payload.total_occurrences,
            is_installment=payload.is_installment,
            next_due_date=payload.start_date,
            occurrences_generated=0,
            is_first_occurrence_generated=False,
            is_active=True,
        )
        today = today or models.today_local()
        try:
            self.db.add(rule)
            self.db.flush()
            if rule.start_date <= today:
                # 시작일이 이미 지났으면 첫 거래를 즉시 생성 (다음 배치에서 중복 생성하지 않도록 표시)
                self.ledger.create_transaction(TransactionDraft.for_rule(rule, rule.start_date))
                rule.occurrences_generated = 1
                rule.is_first_occurrence_generated = True
            self.ledger.touch_rule(rule, "create")
        except Exception:
            self.db.rollback()
            self.invalidation.discard()
            raise
        self._commit()
        self.db.refresh(rule)
        logger.info("Created recurring rule %s for user %s", rule.id, user_id)
        return rule

    def update(self, rule_id: int, payload: RecurringRuleUpdate, user_id: int) -> models.RecurringRule:
        rule = self.get(rule_id, user_id)
        changes = payload.model_dump(exclude_unset=True)

        for field in NON_NULLABLE_FIELDS:
            if field in changes and changes[field] is None:
                raise BadRequestError(f"{field} cannot be null")

        if "account_id" in changes and changes["account_id"] != rule.account_id:
            self._get_owned_account(changes["account_id"], user_id)
        if changes.get("category_id") is not None and changes["category_id"] != rule.category_id:
            self._ensure_category(changes["category_id"])

        start_changed = "start_date" in changes and changes["start_date"] != rule.start_date
        if start_changed and rule.occurrences_generated > 0:
            raise BadRequestError("start_date cannot be changed after occurrences were generated")

        recurrence_changed = any(
            field in changes and changes[field] != getattr(rule, field) for field in RECURRENCE_FIELDS
        )

        # 적용 전 최종 상태 기준으로 검증
        merged = {
            field: changes.get(field, getattr(rule, field))
            for field in ("start_date", "end_date", "is_installment", "total_occurrences")
        }
        if merged["end_date"] is not None and merged["end_date"] < merged["start_date"]:
            raise BadRequestError("end_date must be on or after start_date")
        if merged["is_installment"] and merged["total_occurrences"] is None:
            raise BadRequestError("Installment rules require total_occurrences")
        if merged["is_installment"] and merged["total_occurrences"] < rule.occurrences_generated:
            raise BadRequestError("total_occurrences cannot be lower than occurrences already generated")

        for field, value in changes.items():
            setattr(rule, field, value)

        if rule.frequency == models.RecurringFrequency.MONTHLY and rule.day_of_month is None:
            rule.day_of_month = rule.start_date.day

        if start_changed:
            rule.next_due_date = rule.start_date
        elif recurrence_changed:
            rule.next_due_date = self._reschedule(rule)

        self.ledger.touch_rule(rule, "update")
        self._commit()
        self.db.refresh(rule)
        return rule

    def toggle(self, rule_id: int, user_id: int) -> models.RecurringRule:
        rule = self.get(rule_id, user_id)
        rule.is_active = not rule.is_active
        self.ledger.touch_rule(rule, "toggle")
        self._commit()
        self.db.refresh(rule)
        return rule

    def delete(self, rule_id: int, user_id: int, cascade: bool = False) -> int:
        """Delete a rule; returns the number of ledger transactions removed with it."""
        rule = self.get(rule_id, user_id)
        count = self.ledger.count_rule_transactions(rule.id)
        if count and not cascade:
            raise BadRequestError(
                f"Recurring rule has {count} generated transactions; delete with cascade to remove them"
            )

        removed = self.ledger.delete_rule_transactions(rule) if count else 0
        self.ledger.touch_rule(rule, "delete")
        self.db.delete(rule)
        self._commit()
        logger.info("Deleted recurring rule %s (%d transactions)", rule_id, removed)
        return removed

    # ----- helpers -----

    def _reschedule(self, rule: models.RecurringRule) -> date:
        anchor = rule.start_date if self.anchor == RescheduleAnchor.START_DATE else rule.next_due_date
        return next_occurrence(
            anchor,
            rule.frequency,
            rule.frequency_interval,
            day_of_month=rule.day_of_month,
            day_of_week=rule.day_of_week,
        )

    def _get_owned_account(self, account_id: int, user_id: int) -> models.Account:
        account = (
            self.db.query(models.Account)
            .filter(models.Account.id == account_id, models.Account.user_id == user_id)
            .first()
        )
        if account is None:
            raise NotFoundError("Account not found")
        return account

    def _ensure_category(self, category_id: int) -> None:
        if self.db.get(models.Category, category_id) is None:
            raise NotFoundError("Category not found")

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.invalidation.discard()
            raise
        self.invalidation.flush()
