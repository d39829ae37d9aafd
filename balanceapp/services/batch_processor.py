"""
정기 거래 배치 처리

예약 실행(cron)마다 한 번 호출되어, 기한이 된 규칙마다 원장 거래를 한 건씩 생성하고
다음 발생일로 이동시킵니다.

- 규칙 단위로 커밋하며, 한 규칙의 실패는 해당 규칙만 롤백하고 다음 규칙으로 진행
- 규칙별 임대(lease)를 조건부 UPDATE 로 획득하여 겹치는 실행이 같은 규칙을 처리하지 않음
- 알림은 모든 규칙 처리 후 사용자별로 묶어서 발송
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from .invalidation import InvalidationQueue
from .ledger_service import LedgerService, TransactionDraft
from .notification_service import NotificationTally, PushNotificationService
from .recurrence_calendar import next_occurrence

logger = logging.getLogger(__name__)


class RuleOutcome(str, Enum):
    SKIPPED = "SKIPPED"  # lease held by another run
    DEACTIVATED = "DEACTIVATED"
    ADVANCED = "ADVANCED"  # occurrence already in the ledger, date moved only
    GENERATED = "GENERATED"


@dataclass
class BatchRunReport:
    processed_rules: int = 0
    created_transactions: int = 0
    deactivated_rules: int = 0
    notifications: NotificationTally = field(default_factory=NotificationTally)
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def should_deactivate(rule: models.RecurringRule, today: date) -> bool:
    if rule.end_date is not None and today > rule.end_date:
        return True
    if rule.is_installment and rule.total_occurrences is not None:
        return rule.occurrences_generated >= rule.total_occurrences
    return False


def _advance(rule: models.RecurringRule) -> date:
    return next_occurrence(
        rule.next_due_date,
        rule.frequency,
        rule.frequency_interval,
        day_of_month=rule.day_of_month,
        day_of_week=rule.day_of_week,
    )


class RecurringBatchProcessor:
    """Single sequential pass over due recurring rules."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[PushNotificationService] = None,
        invalidation: InvalidationQueue | None = None,
        lease_ttl_seconds: int | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier or PushNotificationService()
        self.invalidation = invalidation or InvalidationQueue()
        self.ledger = LedgerService(db, self.invalidation)
        self.lease_ttl = timedelta(seconds=lease_ttl_seconds or settings.RECURRING_LEASE_TTL_SECONDS)

    def run(self, now: datetime | None = None) -> BatchRunReport:
        now = now or models.now_local_naive()
        today = now.date()
        lease_key = uuid.uuid4().hex
        report = BatchRunReport()
        pending: dict[int, int] = defaultdict(int)

        logger.info("Starting recurring transaction processing (today=%s)", today)
        try:
            rule_ids = self.due_rule_ids(today)
            logger.info("Found %d due recurring transaction rules", len(rule_ids))

            for rule_id in rule_ids:
                try:
                    outcome, user_id = self._process_rule(rule_id, now, lease_key)
                except Exception as exc:
                    self.db.rollback()
                    self.invalidation.discard()
                    self._release_lease(rule_id, lease_key)
                    logger.exception("Error processing rule %s", rule_id)
                    report.errors.append(f"Failed to process rule {rule_id}: {exc}")
                    continue

                self.invalidation.flush()
                if outcome == RuleOutcome.SKIPPED:
                    continue
                report.processed_rules += 1
                if outcome == RuleOutcome.DEACTIVATED:
                    report.deactivated_rules += 1
                elif outcome == RuleOutcome.GENERATED:
                    report.created_transactions += 1
                    if user_id is not None:
                        pending[user_id] += 1
        except Exception as exc:
            self.db.rollback()
            self.invalidation.discard()
            logger.exception("Fatal error in recurring transaction processing")
            report.notifications = NotificationTally()
            report.errors = [f"Fatal error in recurring transaction processor: {exc}"]
            return report

        if pending:
            report.notifications = self._notify(dict(pending))

        logger.info(
            "Recurring transaction processing completed: processed=%d created=%d deactivated=%d errors=%d",
            report.processed_rules,
            report.created_transactions,
            report.deactivated_rules,
            len(report.errors),
        )
        return report

    def due_rule_ids(self, today: date) -> list[int]:
        rows = (
            self.db.query(models.RecurringRule.id)
            .join(models.User, models.User.id == models.RecurringRule.user_id)
            .filter(
                models.RecurringRule.is_active.is_(True),
                models.RecurringRule.next_due_date <= today,
                models.User.is_deleted.is_(False),
            )
            .order_by(models.RecurringRule.next_due_date, models.RecurringRule.id)
            .all()
        )
        return [row[0] for row in rows]

    def _process_rule(self, rule_id: int, now: datetime, lease_key: str) -> tuple[RuleOutcome, int | None]:
        today = now.date()
        if not self._claim(rule_id, now, lease_key):
            logger.info("Rule %s is leased by another run, skipping", rule_id)
            return RuleOutcome.SKIPPED, None

        rule = self.db.get(models.RecurringRule, rule_id, populate_existing=True)

        if should_deactivate(rule, today):
            rule.is_active = False
            self._finish(rule, "deactivate")
            logger.info("Deactivated recurring rule %s", rule_id)
            return RuleOutcome.DEACTIVATED, None

        first_already_generated = (
            rule.occurrences_generated == 1
            and rule.is_first_occurrence_generated
            and rule.next_due_date == rule.start_date
        )
        if first_already_generated or self.ledger.has_tagged_occurrence(rule, rule.next_due_date):
            rule.next_due_date = _advance(rule)
            self._finish(rule, "update")
            logger.info("Rule %s occurrence already in ledger, advanced to %s", rule_id, rule.next_due_date)
            return RuleOutcome.ADVANCED, None

        self.ledger.create_transaction(TransactionDraft.for_rule(rule, rule.next_due_date))
        rule.next_due_date = _advance(rule)
        rule.occurrences_generated += 1
        rule.last_processed_at = now
        if rule.is_installment and should_deactivate(rule, today):
            # 마지막 할부 회차는 생성과 같은 커밋에서 종료, 남은 규칙은 다음 실행의 should_deactivate 가 처리
            rule.is_active = False
        user_id = rule.user_id
        notify = self._wants_push(user_id)
        self._finish(rule, "update")
        return RuleOutcome.GENERATED, (user_id if notify else None)

    def _claim(self, rule_id: int, now: datetime, lease_key: str) -> bool:
        stmt = (
            update(models.RecurringRule)
            .where(
                models.RecurringRule.id == rule_id,
                models.RecurringRule.is_active.is_(True),
                models.RecurringRule.next_due_date <= now.date(),
                or_(
                    models.RecurringRule.processing_key.is_(None),
                    models.RecurringRule.processing_expires_at < now,
                ),
            )
            .values(processing_key=lease_key, processing_expires_at=now + self.lease_ttl)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1

    def _release_lease(self, rule_id: int, lease_key: str) -> None:
        try:
            self.db.execute(
                update(models.RecurringRule)
                .where(models.RecurringRule.id == rule_id, models.RecurringRule.processing_key == lease_key)
                .values(processing_key=None, processing_expires_at=None)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Could not release lease on rule %s; it expires after %s", rule_id, self.lease_ttl)

    def _finish(self, rule: models.RecurringRule, operation: str) -> None:
        rule.processing_key = None
        rule.processing_expires_at = None
        self.ledger.touch_rule(rule, operation)
        self.db.commit()

    def _notify(self, pending: dict[int, int]) -> NotificationTally:
        # 알림 오류는 실행 전체를 실패시키지 않음
        try:
            return self.notifier.dispatch(self.db, pending)
        except Exception:
            self.db.rollback()
            logger.exception("Notification dispatch failed for %d users", len(pending))
            return NotificationTally(failed=len(pending))

    def _wants_push(self, user_id: int) -> bool:
        profile = (
            self.db.query(models.UserProfile)
            .filter(models.UserProfile.user_id == user_id)
            .first()
        )
        return profile is not None and profile.can_receive_push
