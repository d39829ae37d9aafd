from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..core.errors import NotFoundError
from .invalidation import InvalidationQueue


@dataclass
class TransactionDraft:
    user_id: int
    account_id: int
    occurred_at: date
    type: models.TxnType
    amount: float  # signed
    currency: str
    description: str
    category_id: Optional[int] = None
    notes: Optional[str] = None
    external_id: Optional[str] = None
    recurring_rule_id: Optional[int] = None

    @classmethod
    def for_rule(cls, rule: models.RecurringRule, occurred_at: date) -> "TransactionDraft":
        """Ledger entry for one occurrence of ``rule``, tagged for idempotency."""
        return cls(
            user_id=rule.user_id,
            account_id=rule.account_id,
            occurred_at=occurred_at,
            type=rule.type,
            amount=rule.signed_amount,
            currency=rule.currency,
            description=rule.description,
            category_id=rule.category_id,
            notes=rule.notes,
            external_id=rule.occurrence_tag(occurred_at),
            recurring_rule_id=rule.id,
        )


class LedgerService:
    """Write side of the ledger: transactions, account balances and read-model invalidation."""

    def __init__(self, db: Session, invalidation: InvalidationQueue | None = None) -> None:
        self.db = db
        self.invalidation = invalidation or InvalidationQueue()

    def create_transaction(self, draft: TransactionDraft) -> models.Transaction:
        account = self._get_account(draft.account_id)
        txn = models.Transaction(
            user_id=draft.user_id,
            account_id=draft.account_id,
            category_id=draft.category_id,
            occurred_at=draft.occurred_at,
            type=draft.type,
            amount=draft.amount,
            currency=draft.currency,
            description=draft.description,
            notes=draft.notes,
            external_id=draft.external_id,
            is_recurring_instance=draft.recurring_rule_id is not None,
            recurring_rule_id=draft.recurring_rule_id,
        )
        self.db.add(txn)
        self.db.flush()
        self._apply_delta(account, float(draft.amount))
        self._publish_transaction(txn, "create")
        return txn

    def delete_rule_transactions(self, rule: models.RecurringRule) -> int:
        """Delete every transaction tagged with ``rule`` and undo its balance effect."""
        rows = (
            self.db.query(models.Transaction)
            .filter(models.Transaction.recurring_rule_id == rule.id)
            .all()
        )
        for txn in rows:
            account = self.db.get(models.Account, txn.account_id)
            if account is not None:
                self._apply_delta(account, -float(txn.amount))
            self._publish_transaction(txn, "delete")
            self.db.delete(txn)
        self.db.flush()
        return len(rows)

    def count_rule_transactions(self, rule_id: int) -> int:
        return (
            self.db.query(func.count(models.Transaction.id))
            .filter(models.Transaction.recurring_rule_id == rule_id)
            .scalar()
            or 0
        )

    def has_tagged_occurrence(self, rule: models.RecurringRule, day: date) -> bool:
        exists = (
            self.db.query(models.Transaction.id)
            .filter(
                models.Transaction.user_id == rule.user_id,
                models.Transaction.external_id == rule.occurrence_tag(day),
            )
            .first()
        )
        return exists is not None

    def touch_rule(self, rule: models.RecurringRule, operation: str) -> None:
        self.invalidation.publish(
            "recurring_rule",
            operation,
            user_id=rule.user_id,
            rule_id=rule.id,
            is_installment=bool(rule.is_installment),
        )

    def _get_account(self, account_id: int) -> models.Account:
        account = self.db.get(models.Account, account_id)
        if account is None:
            raise NotFoundError("Account not found")
        return account

    @staticmethod
    def _apply_delta(account: models.Account, delta: float) -> None:
        if delta == 0:
            return
        current = float(account.current_balance or 0)
        account.current_balance = current + delta

    def _publish_transaction(self, txn: models.Transaction, operation: str) -> None:
        group_id = None
        if txn.category_id is not None:
            category = self.db.get(models.Category, txn.category_id)
            group_id = category.group_id if category else None
        self.invalidation.publish(
            "transaction",
            operation,
            user_id=txn.user_id,
            account_id=txn.account_id,
            category_id=txn.category_id,
            category_group_id=group_id,
            occurred_at=txn.occurred_at.isoformat(),
            month=txn.occurred_at.month,
            year=txn.occurred_at.year,
            amount=float(txn.amount),
        )
