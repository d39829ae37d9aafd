from __future__ import annotations

from datetime import date

import pytest

from balanceapp import models
from balanceapp.core.errors import BadRequestError, NotFoundError
from balanceapp.schemas import RecurringRuleCreate, RecurringRuleUpdate
from balanceapp.services.invalidation import InvalidationQueue
from balanceapp.services.recurring_rule_service import RecurringRuleService, RescheduleAnchor


TODAY = date(2025, 3, 15)


def _payload(account_id: int, **overrides) -> RecurringRuleCreate:
    data = dict(
        account_id=account_id,
        description="Palestra",
        amount=40,
        type="EXPENSE",
        start_date=date(2025, 3, 1),
        frequency="MONTHLY",
    )
    data.update(overrides)
    return RecurringRuleCreate(**data)


def _transactions(db, rule_id: int) -> list[models.Transaction]:
    return (
        db.query(models.Transaction)
        .filter(models.Transaction.recurring_rule_id == rule_id)
        .order_by(models.Transaction.occurred_at)
        .all()
    )


def _other_user_account(db) -> models.Account:
    other = models.User(email="other@example.com", is_active=True)
    db.add(other)
    db.flush()
    acc = models.Account(user_id=other.id, name="Other", currency="EUR", current_balance=0)
    db.add(acc)
    db.commit()
    return acc


class TestCreate:
    def test_past_start_materializes_first_occurrence(self, db_session, user, account):
        svc = RecurringRuleService(db_session)
        rule = svc.create(_payload(account.id), user_id=user.id, today=TODAY)

        assert rule.occurrences_generated == 1
        assert rule.is_first_occurrence_generated is True
        assert rule.next_due_date == date(2025, 3, 1)
        assert rule.day_of_month == 1

        txns = _transactions(db_session, rule.id)
        assert len(txns) == 1
        assert txns[0].occurred_at == date(2025, 3, 1)
        assert float(txns[0].amount) == -40
        assert txns[0].is_recurring_instance is True
        assert txns[0].external_id == f"rule-{rule.id}-2025-03-01"
        db_session.refresh(account)
        assert float(account.current_balance) == 960

    def test_future_start_creates_nothing_yet(self, db_session, user, account):
        rule = RecurringRuleService(db_session).create(
            _payload(account.id, start_date=date(2025, 4, 1)), user_id=user.id, today=TODAY
        )
        assert rule.occurrences_generated == 0
        assert rule.is_first_occurrence_generated is False
        assert _transactions(db_session, rule.id) == []

    def test_income_is_positive(self, db_session, user, account):
        rule = RecurringRuleService(db_session).create(
            _payload(account.id, type="INCOME", amount=2500, description="Stipendio"), user_id=user.id, today=TODAY
        )
        assert float(_transactions(db_session, rule.id)[0].amount) == 2500
        db_session.refresh(account)
        assert float(account.current_balance) == 3500

    def test_frequency_days_converted(self, db_session, user, account):
        rule = RecurringRuleService(db_session).create(
            _payload(account.id, frequency=None, frequency_days=14, start_date=date(2025, 5, 1)),
            user_id=user.id,
            today=TODAY,
        )
        assert rule.frequency == models.RecurringFrequency.WEEKLY
        assert rule.frequency_interval == 2
        assert rule.day_of_month is None

    def test_currency_defaults_to_account(self, db_session, user):
        usd = models.Account(user_id=user.id, name="USD", currency="USD", current_balance=0)
        db_session.add(usd)
        db_session.commit()
        rule = RecurringRuleService(db_session).create(_payload(usd.id), user_id=user.id, today=TODAY)
        assert rule.currency == "USD"

    def test_foreign_account_not_found(self, db_session, user):
        foreign = _other_user_account(db_session)
        with pytest.raises(NotFoundError, match="Account not found"):
            RecurringRuleService(db_session).create(_payload(foreign.id), user_id=user.id, today=TODAY)

    def test_unknown_category_not_found(self, db_session, user, account):
        with pytest.raises(NotFoundError, match="Category not found"):
            RecurringRuleService(db_session).create(
                _payload(account.id, category_id=9999), user_id=user.id, today=TODAY
            )
        assert db_session.query(models.RecurringRule).count() == 0

    def test_publishes_invalidation_after_commit(self, db_session, user, account, expense_category):
        events = []
        svc = RecurringRuleService(db_session, invalidation=InvalidationQueue(sink=events.append))
        rule = svc.create(_payload(account.id, category_id=expense_category.id), user_id=user.id, today=TODAY)

        kinds = [(e.entity, e.operation) for e in events]
        assert ("transaction", "create") in kinds
        assert ("recurring_rule", "create") in kinds
        txn_event = next(e for e in events if e.entity == "transaction")
        assert txn_event.params["category_group_id"] == expense_category.group_id
        assert txn_event.params["month"] == 3
        assert svc.invalidation.pending == []
        assert rule.id is not None


class TestUpdate:
    def test_recurrence_change_reschedules_from_current_due_date(self, db_session, user, make_rule):
        rule = make_rule(start_date=date(2025, 1, 1), next_due_date=date(2025, 3, 1), occurrences_generated=2)
        svc = RecurringRuleService(db_session, anchor=RescheduleAnchor.CURRENT_DUE_DATE)
        updated = svc.update(rule.id, RecurringRuleUpdate(frequency_interval=2), user_id=user.id)
        assert updated.next_due_date == date(2025, 5, 1)

    def test_start_date_anchor_policy(self, db_session, user, make_rule):
        rule = make_rule(start_date=date(2025, 1, 1), next_due_date=date(2025, 3, 1), occurrences_generated=2)
        svc = RecurringRuleService(db_session, anchor="START_DATE")
        updated = svc.update(rule.id, RecurringRuleUpdate(frequency_interval=2), user_id=user.id)
        assert updated.next_due_date == date(2025, 3, 1)

    def test_plain_field_change_keeps_schedule(self, db_session, user, make_rule):
        rule = make_rule(next_due_date=date(2025, 2, 1), occurrences_generated=1)
        updated = RecurringRuleService(db_session).update(
            rule.id, RecurringRuleUpdate(description="Spotify", amount=12), user_id=user.id
        )
        assert updated.description == "Spotify"
        assert float(updated.amount) == 12
        assert updated.next_due_date == date(2025, 2, 1)

    def test_switch_to_monthly_derives_day_of_month(self, db_session, user, make_rule):
        rule = make_rule(
            start_date=date(2025, 1, 20),
            frequency=models.RecurringFrequency.WEEKLY,
            day_of_month=None,
        )
        updated = RecurringRuleService(db_session).update(
            rule.id, RecurringRuleUpdate(frequency="MONTHLY"), user_id=user.id
        )
        assert updated.day_of_month == 20
        assert updated.next_due_date == date(2025, 2, 20)

    def test_start_date_editable_before_first_occurrence(self, db_session, user, make_rule):
        rule = make_rule(start_date=date(2025, 6, 1))
        updated = RecurringRuleService(db_session).update(
            rule.id, RecurringRuleUpdate(start_date=date(2025, 7, 1)), user_id=user.id
        )
        assert updated.start_date == date(2025, 7, 1)
        assert updated.next_due_date == date(2025, 7, 1)

    def test_start_date_locked_after_generation(self, db_session, user, make_rule):
        rule = make_rule(next_due_date=date(2025, 2, 1), occurrences_generated=1)
        with pytest.raises(BadRequestError):
            RecurringRuleService(db_session).update(
                rule.id, RecurringRuleUpdate(start_date=date(2025, 1, 5)), user_id=user.id
            )

    def test_null_required_field_rejected(self, db_session, user, make_rule):
        rule = make_rule()
        with pytest.raises(BadRequestError, match="amount"):
            RecurringRuleService(db_session).update(rule.id, RecurringRuleUpdate(amount=None), user_id=user.id)

    def test_foreign_account_rejected(self, db_session, user, make_rule):
        rule = make_rule()
        foreign = _other_user_account(db_session)
        with pytest.raises(NotFoundError, match="Account not found"):
            RecurringRuleService(db_session).update(
                rule.id, RecurringRuleUpdate(account_id=foreign.id), user_id=user.id
            )

    def test_installment_requires_total(self, db_session, user, make_rule):
        rule = make_rule()
        with pytest.raises(BadRequestError):
            RecurringRuleService(db_session).update(
                rule.id, RecurringRuleUpdate(is_installment=True), user_id=user.id
            )
        db_session.refresh(rule)
        assert rule.is_installment is False

    def test_total_below_generated_rejected(self, db_session, user, make_rule):
        rule = make_rule(is_installment=True, total_occurrences=5, occurrences_generated=3)
        with pytest.raises(BadRequestError):
            RecurringRuleService(db_session).update(
                rule.id, RecurringRuleUpdate(total_occurrences=2), user_id=user.id
            )
        db_session.refresh(rule)
        assert rule.total_occurrences == 5

        updated = RecurringRuleService(db_session).update(
            rule.id, RecurringRuleUpdate(total_occurrences=3), user_id=user.id
        )
        assert updated.total_occurrences == 3

    def test_other_users_rule_not_found(self, db_session, make_rule):
        rule = make_rule()
        with pytest.raises(NotFoundError):
            RecurringRuleService(db_session).update(rule.id, RecurringRuleUpdate(description="x"), user_id=999)


class TestToggleDelete:
    def test_toggle_flips_only_active_flag(self, db_session, user, make_rule):
        rule = make_rule(next_due_date=date(2025, 2, 1))
        svc = RecurringRuleService(db_session)
        assert svc.toggle(rule.id, user.id).is_active is False
        again = svc.toggle(rule.id, user.id)
        assert again.is_active is True
        assert again.next_due_date == date(2025, 2, 1)

    def test_delete_refused_without_cascade(self, db_session, user, account):
        svc = RecurringRuleService(db_session)
        rule = svc.create(_payload(account.id), user_id=user.id, today=TODAY)
        with pytest.raises(BadRequestError):
            svc.delete(rule.id, user.id)
        assert db_session.get(models.RecurringRule, rule.id) is not None

    def test_cascade_delete_reverts_balances(self, db_session, user, account):
        svc = RecurringRuleService(db_session)
        rule = svc.create(_payload(account.id), user_id=user.id, today=TODAY)
        rule_id = rule.id

        removed = svc.delete(rule_id, user.id, cascade=True)

        assert removed == 1
        assert db_session.get(models.RecurringRule, rule_id) is None
        assert _transactions(db_session, rule_id) == []
        db_session.refresh(account)
        assert float(account.current_balance) == 1000

    def test_delete_without_transactions(self, db_session, user, make_rule):
        rule = make_rule()
        assert RecurringRuleService(db_session).delete(rule.id, user.id) == 0


class TestQueries:
    def test_list_orders_by_due_date_and_filters(self, db_session, user, make_rule):
        late = make_rule(description="late", next_due_date=date(2025, 5, 1))
        early = make_rule(description="early", next_due_date=date(2025, 2, 1))
        plan = make_rule(description="plan", next_due_date=date(2025, 3, 1), is_installment=True, total_occurrences=6)
        svc = RecurringRuleService(db_session)

        assert [r.id for r in svc.list(user.id)] == [early.id, plan.id, late.id]
        assert [r.id for r in svc.list(user.id, is_installment=True)] == [plan.id]
        assert [r.id for r in svc.list(user.id, is_installment=False)] == [early.id, late.id]

    def test_preview_respects_installments_and_end_date(self, db_session, user, make_rule):
        plan = make_rule(
            start_date=date(2025, 1, 31),
            next_due_date=date(2025, 2, 28),
            day_of_month=31,
            is_installment=True,
            total_occurrences=3,
            occurrences_generated=1,
        )
        bounded = make_rule(start_date=date(2025, 1, 1), end_date=date(2025, 3, 10))
        svc = RecurringRuleService(db_session)

        assert svc.preview(plan.id, user.id, count=5) == [date(2025, 2, 28), date(2025, 3, 31)]
        assert svc.preview(bounded.id, user.id, count=5) == [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1)]

    def test_convert_frequency_rejects_zero(self):
        with pytest.raises(BadRequestError):
            RecurringRuleService.convert_frequency(0)
