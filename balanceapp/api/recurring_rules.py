from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.deps import get_current_user
from ..schemas import (
    FrequencyConvertIn,
    FrequencyConvertOut,
    RecurringRuleCreate,
    RecurringRuleOut,
    RecurringRuleUpdate,
    RulePreviewOut,
)
from ..services.recurring_rule_service import RecurringRuleService
from .. import models


router = APIRouter(prefix="/recurring-rules", tags=["recurring-rules"])


@router.post("", response_model=RecurringRuleOut, status_code=201)
def create_recurring_rule(
    payload: RecurringRuleCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    svc = RecurringRuleService(db)
    return svc.create(payload, user_id=current_user.id)


@router.get("", response_model=list[RecurringRuleOut])
def list_recurring_rules(
    is_installment: Optional[bool] = Query(None, description="Only installment plans (true) or only plain rules (false)"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return RecurringRuleService(db).list(current_user.id, is_installment=is_installment)


@router.post("/convert-frequency", response_model=FrequencyConvertOut)
def convert_frequency(payload: FrequencyConvertIn):
    spec = RecurringRuleService.convert_frequency(payload.frequency_days)
    return FrequencyConvertOut(frequency=spec.unit, frequency_interval=spec.interval)


@router.get("/{rule_id}", response_model=RecurringRuleOut)
def get_recurring_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return RecurringRuleService(db).get(rule_id, current_user.id)


@router.patch("/{rule_id}", response_model=RecurringRuleOut)
def update_recurring_rule(
    rule_id: int,
    payload: RecurringRuleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return RecurringRuleService(db).update(rule_id, payload, current_user.id)


@router.post("/{rule_id}/toggle", response_model=RecurringRuleOut)
def toggle_recurring_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return RecurringRuleService(db).toggle(rule_id, current_user.id)


@router.delete("/{rule_id}", status_code=204)
def delete_recurring_rule(
    rule_id: int,
    cascade: bool = Query(False, description="Also delete the transactions generated by this rule"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    RecurringRuleService(db).delete(rule_id, current_user.id, cascade=cascade)
    return Response(status_code=204)


@router.get("/{rule_id}/preview", response_model=RulePreviewOut)
def preview_recurring_rule(
    rule_id: int,
    count: int = Query(5, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    dates = RecurringRuleService(db).preview(rule_id, current_user.id, count=count)
    return RulePreviewOut(rule_id=rule_id, dates=dates)
