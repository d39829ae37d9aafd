from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import RecurringFrequency, TxnType


def _validate_amount(v: float | None) -> float | None:
    if v is None:
        return v
    if not math.isfinite(v):
        raise ValueError("amount must be finite")
    if v <= 0:
        raise ValueError("amount must be positive")
    return v


def _validate_currency(v: str | None) -> str | None:
    if v is None:
        return v
    if len(v) != 3:
        raise ValueError("currency must be 3-letter code")
    return v.upper()


class RecurringRuleCreate(BaseModel):
    account_id: int
    category_id: Optional[int] = None
    description: str = Field(min_length=1, max_length=255)
    amount: float
    currency: str = "EUR"
    type: TxnType
    notes: Optional[str] = None

    start_date: date
    frequency: Optional[RecurringFrequency] = None
    frequency_interval: int = Field(default=1, ge=1)
    # 예전 클라이언트 호환: "N일마다"
    frequency_days: Optional[int] = Field(default=None, gt=0)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)

    end_date: Optional[date] = None
    total_occurrences: Optional[int] = Field(default=None, ge=1)
    is_installment: bool = False

    @field_validator("amount")
    def amount_finite(cls, v: float | None):
        return _validate_amount(v)

    @field_validator("currency")
    def currency_len(cls, v: str | None):
        return _validate_currency(v)

    @field_validator("description")
    def description_not_blank(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("description must not be empty")
        return v

    @model_validator(mode="after")
    def check_schedule(self):
        if self.frequency is None and self.frequency_days is None:
            raise ValueError("frequency or frequency_days is required")
        if self.frequency is not None and self.frequency_days is not None:
            raise ValueError("Provide either frequency or frequency_days, not both")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.is_installment and self.total_occurrences is None:
            raise ValueError("Installment rules require total_occurrences")
        return self


class RecurringRuleUpdate(BaseModel):
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[float] = None
    currency: Optional[str] = None
    type: Optional[TxnType] = None
    notes: Optional[str] = None

    start_date: Optional[date] = None
    frequency: Optional[RecurringFrequency] = None
    frequency_interval: Optional[int] = Field(default=None, ge=1)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)

    end_date: Optional[date] = None
    total_occurrences: Optional[int] = Field(default=None, ge=1)
    is_installment: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("amount")
    def amount_finite(cls, v: float | None):
        return _validate_amount(v)

    @field_validator("currency")
    def currency_len(cls, v: str | None):
        return _validate_currency(v)


class RecurringRuleOut(BaseModel):
    id: int
    user_id: int
    account_id: int
    category_id: Optional[int]
    description: str
    amount: float
    currency: str
    type: TxnType
    notes: Optional[str]
    start_date: date
    frequency: RecurringFrequency
    frequency_interval: int
    day_of_week: Optional[int]
    day_of_month: Optional[int]
    end_date: Optional[date]
    total_occurrences: Optional[int]
    is_installment: bool
    next_due_date: date
    occurrences_generated: int
    is_first_occurrence_generated: bool
    last_processed_at: Optional[datetime]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RulePreviewOut(BaseModel):
    rule_id: int
    dates: list[date]


class FrequencyConvertIn(BaseModel):
    frequency_days: int = Field(gt=0)


class FrequencyConvertOut(BaseModel):
    frequency: RecurringFrequency
    frequency_interval: int


class NotificationTallyOut(BaseModel):
    sent: int = 0
    failed: int = 0

    model_config = ConfigDict(from_attributes=True)


class BatchRunOut(BaseModel):
    """Scheduled trigger response; keys are camelCase on the wire."""

    success: bool = True
    processed_rules: int
    created_transactions: int
    notifications: NotificationTallyOut
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class JobExecutionOut(BaseModel):
    id: str
    job_name: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: Any = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class JobStatsOut(BaseModel):
    total_executions: int
    successful_executions: int
    failed_executions: int
    average_duration_ms: float
    last_execution: Optional[JobExecutionOut] = None

    model_config = ConfigDict(from_attributes=True)


class JobStatusOut(BaseModel):
    running_jobs: list[JobExecutionOut]
    recent_executions: list[JobExecutionOut]
    stats: JobStatsOut


class ClearBadgeOut(BaseModel):
    success: bool
