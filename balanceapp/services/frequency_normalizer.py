"""
반복 주기 정규화

예전 클라이언트가 보내던 "N일마다" 값을 (반복 단위, 간격) 으로 변환합니다.
"""

from __future__ import annotations

from typing import NamedTuple

from ..models import RecurringFrequency


class FrequencySpec(NamedTuple):
    unit: RecurringFrequency
    interval: int


# 자주 쓰이는 값은 순서대로 먼저 확인
_KNOWN_DAY_COUNTS: tuple[tuple[tuple[int, ...], FrequencySpec], ...] = (
    ((1,), FrequencySpec(RecurringFrequency.DAILY, 1)),
    ((7,), FrequencySpec(RecurringFrequency.WEEKLY, 1)),
    ((14,), FrequencySpec(RecurringFrequency.WEEKLY, 2)),
    ((30, 31), FrequencySpec(RecurringFrequency.MONTHLY, 1)),
    ((60, 61), FrequencySpec(RecurringFrequency.MONTHLY, 2)),
    ((90, 91), FrequencySpec(RecurringFrequency.MONTHLY, 3)),
    ((180, 183), FrequencySpec(RecurringFrequency.MONTHLY, 6)),
    ((365, 366), FrequencySpec(RecurringFrequency.YEARLY, 1)),
)


def from_days(days: int) -> FrequencySpec:
    """
    일수 → 반복 주기 변환

    정확히 나누어 떨어지지 않는 값은 DAILY 로 남습니다 (45 → DAILY/45).

    Raises:
        ValueError: days 가 0 이하인 경우

    Example:
        >>> from_days(14)
        FrequencySpec(unit=<RecurringFrequency.WEEKLY: 'WEEKLY'>, interval=2)
        >>> from_days(730)
        FrequencySpec(unit=<RecurringFrequency.YEARLY: 'YEARLY'>, interval=2)
    """
    if days <= 0:
        raise ValueError(f"frequency days must be positive, got {days}")

    for counts, spec in _KNOWN_DAY_COUNTS:
        if days in counts:
            return spec

    if days % 365 == 0:
        return FrequencySpec(RecurringFrequency.YEARLY, days // 365)
    if days % 30 == 0:
        return FrequencySpec(RecurringFrequency.MONTHLY, days // 30)
    if days % 7 == 0:
        return FrequencySpec(RecurringFrequency.WEEKLY, days // 7)
    return FrequencySpec(RecurringFrequency.DAILY, days)
