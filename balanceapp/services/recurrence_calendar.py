"""
반복 일정 계산

정기 거래 규칙의 다음 발생일을 계산하는 순수 함수 모음입니다.
DB/네트워크 접근 없이 날짜만 다룹니다.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator

from ..models import RecurringFrequency


def _python_weekday(day_of_week: int) -> int:
    """0=일요일 기준 요일을 ``date.weekday()`` 기준(0=월요일)으로 변환"""
    if not 0 <= day_of_week <= 6:
        raise ValueError(f"day_of_week must be between 0 and 6, got {day_of_week}")
    return (day_of_week - 1) % 7


def _clamped(year: int, month: int, day: int) -> date:
    days_in_month = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, days_in_month))


def add_months(base: date, months: int, day: int | None = None) -> date:
    """
    월 단위 이동

    대상 월의 일수를 넘는 일자는 말일로 보정합니다 (1/31 + 1개월 → 2/28 또는 2/29).

    Args:
        base: 기준일
        months: 이동할 개월 수
        day: 고정 일자 (없으면 기준일의 일자 유지)
    """
    total = base.month - 1 + months
    year = base.year + total // 12
    month = total % 12 + 1
    return _clamped(year, month, day if day else base.day)


def next_occurrence(
    anchor: date,
    unit: RecurringFrequency | str,
    interval: int = 1,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> date:
    """
    다음 발생일 계산

    - DAILY: anchor + interval 일
    - WEEKLY: day_of_week 가 있으면 다음 해당 요일(같은 날이면 한 주 뒤)로 이동 후
      (interval - 1) 주 추가, 없으면 interval 주 추가
    - MONTHLY: interval 개월 이동, 일자는 day_of_month(없으면 anchor 일자)를 말일로 보정
    - YEARLY: interval 년 이동 (2/29 → 평년 2/28)

    Args:
        anchor: 기준일 (현재 발생일)
        unit: 반복 단위
        interval: 반복 간격 (1 이상)
        day_of_month: 월 고정 일자 1~31
        day_of_week: 요일 0=일요일 ~ 6=토요일

    Raises:
        ValueError: 알 수 없는 반복 단위 또는 잘못된 간격

    Example:
        >>> next_occurrence(date(2025, 1, 31), "MONTHLY", 1, day_of_month=31)
        datetime.date(2025, 2, 28)
    """
    freq = RecurringFrequency(unit)
    if interval < 1:
        raise ValueError(f"interval must be >= 1, got {interval}")

    if freq == RecurringFrequency.DAILY:
        return anchor + timedelta(days=interval)

    if freq == RecurringFrequency.WEEKLY:
        if day_of_week is None:
            return anchor + timedelta(weeks=interval)
        delta = (_python_weekday(day_of_week) - anchor.weekday()) % 7
        if delta == 0:
            delta = 7
        return anchor + timedelta(days=delta + (interval - 1) * 7)

    if freq == RecurringFrequency.MONTHLY:
        return add_months(anchor, interval, day_of_month)

    # YEARLY
    return _clamped(anchor.year + interval, anchor.month, anchor.day)


def iter_occurrences(
    start: date,
    unit: RecurringFrequency | str,
    interval: int = 1,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
    *,
    limit: int,
) -> Iterator[date]:
    """start 자체를 첫 발생일로 하여 최대 ``limit`` 개의 발생일을 순서대로 반환"""
    current = start
    for _ in range(max(limit, 0)):
        yield current
        current = next_occurrence(current, unit, interval, day_of_month, day_of_week)
