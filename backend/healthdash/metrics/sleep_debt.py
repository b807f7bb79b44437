"""
Running sleep debt against a nightly goal.

Debt is positive when sleep falls short of the goal. The running total is
capped at ``MAX_SLEEP_DEBT_SECONDS``; a surplus is never capped.
"""

import math
from typing import Literal, Optional, Sequence

from pydantic import Field

from healthdash.schemas import Record, SleepData

DEFAULT_SLEEP_GOAL_SECONDS = 8 * 60 * 60
MAX_SLEEP_DEBT_SECONDS = 16 * 60 * 60
# one extra hour per night for the fast recovery estimate
EXTRA_RECOVERY_SECONDS = 60 * 60

StreakType = Literal["deficit", "surplus", "neutral"]


class DailySleepDebt(Record):
    date: str
    actual_sleep_seconds: float
    goal_seconds: float
    debt_seconds: float
    cumulative_debt_seconds: float
    is_nap: bool = False


class SleepDebtStreak(Record):
    type: StreakType = "neutral"
    days: int = 0


class SleepDebtResult(Record):
    daily: list[DailySleepDebt] = Field(default_factory=list)
    total_debt_seconds: float = 0.0
    nights_below_goal: int = 0
    nights_at_or_above_goal: int = 0
    avg_sleep_seconds: Optional[float] = None
    nights_to_recover: int = 0
    nights_to_recover_fast: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    streak: SleepDebtStreak = Field(default_factory=SleepDebtStreak)


def _day_kind(debt: float) -> StreakType:
    if debt > 0:
        return "deficit"
    if debt < 0:
        return "surplus"
    return "neutral"


def current_streak(daily: Sequence[DailySleepDebt]) -> SleepDebtStreak:
    """Length of the run of same-kind days ending on the latest day.

    A neutral latest day is a one-day streak that never extends.
    """
    if not daily:
        return SleepDebtStreak()
    kind = _day_kind(daily[-1].debt_seconds)
    days = 1
    if kind != "neutral":
        for day in reversed(daily[:-1]):
            if _day_kind(day.debt_seconds) != kind:
                break
            days += 1
    return SleepDebtStreak(type=kind, days=days)


def calculate_sleep_debt(
    records: Sequence[SleepData],
    goal_seconds: float = DEFAULT_SLEEP_GOAL_SECONDS,
    include_naps: bool = False,
) -> SleepDebtResult:
    relevant = [r for r in records if include_naps or not r.is_nap]
    if not relevant:
        return SleepDebtResult()

    by_date: dict[str, list[SleepData]] = {}
    for record in relevant:
        by_date.setdefault(record.date, []).append(record)

    daily: list[DailySleepDebt] = []
    cumulative = 0.0
    for day in sorted(by_date):
        entries = by_date[day]
        slept = sum(entry.duration or 0 for entry in entries)
        debt = goal_seconds - slept
        cumulative = min(cumulative + debt, MAX_SLEEP_DEBT_SECONDS)
        daily.append(
            DailySleepDebt(
                date=day,
                actual_sleep_seconds=slept,
                goal_seconds=goal_seconds,
                debt_seconds=debt,
                cumulative_debt_seconds=cumulative,
                is_nap=any(entry.is_nap for entry in entries),
            )
        )

    return SleepDebtResult(
        daily=daily,
        total_debt_seconds=cumulative,
        nights_below_goal=sum(1 for d in daily if d.debt_seconds > 0),
        nights_at_or_above_goal=sum(1 for d in daily if d.debt_seconds <= 0),
        avg_sleep_seconds=sum(d.actual_sleep_seconds for d in daily) / len(daily),
        nights_to_recover=max(0, math.ceil(cumulative / goal_seconds)),
        nights_to_recover_fast=max(0, math.ceil(cumulative / (goal_seconds + EXTRA_RECOVERY_SECONDS))),
        start_date=daily[0].date,
        end_date=daily[-1].date,
        streak=current_streak(daily),
    )
