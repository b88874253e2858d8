"""SM-2 scheduling for memo cards.

採点（0-5）と現在のスケジュール状態から、次回の状態を計算する純粋関数。
I/O は一切行わず、「現在時刻」も呼び出し時に一度だけ読む（テストでは注入可能）。

- grade >= 3 は合格（ladder を 1日 → 6日 → interval*EF と進める）
- grade < 3 は不合格（repetitions を 0 に戻し、翌日に再出題）
- EF は合否に関わらず更新し、下限 1.3 でクランプ（上限なし）
- interval の丸めは四捨五入（.5 は 0 から遠い方へ）
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from .errors import InvalidGradeError


MIN_GRADE = 0
MAX_GRADE = 5
PASSING_GRADE = 3
MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SchedulingState:
    """Persisted scheduling fields of a card."""

    repetitions: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = 0
    due_at: datetime | None = None


def validate_grade(grade: object) -> int:
    """Return ``grade`` if it is an integer in [0, 5], otherwise raise.

    bool は int のサブクラスだが採点値としては受け付けない。
    """
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise InvalidGradeError(grade)
    if grade < MIN_GRADE or grade > MAX_GRADE:
        raise InvalidGradeError(grade)
    return grade


def is_passing(grade: int) -> bool:
    return validate_grade(grade) >= PASSING_GRADE


def ease_delta(grade: int) -> float:
    """EF' = EF + (0.1 - (5-q) * (0.08 + (5-q) * 0.02))"""
    miss = MAX_GRADE - grade
    return 0.1 - miss * (0.08 + miss * 0.02)


def round_half_away(value: float) -> int:
    # value is never negative here: interval >= 0 and ease >= 1.3
    return int(math.floor(value + 0.5))


def next_schedule(grade: int, state: SchedulingState, now: datetime | None = None) -> SchedulingState:
    """Compute the scheduling state that follows a review graded ``grade``.

    Args:
        grade: recall quality 0..5
            0 - complete blackout
            3 - correct response with serious difficulty
            4 - correct response after hesitation
            5 - perfect response
        state: prior scheduling state (``due_at`` is ignored)
        now: moment of grading; defaults to the current UTC time

    Returns:
        A new ``SchedulingState`` with all four fields set.

    Raises:
        InvalidGradeError: grade is not an integer in [0, 5]
        ValueError: negative repetitions or interval on input
    """
    validate_grade(grade)
    if state.repetitions < 0:
        raise ValueError(f"repetitions must be >= 0, got {state.repetitions}")
    if state.interval_days < 0:
        raise ValueError(f"interval_days must be >= 0, got {state.interval_days}")

    # 破損データ対策: 入力 EF が下限未満なら下限として扱う
    prior_ease = max(MIN_EASE_FACTOR, float(state.ease_factor))

    if grade >= PASSING_GRADE:
        if state.repetitions == 0:
            interval_days = FIRST_INTERVAL_DAYS
        elif state.repetitions == 1:
            interval_days = SECOND_INTERVAL_DAYS
        else:
            interval_days = max(1, round_half_away(state.interval_days * prior_ease))
        repetitions = state.repetitions + 1
    else:
        repetitions = 0
        interval_days = FIRST_INTERVAL_DAYS

    ease_factor = max(MIN_EASE_FACTOR, prior_ease + ease_delta(grade))

    graded_at = now or utcnow()
    return SchedulingState(
        repetitions=repetitions,
        ease_factor=ease_factor,
        interval_days=interval_days,
        due_at=graded_at + timedelta(days=interval_days),
    )


class Scheduler(Protocol):
    """Protocol for review schedulers."""

    def next_schedule(self, grade: int, state: SchedulingState, now: datetime | None = None) -> SchedulingState:
        ...


class SM2Scheduler:
    """SM-2 (SuperMemo 2) scheduler exposed behind the ``Scheduler`` protocol."""

    def next_schedule(self, grade: int, state: SchedulingState, now: datetime | None = None) -> SchedulingState:
        return next_schedule(grade, state, now=now)


default_scheduler = SM2Scheduler()
