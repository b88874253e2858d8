"""Session-scoped review queue.

1 回の復習画面に対応するセッション状態。永続化はせず、呼び出し側が保持する。

状態遷移:
    LOADING -> EMPTY                (期限到来カードが 0 件)
    LOADING -> PRESENTING           (cursor=0 から出題)
    PRESENTING -> PRESENTING | COMPLETE

キューは追記のみ（過去のエントリは書き換えない）で、cursor は単調増加する。
grade < 4 のカードは末尾に再投入され、同じセッション内でもう一度出題される。
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .errors import SessionStateError
from .scheduler import Scheduler, SchedulingState, default_scheduler, utcnow, validate_grade
from .store.base import Card


DEFAULT_BATCH_SIZE = 20
# grade 3 ("hard") は scheduler 上は合格だが、セッション内では再出題する
MASTERY_GRADE = 4


def is_mastered(grade: int) -> bool:
    return validate_grade(grade) >= MASTERY_GRADE


class SessionStatus(str, Enum):
    loading = "loading"
    presenting = "presenting"
    complete = "complete"
    empty = "empty"


class Face(str, Enum):
    front = "front"
    back = "back"


@dataclass(frozen=True)
class GradeOutcome:
    """Result of grading the presented card."""

    card: Card
    grade: int
    state: SchedulingState
    requeued: bool
    status: SessionStatus


def order_due_cards(cards: Iterable[Card], batch_size: int = DEFAULT_BATCH_SIZE) -> list[Card]:
    """Most overdue first, capped to ``batch_size``."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return sorted(cards, key=lambda c: (c.due_at, c.id))[:batch_size]


@dataclass
class ReviewSession:
    cluster_id: str
    batch_size: int = DEFAULT_BATCH_SIZE
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: SessionStatus = SessionStatus.loading
    queue: list[Card] = field(default_factory=list)
    cursor: int = 0
    completed_count: int = 0
    presented_count: int = 0
    initial_count: int = 0
    face: Face = Face.front

    @classmethod
    def loading(cls, cluster_id: str, batch_size: int = DEFAULT_BATCH_SIZE) -> "ReviewSession":
        return cls(cluster_id=cluster_id, batch_size=batch_size)

    @classmethod
    def start(
        cls, cluster_id: str, cards: Iterable[Card], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> "ReviewSession":
        """Build a session straight from a due-set snapshot."""
        return cls.loading(cluster_id, batch_size).load(cards)

    def load(self, cards: Iterable[Card]) -> "ReviewSession":
        """Leave LOADING with the fetched due-set."""
        if self.status is not SessionStatus.loading:
            raise SessionStateError(f"cannot load a session in status {self.status.value}")
        self.queue = order_due_cards(cards, self.batch_size)
        self.initial_count = len(self.queue)
        self.cursor = 0
        self.face = Face.front
        self.status = SessionStatus.presenting if self.queue else SessionStatus.empty
        return self

    # --- presentation ---
    @property
    def current_card(self) -> Optional[Card]:
        if self.status is not SessionStatus.presenting:
            return None
        return self.queue[self.cursor]

    @property
    def position(self) -> int:
        """1-based index of the presented card (0 when nothing is presented)."""
        return self.cursor + 1 if self.status is SessionStatus.presenting else 0

    @property
    def total(self) -> int:
        return len(self.queue)

    @property
    def remaining(self) -> int:
        return max(0, len(self.queue) - self.cursor)

    @property
    def is_finished(self) -> bool:
        return self.status in (SessionStatus.complete, SessionStatus.empty)

    def flip(self) -> Face:
        """Toggle the presented card between front and back."""
        if self.status is not SessionStatus.presenting:
            raise SessionStateError(f"cannot flip a card in status {self.status.value}")
        self.face = Face.back if self.face is Face.front else Face.front
        return self.face

    # --- grading ---
    def grade(
        self,
        grade: int,
        now: Optional[datetime] = None,
        scheduler: Scheduler = default_scheduler,
    ) -> GradeOutcome:
        """Grade the presented card, apply the re-queue policy and advance."""
        validate_grade(grade)
        if self.status is not SessionStatus.presenting:
            raise SessionStateError(f"cannot grade in status {self.status.value}")

        graded_at = now or utcnow()
        card = self.queue[self.cursor]
        state = scheduler.next_schedule(grade, card.scheduling_state, now=graded_at)
        updated = card.with_state(state, reviewed_at=graded_at)

        requeued = grade < MASTERY_GRADE
        if requeued:
            self.queue.append(updated)
        else:
            self.completed_count += 1

        self.presented_count += 1
        self.cursor += 1
        self.face = Face.front
        if self.cursor >= len(self.queue):
            self.status = SessionStatus.complete

        return GradeOutcome(card=updated, grade=grade, state=state, requeued=requeued, status=self.status)
