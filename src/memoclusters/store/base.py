from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol

from ..scheduler import DEFAULT_EASE_FACTOR, SchedulingState, utcnow


@dataclass
class Card:
    """A single front/back memo owned by one cluster."""

    id: str
    cluster_id: str
    front: str
    back: str
    repetitions: int = 0
    interval_days: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    due_at: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    last_reviewed_at: datetime | None = None

    @property
    def scheduling_state(self) -> SchedulingState:
        return SchedulingState(
            repetitions=self.repetitions,
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            due_at=self.due_at,
        )

    def with_state(self, state: SchedulingState, reviewed_at: datetime | None = None) -> "Card":
        """Return a copy carrying ``state``; the original card is left untouched."""
        return replace(
            self,
            repetitions=state.repetitions,
            ease_factor=state.ease_factor,
            interval_days=state.interval_days,
            due_at=state.due_at or self.due_at,
            last_reviewed_at=reviewed_at or self.last_reviewed_at,
        )


@dataclass
class Cluster:
    """A user-owned, titled collection of cards."""

    id: str
    user_id: str
    title: str
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ClusterSummary:
    cluster: Cluster
    card_count: int = 0
    due_count: int = 0


class CardStore(Protocol):
    """Persistence contract consumed by the review engine.

    復習エンジンが依存する永続化の最小契約。SQLite 実装とテスト用フェイクの
    双方がこれを満たす。
    - fetch_due_cards: cluster が無ければ NotFoundError、所有者でなければ
      UnauthorizedError。期限到来カードが無いときはエラーではなく空リスト。
    - update_scheduling_state: 上書き（冪等）。待たずに発行されるため再試行安全であること。
    """

    def fetch_due_cards(self, cluster_id: str, as_of: datetime, limit: int, user_id: str) -> list[Card]:
        ...

    def update_scheduling_state(
        self, card_id: str, state: SchedulingState, reviewed_at: datetime | None = None
    ) -> None:
        ...

    def create_card(
        self, cluster_id: str, front: str, back: str, user_id: str, now: datetime | None = None
    ) -> Card:
        ...

    def delete_card(self, card_id: str, user_id: str) -> bool:
        ...
