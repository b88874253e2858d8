"""In-memory stand-in for the card store used by review tests."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta, timezone

from memoclusters.errors import (
    CardNotFoundError,
    ClusterNotFoundError,
    StoreError,
    UnauthorizedError,
)
from memoclusters.scheduler import SchedulingState
from memoclusters.store.base import Card

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def make_card(card_id: str, *, days_overdue: float = 0, cluster_id: str = "c1", **state) -> Card:
    return Card(
        id=card_id,
        cluster_id=cluster_id,
        front=f"front {card_id}",
        back=f"back {card_id}",
        due_at=NOW - timedelta(days=days_overdue),
        created_at=NOW - timedelta(days=30),
        **state,
    )


class FakeCardStore:
    def __init__(self, cards=(), *, owner: str = "u1", cluster_id: str = "c1") -> None:
        self.clusters: dict[str, str] = {cluster_id: owner}
        self.cards: dict[str, Card] = {c.id: c for c in cards}
        self.fetch_calls: list[tuple[str, datetime, int, str]] = []
        self.updates: list[tuple[str, SchedulingState]] = []
        self.fail_fetch = False
        self.fail_updates = False
        self.update_gate: threading.Event | None = None
        self.updates_started: list[str] = []

    def fetch_due_cards(self, cluster_id: str, as_of: datetime, limit: int, user_id: str) -> list[Card]:
        self.fetch_calls.append((cluster_id, as_of, limit, user_id))
        if self.fail_fetch:
            raise StoreError("fetch failed")
        owner = self.clusters.get(cluster_id)
        if owner is None:
            raise ClusterNotFoundError(cluster_id)
        if owner != user_id:
            raise UnauthorizedError(f"{user_id} cannot access {cluster_id}")
        due = [c for c in self.cards.values() if c.cluster_id == cluster_id and c.due_at <= as_of]
        return sorted(due, key=lambda c: (c.due_at, c.id))[:limit]

    def update_scheduling_state(self, card_id: str, state: SchedulingState, reviewed_at=None) -> None:
        self.updates_started.append(card_id)
        if self.update_gate is not None:
            self.update_gate.wait(timeout=5)
        if self.fail_updates:
            raise StoreError("write failed")
        card = self.cards.get(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        self.cards[card_id] = card.with_state(state, reviewed_at=reviewed_at)
        self.updates.append((card_id, state))

    def create_card(self, cluster_id: str, front: str, back: str, user_id: str, now=None) -> Card:
        if self.clusters.get(cluster_id) != user_id:
            raise UnauthorizedError(f"{user_id} cannot access {cluster_id}")
        card = Card(id=uuid.uuid4().hex, cluster_id=cluster_id, front=front, back=back, due_at=now or NOW)
        self.cards[card.id] = card
        return card

    def delete_card(self, card_id: str, user_id: str) -> bool:
        return self.cards.pop(card_id, None) is not None
