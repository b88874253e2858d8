"""Async driver around the review session.

セッション開始時の期限到来カード取得（待つ）と、採点ごとのスケジュール書き込み
（待たない / fire-and-forget）を担当する。書き込み失敗はセッションを止めず、
ログ・メトリクス・任意のフックで運用者に見えるようにする。
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime
from functools import partial
from typing import Callable, Optional

import anyio

from .errors import StoreError
from .logging import logger
from .metrics import MetricsRegistry, registry
from .scheduler import SchedulingState, utcnow
from .session import DEFAULT_BATCH_SIZE, GradeOutcome, ReviewSession, SessionStatus
from .store.base import CardStore


WriteErrorHook = Callable[[str, BaseException], None]


class ReviewService:
    def __init__(
        self,
        store: CardStore,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        metrics: MetricsRegistry = registry,
        on_write_error: Optional[WriteErrorHook] = None,
    ) -> None:
        self.store = store
        self.batch_size = batch_size
        self.metrics = metrics
        self.on_write_error = on_write_error
        self._pending: set[asyncio.Task[None]] = set()
        self._card_locks: dict[str, asyncio.Lock] = {}
        self._writes_per_card: Counter[str] = Counter()

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def start_session(
        self, cluster_id: str, user_id: str, now: Optional[datetime] = None
    ) -> ReviewSession:
        """Fetch the due-set and return a session in PRESENTING or EMPTY.

        Fetch failures propagate to the caller; a session never starts without
        its due-set.
        """
        session = ReviewSession.loading(cluster_id, self.batch_size)
        as_of = now or utcnow()
        # anyio.to_thread.run_sync はキーワード引数を転送しないため partial で包む
        fetch = partial(
            self.store.fetch_due_cards,
            cluster_id,
            as_of,
            self.batch_size,
            user_id=user_id,
        )
        try:
            cards = await anyio.to_thread.run_sync(fetch)
        except StoreError as exc:
            logger.warning(
                "review_load_failed",
                cluster_id=cluster_id,
                user_id=user_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        session.load(cards)
        if session.status is SessionStatus.empty:
            self.metrics.incr("sessions_empty")
            logger.info("review_session_empty", session_id=session.id, cluster_id=cluster_id)
        else:
            self.metrics.incr("sessions_started")
            logger.info(
                "review_session_started",
                session_id=session.id,
                cluster_id=cluster_id,
                due_count=session.initial_count,
            )
        return session

    def grade(self, session: ReviewSession, grade: int, now: Optional[datetime] = None) -> GradeOutcome:
        """Grade the presented card and persist its new state without waiting.

        Must be called while an event loop is running.
        """
        graded_at = now or utcnow()
        outcome = session.grade(grade, now=graded_at)
        self.metrics.incr("grades")
        logger.info(
            "card_graded",
            session_id=session.id,
            card_id=outcome.card.id,
            grade=grade,
            repetitions=outcome.state.repetitions,
            interval_days=outcome.state.interval_days,
            ease_factor=round(outcome.state.ease_factor, 4),
        )
        if outcome.requeued:
            self.metrics.incr("requeues")
            logger.info("card_requeued", session_id=session.id, card_id=outcome.card.id, queue_length=session.total)

        self._spawn_write(outcome.card.id, outcome.state, graded_at)

        if outcome.status is SessionStatus.complete:
            logger.info(
                "review_session_complete",
                session_id=session.id,
                cluster_id=session.cluster_id,
                completed_count=session.completed_count,
                presented_count=session.presented_count,
            )
        return outcome

    async def drain(self) -> None:
        """Wait for every in-flight scheduling write to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            # done-callback（_pending からの除去）を先に走らせる
            await asyncio.sleep(0)

    # --- internals ---
    def _spawn_write(self, card_id: str, state: SchedulingState, reviewed_at: datetime) -> None:
        # 同一カードへの書き込みは発行順に直列化する（再出題で連続採点された場合の逆転防止）
        lock = self._card_locks.setdefault(card_id, asyncio.Lock())
        self._writes_per_card[card_id] += 1
        task = asyncio.get_running_loop().create_task(self._write(lock, card_id, state, reviewed_at))
        self._pending.add(task)
        task.add_done_callback(partial(self._on_write_done, card_id))

    async def _write(
        self, lock: asyncio.Lock, card_id: str, state: SchedulingState, reviewed_at: datetime
    ) -> None:
        async with lock:
            await anyio.to_thread.run_sync(
                partial(self.store.update_scheduling_state, card_id, state, reviewed_at=reviewed_at)
            )

    def _on_write_done(self, card_id: str, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        self._writes_per_card[card_id] -= 1
        if self._writes_per_card[card_id] <= 0:
            del self._writes_per_card[card_id]
            self._card_locks.pop(card_id, None)
        if task.cancelled():
            logger.warning("scheduling_write_cancelled", card_id=card_id)
            return
        exc = task.exception()
        if exc is None:
            return
        self.metrics.incr("write_failures")
        logger.error(
            "scheduling_write_failed",
            card_id=card_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        if self.on_write_error is not None:
            self.on_write_error(card_id, exc)
