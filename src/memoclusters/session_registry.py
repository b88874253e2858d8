"""In-process registry of live review sessions.

セッションはプロセス内メモリのみで保持する（永続化しない）。所有者以外からの
参照は存在しないものとして扱い、他ユーザのセッションIDの有無を漏らさない。
最後の操作から ttl_seconds を過ぎたセッションは add/get のたびに破棄する
（タブを閉じて放置されたセッションを溜め込まないため）。
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .errors import SessionNotFoundError
from .logging import logger
from .session import ReviewSession

DEFAULT_SESSION_TTL_SECONDS = 1800.0


@dataclass
class _Entry:
    user_id: str
    session: ReviewSession
    touched_at: float


class SessionRegistry:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def add(self, user_id: str, session: ReviewSession) -> None:
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            self._sessions[session.id] = _Entry(user_id=user_id, session=session, touched_at=now)

    def get(self, session_id: str, user_id: str) -> ReviewSession:
        """Return the caller's session and mark it as touched."""
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            entry = self._sessions.get(session_id)
            if entry is None or entry.user_id != user_id:
                raise SessionNotFoundError(session_id)
            entry.touched_at = now
            return entry.session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def _evict_expired(self, now: float) -> None:
        # 呼び出し側で self._lock を保持していること
        cutoff = now - self.ttl_seconds
        expired = [sid for sid, entry in self._sessions.items() if entry.touched_at <= cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("review_sessions_expired", count=len(expired), live_sessions=len(self._sessions))
