from __future__ import annotations

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from ..errors import CardNotFoundError, ClusterNotFoundError, StoreError, UnauthorizedError
from ..scheduler import DEFAULT_EASE_FACTOR, SchedulingState, utcnow
from .base import Card, Cluster, ClusterSummary

_MEMORY_PATH = ":memory:"
_CARD_COLUMNS = (
    "id, cluster_id, front, back, repetitions, interval_days, ease_factor, "
    "due_at, created_at, last_reviewed_at"
)


def to_utc(value: datetime) -> datetime:
    """naive な datetime は UTC とみなして tz 付きに揃える。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_utc(value: datetime) -> str:
    # 固定幅の ISO 文字列にそろえることで、文字列比較 = 時刻比較 が成り立つ
    return to_utc(value).isoformat(timespec="microseconds")


def _parse(raw: Optional[str]) -> Optional[datetime]:
    if raw is None:
        return None
    return to_utc(datetime.fromisoformat(raw))


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements atomically on an autocommit connection."""
    # BEGIN IMMEDIATE で書き込みロックを先に取り、同一行への並行更新を避ける
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK;")
        raise
    conn.execute("COMMIT;")


def _row_to_card(row: sqlite3.Row) -> Card:
    return Card(
        id=row["id"],
        cluster_id=row["cluster_id"],
        front=row["front"],
        back=row["back"],
        repetitions=int(row["repetitions"]),
        interval_days=int(row["interval_days"]),
        ease_factor=float(row["ease_factor"]),
        due_at=_parse(row["due_at"]),  # type: ignore[arg-type]
        created_at=_parse(row["created_at"]),  # type: ignore[arg-type]
        last_reviewed_at=_parse(row["last_reviewed_at"]),
    )


def _row_to_cluster(row: sqlite3.Row) -> Cluster:
    return Cluster(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"] or "",
        created_at=_parse(row["created_at"]),  # type: ignore[arg-type]
    )


class SQLiteCardStore:
    """SQLite-backed store for clusters and cards.

    - 期限到来カードの取得は due_at 昇順（同値は id 昇順）で limit 件まで
    - スケジュール更新は 4 フィールド＋last_reviewed_at の上書きのみ（冪等）
    - cluster 削除時は cards も ON DELETE CASCADE で削除される
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._shared_conn: Optional[sqlite3.Connection] = None
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        # autocommit 接続。複数文をまとめる箇所は _transaction で明示的に BEGIN する
        if self.db_path != _MEMORY_PATH:
            conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; sqlite errors surface as StoreError."""
        try:
            with self._open() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite operation failed: {exc}") from exc

    @contextmanager
    def _open(self) -> Iterator[sqlite3.Connection]:
        # in-memory databases share a single connection
        if self.db_path == _MEMORY_PATH:
            with self._lock:
                if self._shared_conn is None:
                    self._shared_conn = self._connect()
                yield self._shared_conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_dirs(self) -> None:
        if self.db_path == _MEMORY_PATH:
            return
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        with self._session() as conn:
            with _transaction(conn):
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS users (
                        id TEXT PRIMARY KEY,
                        created_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS clusters (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        description TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL,
                        FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cards (
                        id TEXT PRIMARY KEY,
                        cluster_id TEXT NOT NULL,
                        front TEXT NOT NULL,
                        back TEXT NOT NULL,
                        repetitions INTEGER NOT NULL DEFAULT 0,
                        interval_days INTEGER NOT NULL DEFAULT 0,
                        ease_factor REAL NOT NULL DEFAULT 2.5,
                        due_at TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        last_reviewed_at TEXT,
                        FOREIGN KEY(cluster_id) REFERENCES clusters(id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_cluster_due ON cards(cluster_id, due_at);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_clusters_user ON clusters(user_id);")

    def _require_cluster(self, conn: sqlite3.Connection, cluster_id: str, user_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT id, user_id, title, description, created_at FROM clusters WHERE id = ?;",
            (cluster_id,),
        ).fetchone()
        if row is None:
            raise ClusterNotFoundError(cluster_id)
        if row["user_id"] != user_id:
            raise UnauthorizedError(f"user {user_id!r} cannot access cluster {cluster_id!r}")
        return row

    # --- clusters ---
    def create_cluster(self, user_id: str, title: str, description: str = "") -> Cluster:
        title = (title or "").strip()
        if not title:
            raise ValueError("cluster title must not be blank")
        now = iso_utc(utcnow())
        cluster_id = uuid.uuid4().hex
        with self._session() as conn:
            with _transaction(conn):
                conn.execute(
                    "INSERT OR IGNORE INTO users(id, created_at) VALUES (?, ?);",
                    (user_id, now),
                )
                conn.execute(
                    "INSERT INTO clusters(id, user_id, title, description, created_at) VALUES (?, ?, ?, ?, ?);",
                    (cluster_id, user_id, title, (description or "").strip(), now),
                )
        return Cluster(
            id=cluster_id,
            user_id=user_id,
            title=title,
            description=(description or "").strip(),
            created_at=_parse(now),  # type: ignore[arg-type]
        )

    def get_cluster(self, cluster_id: str, user_id: str) -> Cluster:
        with self._session() as conn:
            return _row_to_cluster(self._require_cluster(conn, cluster_id, user_id))

    def list_clusters(self, user_id: str, now: Optional[datetime] = None) -> List[ClusterSummary]:
        """Return the user's clusters newest first, with card and due counts."""
        as_of = iso_utc(now or utcnow())
        with self._session() as conn:
            cur = conn.execute(
                """
                SELECT cl.id, cl.user_id, cl.title, cl.description, cl.created_at,
                       COUNT(c.id) AS card_count,
                       COALESCE(SUM(CASE WHEN c.due_at <= ? THEN 1 ELSE 0 END), 0) AS due_count
                FROM clusters cl
                LEFT JOIN cards c ON c.cluster_id = cl.id
                WHERE cl.user_id = ?
                GROUP BY cl.id
                ORDER BY cl.created_at DESC, cl.id ASC;
                """,
                (as_of, user_id),
            )
            return [
                ClusterSummary(
                    cluster=_row_to_cluster(row),
                    card_count=int(row["card_count"]),
                    due_count=int(row["due_count"]),
                )
                for row in cur.fetchall()
            ]

    def delete_cluster(self, cluster_id: str, user_id: str) -> None:
        with self._session() as conn:
            with _transaction(conn):
                self._require_cluster(conn, cluster_id, user_id)
                conn.execute("DELETE FROM clusters WHERE id = ?;", (cluster_id,))

    # --- cards ---
    def create_card(
        self, cluster_id: str, front: str, back: str, user_id: str, now: Optional[datetime] = None
    ) -> Card:
        """Create a card due immediately with the initial SM-2 state."""
        front = (front or "").strip()
        back = (back or "").strip()
        if not front or not back:
            raise ValueError("card front and back must not be blank")
        created = to_utc(now or utcnow())
        card = Card(
            id=uuid.uuid4().hex,
            cluster_id=cluster_id,
            front=front,
            back=back,
            repetitions=0,
            interval_days=0,
            ease_factor=DEFAULT_EASE_FACTOR,
            due_at=created,
            created_at=created,
        )
        with self._session() as conn:
            with _transaction(conn):
                self._require_cluster(conn, cluster_id, user_id)
                conn.execute(
                    f"INSERT INTO cards({_CARD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL);",
                    (
                        card.id,
                        card.cluster_id,
                        card.front,
                        card.back,
                        card.repetitions,
                        card.interval_days,
                        card.ease_factor,
                        iso_utc(card.due_at),
                        iso_utc(card.created_at),
                    ),
                )
        return card

    def get_card(self, card_id: str) -> Card:
        with self._session() as conn:
            row = conn.execute(f"SELECT {_CARD_COLUMNS} FROM cards WHERE id = ?;", (card_id,)).fetchone()
        if row is None:
            raise CardNotFoundError(card_id)
        return _row_to_card(row)

    def list_cards(self, cluster_id: str, user_id: str) -> List[Card]:
        with self._session() as conn:
            self._require_cluster(conn, cluster_id, user_id)
            cur = conn.execute(
                f"SELECT {_CARD_COLUMNS} FROM cards WHERE cluster_id = ? ORDER BY created_at DESC, id ASC;",
                (cluster_id,),
            )
            return [_row_to_card(row) for row in cur.fetchall()]

    def delete_card(self, card_id: str, user_id: str) -> bool:
        """Delete a card. Returns False when it did not exist."""
        with self._session() as conn:
            with _transaction(conn):
                row = conn.execute("SELECT cluster_id FROM cards WHERE id = ?;", (card_id,)).fetchone()
                if row is None:
                    return False
                self._require_cluster(conn, row["cluster_id"], user_id)
                cur = conn.execute("DELETE FROM cards WHERE id = ?;", (card_id,))
                return cur.rowcount > 0

    # --- review ---
    def fetch_due_cards(self, cluster_id: str, as_of: datetime, limit: int, user_id: str) -> List[Card]:
        with self._session() as conn:
            self._require_cluster(conn, cluster_id, user_id)
            cur = conn.execute(
                f"""
                SELECT {_CARD_COLUMNS} FROM cards
                WHERE cluster_id = ? AND due_at <= ?
                ORDER BY due_at ASC, id ASC
                LIMIT ?;
                """,
                (cluster_id, iso_utc(as_of), max(0, int(limit))),
            )
            return [_row_to_card(row) for row in cur.fetchall()]

    def update_scheduling_state(
        self, card_id: str, state: SchedulingState, reviewed_at: Optional[datetime] = None
    ) -> None:
        if state.due_at is None:
            raise ValueError("scheduling state must carry due_at")
        with self._session() as conn:
            with _transaction(conn):
                cur = conn.execute(
                    """
                    UPDATE cards
                    SET repetitions = ?, interval_days = ?, ease_factor = ?, due_at = ?, last_reviewed_at = ?
                    WHERE id = ?;
                    """,
                    (
                        state.repetitions,
                        state.interval_days,
                        state.ease_factor,
                        iso_utc(state.due_at),
                        iso_utc(reviewed_at or utcnow()),
                        card_id,
                    ),
                )
                if cur.rowcount == 0:
                    raise CardNotFoundError(card_id)

    # --- stats ---
    def get_stats(self, cluster_id: str, user_id: str, now: Optional[datetime] = None) -> Tuple[int, int]:
        """Return (due_now_count, reviewed_today_count) for a cluster.

        - due_now_count: 現在時刻までに due のカード件数
        - reviewed_today_count: 当日 00:00 UTC 以降に最後にレビューされたカード件数
        """
        current = to_utc(now or utcnow())
        today_start = current.replace(hour=0, minute=0, second=0, microsecond=0)
        with self._session() as conn:
            self._require_cluster(conn, cluster_id, user_id)
            due_now = conn.execute(
                "SELECT COUNT(1) AS c FROM cards WHERE cluster_id = ? AND due_at <= ?;",
                (cluster_id, iso_utc(current)),
            ).fetchone()["c"]
            reviewed_today = conn.execute(
                "SELECT COUNT(1) AS c FROM cards WHERE cluster_id = ? AND last_reviewed_at >= ?;",
                (cluster_id, iso_utc(today_start)),
            ).fetchone()["c"]
        return int(due_now), int(reviewed_today)
