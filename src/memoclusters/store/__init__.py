from __future__ import annotations

from functools import lru_cache

from ..config import settings
from .base import Card, CardStore, Cluster, ClusterSummary
from .sqlite_store import SQLiteCardStore


@lru_cache(maxsize=1)
def get_store() -> SQLiteCardStore:
    """アプリ全体で共有する SQLite ベースのストアを返す。

    初回呼び出し時に DB を開く（import しただけではファイルを作らない）。
    """

    return SQLiteCardStore(db_path=settings.db_path)


__all__ = [
    "Card",
    "CardStore",
    "Cluster",
    "ClusterSummary",
    "SQLiteCardStore",
    "get_store",
]
