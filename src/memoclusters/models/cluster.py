from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..store.base import Card, Cluster, ClusterSummary


class ClusterCreateRequest(BaseModel):
    """クラスタ（カード集合）の作成リクエスト。"""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)


class ClusterResponse(BaseModel):
    id: str
    title: str
    description: str
    created_at: datetime
    card_count: int | None = None
    due_count: int | None = None

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> "ClusterResponse":
        return cls(
            id=cluster.id,
            title=cluster.title,
            description=cluster.description,
            created_at=cluster.created_at,
        )

    @classmethod
    def from_summary(cls, summary: ClusterSummary) -> "ClusterResponse":
        resp = cls.from_cluster(summary.cluster)
        resp.card_count = summary.card_count
        resp.due_count = summary.due_count
        return resp


class ClusterListResponse(BaseModel):
    items: list[ClusterResponse]


class CardCreateRequest(BaseModel):
    """カード作成リクエスト（表面: 問い / 裏面: 答え）。"""

    front: str = Field(min_length=1, max_length=4000)
    back: str = Field(min_length=1, max_length=4000)


class CardResponse(BaseModel):
    id: str
    cluster_id: str
    front: str
    back: str
    repetitions: int
    interval_days: int
    ease_factor: float
    due_at: datetime
    created_at: datetime
    last_reviewed_at: datetime | None = None

    @classmethod
    def from_card(cls, card: Card) -> "CardResponse":
        return cls(
            id=card.id,
            cluster_id=card.cluster_id,
            front=card.front,
            back=card.back,
            repetitions=card.repetitions,
            interval_days=card.interval_days,
            ease_factor=card.ease_factor,
            due_at=card.due_at,
            created_at=card.created_at,
            last_reviewed_at=card.last_reviewed_at,
        )


class CardListResponse(BaseModel):
    items: list[CardResponse]


class ClusterStatsResponse(BaseModel):
    """進捗の見える化 用の統計レスポンス。

    - due_now: 現在時点で出題すべき件数（残数）
    - reviewed_today: 今日レビュー済み件数
    """

    due_now: int
    reviewed_today: int
