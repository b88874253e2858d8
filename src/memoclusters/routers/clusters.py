from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..permissions import get_request_user_id
from ..store import get_store
from ..models.cluster import (
    CardCreateRequest,
    CardListResponse,
    CardResponse,
    ClusterCreateRequest,
    ClusterListResponse,
    ClusterResponse,
    ClusterStatsResponse,
)

router = APIRouter(tags=["clusters"])


@router.get("/clusters", response_model=ClusterListResponse, summary="クラスタ一覧（カード数/期限到来数つき）")
def list_clusters(user_id: str = Depends(get_request_user_id)) -> ClusterListResponse:
    summaries = get_store().list_clusters(user_id)
    return ClusterListResponse(items=[ClusterResponse.from_summary(s) for s in summaries])


@router.post(
    "/clusters",
    response_model=ClusterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="クラスタを作成",
)
def create_cluster(req: ClusterCreateRequest, user_id: str = Depends(get_request_user_id)) -> ClusterResponse:
    try:
        cluster = get_store().create_cluster(user_id, req.title, req.description)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ClusterResponse.from_cluster(cluster)


@router.get("/clusters/{cluster_id}", response_model=ClusterResponse, summary="クラスタを取得")
def get_cluster(cluster_id: str, user_id: str = Depends(get_request_user_id)) -> ClusterResponse:
    return ClusterResponse.from_cluster(get_store().get_cluster(cluster_id, user_id))


@router.delete("/clusters/{cluster_id}", status_code=status.HTTP_204_NO_CONTENT, summary="クラスタを削除")
def delete_cluster(cluster_id: str, user_id: str = Depends(get_request_user_id)) -> Response:
    get_store().delete_cluster(cluster_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/clusters/{cluster_id}/cards", response_model=CardListResponse, summary="カード一覧（新しい順）")
def list_cards(cluster_id: str, user_id: str = Depends(get_request_user_id)) -> CardListResponse:
    cards = get_store().list_cards(cluster_id, user_id)
    return CardListResponse(items=[CardResponse.from_card(c) for c in cards])


@router.post(
    "/clusters/{cluster_id}/cards",
    response_model=CardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="カードを追加（即時に出題対象）",
)
def create_card(
    cluster_id: str, req: CardCreateRequest, user_id: str = Depends(get_request_user_id)
) -> CardResponse:
    try:
        card = get_store().create_card(cluster_id, req.front, req.back, user_id=user_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return CardResponse.from_card(card)


@router.delete("/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT, summary="カードを削除")
def delete_card(card_id: str, user_id: str = Depends(get_request_user_id)) -> Response:
    if not get_store().delete_card(card_id, user_id):
        raise HTTPException(status_code=404, detail="card not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/clusters/{cluster_id}/stats", response_model=ClusterStatsResponse, summary="進捗統計（残数/今日のレビュー数）")
def cluster_stats(cluster_id: str, user_id: str = Depends(get_request_user_id)) -> ClusterStatsResponse:
    due_now, reviewed_today = get_store().get_stats(cluster_id, user_id)
    return ClusterStatsResponse(due_now=due_now, reviewed_today=reviewed_today)
