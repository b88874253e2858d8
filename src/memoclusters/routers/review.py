from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..config import settings
from ..errors import InvalidGradeError
from ..permissions import get_request_user_id
from ..review_service import ReviewService
from ..session_registry import SessionRegistry
from ..store import get_store
from ..models.review import ReviewGradeRequest, ReviewGradeResponse, ReviewSessionResponse

router = APIRouter(tags=["review"])

sessions = SessionRegistry(ttl_seconds=settings.session_ttl_seconds)


@lru_cache(maxsize=1)
def get_service() -> ReviewService:
    """Review service bound to the shared store (created on first use)."""
    return ReviewService(get_store(), batch_size=settings.review_batch_size)


@router.post(
    "/clusters/{cluster_id}/sessions",
    response_model=ReviewSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="復習セッションを開始（期限到来カードを取得）",
)
async def start_session(cluster_id: str, user_id: str = Depends(get_request_user_id)) -> ReviewSessionResponse:
    """Start a review session over the cluster's due cards.

    期限到来カードが無い場合も 201 で status=empty を返す（エラーではない）。
    """
    session = await get_service().start_session(cluster_id, user_id)
    if not session.is_finished:
        sessions.add(user_id, session)
    return ReviewSessionResponse.from_session(session)


@router.get("/sessions/{session_id}", response_model=ReviewSessionResponse, summary="セッションの現在状態")
async def get_session(session_id: str, user_id: str = Depends(get_request_user_id)) -> ReviewSessionResponse:
    return ReviewSessionResponse.from_session(sessions.get(session_id, user_id))


@router.post("/sessions/{session_id}/flip", response_model=ReviewSessionResponse, summary="カードを裏返す")
async def flip_card(session_id: str, user_id: str = Depends(get_request_user_id)) -> ReviewSessionResponse:
    session = sessions.get(session_id, user_id)
    session.flip()
    return ReviewSessionResponse.from_session(session)


@router.post(
    "/sessions/{session_id}/grade",
    response_model=ReviewGradeResponse,
    summary="採点して次のカードへ進む（保存は待たない）",
)
async def grade_card(
    session_id: str, req: ReviewGradeRequest, user_id: str = Depends(get_request_user_id)
) -> ReviewGradeResponse:
    session = sessions.get(session_id, user_id)
    try:
        outcome = get_service().grade(session, req.grade)
    except InvalidGradeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if session.is_finished:
        sessions.discard(session_id)
    return ReviewGradeResponse.from_outcome(outcome, session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT, summary="セッションを破棄")
async def discard_session(session_id: str, user_id: str = Depends(get_request_user_id)) -> Response:
    """Drop the in-memory session; writes already issued finish on their own."""
    sessions.get(session_id, user_id)
    sessions.discard(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
