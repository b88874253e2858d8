from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..session import Face, GradeOutcome, ReviewSession, SessionStatus


class ReviewCard(BaseModel):
    """A single review card to display on the frontend.

    back は裏返した後（face=back）のみ返す。
    """

    id: str
    front: str
    back: str | None = None


class ReviewSessionResponse(BaseModel):
    session_id: str
    cluster_id: str
    status: SessionStatus
    face: Face
    position: int
    total: int
    remaining: int
    completed_count: int
    card: ReviewCard | None = None

    @classmethod
    def from_session(cls, session: ReviewSession) -> "ReviewSessionResponse":
        current = session.current_card
        card = None
        if current is not None:
            card = ReviewCard(
                id=current.id,
                front=current.front,
                back=current.back if session.face is Face.back else None,
            )
        return cls(
            session_id=session.id,
            cluster_id=session.cluster_id,
            status=session.status,
            face=session.face,
            position=session.position,
            total=session.total,
            remaining=session.remaining,
            completed_count=session.completed_count,
            card=card,
        )


class ReviewGradeRequest(BaseModel):
    """Request model for submitting a review grade.

    - grade: 0..5（UI は 0/3/4/5 の 4 択を出す）
    """

    grade: int = Field(ge=0, le=5)


class ReviewGradeResponse(BaseModel):
    graded_card_id: str
    requeued: bool
    next_due: datetime
    interval_days: int
    session: ReviewSessionResponse

    @classmethod
    def from_outcome(cls, outcome: GradeOutcome, session: ReviewSession) -> "ReviewGradeResponse":
        return cls(
            graded_card_id=outcome.card.id,
            requeued=outcome.requeued,
            next_due=outcome.card.due_at,
            interval_days=outcome.state.interval_days,
            session=ReviewSessionResponse.from_session(session),
        )
