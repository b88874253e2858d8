"""Exception types shared by the scheduler, session queue and stores."""


class MemoClustersError(Exception):
    """Base class for application errors."""


class StoreError(MemoClustersError):
    """The persistence collaborator failed to complete a request."""


class NotFoundError(StoreError):
    """A requested entity does not exist."""


class ClusterNotFoundError(NotFoundError):
    def __init__(self, cluster_id: str) -> None:
        super().__init__(f"cluster not found: {cluster_id}")
        self.cluster_id = cluster_id


class CardNotFoundError(NotFoundError):
    def __init__(self, card_id: str) -> None:
        super().__init__(f"card not found: {card_id}")
        self.card_id = card_id


class UnauthorizedError(StoreError):
    """The caller does not own the requested cluster."""


class InvalidGradeError(ValueError):
    """Grade outside the 0..5 recall-quality scale."""

    def __init__(self, grade: object) -> None:
        super().__init__(f"grade must be an integer in [0, 5], got {grade!r}")
        self.grade = grade


class SessionStateError(MemoClustersError):
    """An action was submitted in a session state that does not accept it."""


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"review session not found: {session_id}")
        self.session_id = session_id
