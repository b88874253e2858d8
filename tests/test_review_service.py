import asyncio
import threading

import pytest

from memoclusters.errors import ClusterNotFoundError, StoreError, UnauthorizedError
from memoclusters.metrics import MetricsRegistry
from memoclusters.review_service import ReviewService
from memoclusters.session import SessionStatus
from tests.store_fakes import NOW, FakeCardStore, make_card


def _service(store, **kwargs):
    return ReviewService(store, batch_size=kwargs.pop("batch_size", 20), metrics=MetricsRegistry(), **kwargs)


def test_start_session_fetches_capped_due_set():
    store = FakeCardStore([make_card(f"k{i:02d}", days_overdue=i) for i in range(30)])
    service = _service(store, batch_size=20)

    session = asyncio.run(service.start_session("c1", "u1", now=NOW))

    assert session.status is SessionStatus.presenting
    assert session.total == 20
    assert store.fetch_calls == [("c1", NOW, 20, "u1")]
    assert service.metrics.count("sessions_started") == 1


def test_start_session_with_nothing_due_is_empty_not_error():
    store = FakeCardStore([make_card("future", days_overdue=-3)])
    service = _service(store)

    session = asyncio.run(service.start_session("c1", "u1", now=NOW))

    assert session.status is SessionStatus.empty
    assert service.metrics.count("sessions_empty") == 1


@pytest.mark.parametrize(
    "cluster_id, user_id, error",
    [("missing", "u1", ClusterNotFoundError), ("c1", "intruder", UnauthorizedError)],
)
def test_start_session_propagates_access_errors(cluster_id, user_id, error):
    service = _service(FakeCardStore([make_card("a")]))

    with pytest.raises(error):
        asyncio.run(service.start_session(cluster_id, user_id, now=NOW))


def test_start_session_fetch_failure_is_fatal():
    store = FakeCardStore([make_card("a")])
    store.fail_fetch = True

    with pytest.raises(StoreError):
        asyncio.run(_service(store).start_session("c1", "u1", now=NOW))


def test_grade_advances_without_waiting_for_the_write():
    store = FakeCardStore([make_card("a", days_overdue=1), make_card("b")])
    store.update_gate = threading.Event()
    service = _service(store)

    async def scenario():
        session = await service.start_session("c1", "u1", now=NOW)
        outcome = service.grade(session, 5, now=NOW)

        # 書き込みはまだブロック中だが、セッションは次のカードへ進んでいる
        assert session.current_card.id == "b"
        assert service.pending_writes == 1
        assert store.updates == []

        store.update_gate.set()
        await service.drain()
        return outcome

    outcome = asyncio.run(scenario())

    assert service.pending_writes == 0
    assert store.updates == [("a", outcome.state)]
    assert store.cards["a"].repetitions == 1
    assert store.cards["a"].due_at == outcome.state.due_at


def test_write_failure_is_reported_but_session_continues():
    store = FakeCardStore([make_card("a", days_overdue=1), make_card("b")])
    store.fail_updates = True
    failures = []
    service = _service(store, on_write_error=lambda card_id, exc: failures.append((card_id, type(exc))))

    async def scenario():
        session = await service.start_session("c1", "u1", now=NOW)
        service.grade(session, 4, now=NOW)
        service.grade(session, 0, now=NOW)
        await service.drain()
        return session

    session = asyncio.run(scenario())

    assert session.status is SessionStatus.presenting
    assert session.current_card.id == "b"
    assert failures == [("a", StoreError), ("b", StoreError)]
    assert service.metrics.count("write_failures") == 2
    assert service.metrics.count("requeues") == 1
    assert service.metrics.count("grades") == 2


def test_every_presentation_issues_its_own_write():
    store = FakeCardStore([make_card("a")])
    service = _service(store)

    async def scenario():
        session = await service.start_session("c1", "u1", now=NOW)
        service.grade(session, 3, now=NOW)
        service.grade(session, 4, now=NOW)
        await service.drain()
        return session

    session = asyncio.run(scenario())

    assert session.status is SessionStatus.complete
    assert session.completed_count == 1
    assert [card_id for card_id, _ in store.updates] == ["a", "a"]
    assert store.cards["a"].repetitions == 2
    assert store.cards["a"].interval_days == 6
    assert service._card_locks == {}


def test_writes_for_one_card_wait_for_the_earlier_write():
    store = FakeCardStore([make_card("a", days_overdue=1), make_card("b")])
    store.update_gate = threading.Event()
    service = _service(store)

    async def scenario():
        session = await service.start_session("c1", "u1", now=NOW)
        service.grade(session, 3, now=NOW)  # a -> requeued
        service.grade(session, 5, now=NOW)  # b
        service.grade(session, 4, now=NOW)  # a again
        await asyncio.sleep(0.05)

        # 1 回目の a の書き込みがブロック中なので、2 回目の a はまだ開始していない
        started_while_blocked = sorted(store.updates_started)
        assert service.pending_writes == 3

        store.update_gate.set()
        await service.drain()
        return started_while_blocked

    started_while_blocked = asyncio.run(scenario())

    assert started_while_blocked == ["a", "b"]
    assert store.updates_started.count("a") == 2
    assert [state.repetitions for card_id, state in store.updates if card_id == "a"] == [1, 2]
    assert store.cards["a"].repetitions == 2
    assert store.cards["a"].interval_days == 6
    assert service._card_locks == {}
