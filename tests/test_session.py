from datetime import timedelta

import pytest

from memoclusters.errors import InvalidGradeError, SessionStateError
from memoclusters.session import Face, ReviewSession, SessionStatus, is_mastered, order_due_cards
from tests.store_fakes import NOW, make_card


def _session(*cards, batch_size=20):
    return ReviewSession.start("c1", cards, batch_size=batch_size)


def test_initial_queue_is_most_overdue_first_and_capped():
    cards = [make_card(f"k{i:02d}", days_overdue=i) for i in range(25)]

    session = _session(*cards)

    assert session.status is SessionStatus.presenting
    assert session.total == 20
    assert session.initial_count == 20
    assert [c.id for c in session.queue][:3] == ["k24", "k23", "k22"]
    assert session.current_card.id == "k24"
    assert session.position == 1


def test_order_due_cards_breaks_ties_by_id():
    cards = [make_card("b"), make_card("a"), make_card("c", days_overdue=1)]

    assert [c.id for c in order_due_cards(cards)] == ["c", "a", "b"]


def test_order_due_cards_rejects_non_positive_batch():
    with pytest.raises(ValueError):
        order_due_cards([], batch_size=0)


def test_empty_due_set_goes_straight_to_empty():
    session = ReviewSession.loading("c1")
    assert session.status is SessionStatus.loading

    session.load([])

    assert session.status is SessionStatus.empty
    assert session.current_card is None
    assert session.position == 0
    assert session.is_finished
    with pytest.raises(SessionStateError):
        session.grade(4, now=NOW)


def test_grading_while_loading_is_rejected():
    with pytest.raises(SessionStateError):
        ReviewSession.loading("c1").grade(4, now=NOW)


def test_load_twice_is_rejected():
    session = _session(make_card("a"))

    with pytest.raises(SessionStateError):
        session.load([make_card("b")])


def test_all_good_grades_complete_without_requeue():
    cards = [make_card(f"k{i}", days_overdue=i) for i in range(5)]
    session = _session(*cards)

    outcomes = [session.grade(4, now=NOW) for _ in range(5)]

    assert session.status is SessionStatus.complete
    assert session.completed_count == 5
    assert session.total == 5
    assert not any(o.requeued for o in outcomes)
    assert outcomes[-1].status is SessionStatus.complete


def test_hard_grades_requeue_until_good():
    session = _session(make_card("a"))
    hard_presentations = 3

    for _ in range(hard_presentations):
        outcome = session.grade(3, now=NOW)
        assert outcome.requeued
        assert session.status is SessionStatus.presenting
    final = session.grade(4, now=NOW)

    assert not final.requeued
    assert session.total == 1 + hard_presentations
    assert session.completed_count == 1
    assert session.presented_count == 4
    assert session.status is SessionStatus.complete


def test_requeued_card_is_appended_behind_original_cards_in_fifo_order():
    session = _session(make_card("a", days_overdue=3), make_card("b", days_overdue=2), make_card("c", days_overdue=1))

    session.grade(0, now=NOW)  # a -> requeued
    session.grade(3, now=NOW)  # b -> requeued

    assert [c.id for c in session.queue] == ["a", "b", "c", "a", "b"]
    assert session.current_card.id == "c"
    session.grade(5, now=NOW)
    assert session.current_card.id == "a"
    session.grade(4, now=NOW)
    assert session.current_card.id == "b"


def test_requeued_entry_carries_updated_schedule():
    session = _session(make_card("a"))

    first = session.grade(3, now=NOW)
    assert first.state.repetitions == 1
    assert first.state.interval_days == 1

    later = NOW + timedelta(minutes=5)
    second = session.grade(4, now=later)

    assert second.state.repetitions == 2
    assert second.state.interval_days == 6
    assert second.card.due_at == later + timedelta(days=6)
    assert second.card.last_reviewed_at == later


def test_flip_toggles_face_and_new_presentation_starts_front_up():
    session = _session(make_card("a"), make_card("b"))

    assert session.face is Face.front
    assert session.flip() is Face.back
    assert session.flip() is Face.front
    session.flip()
    session.grade(4, now=NOW)

    assert session.face is Face.front


def test_flip_after_completion_is_rejected():
    session = _session(make_card("a"))
    session.grade(5, now=NOW)

    with pytest.raises(SessionStateError):
        session.flip()


def test_invalid_grade_does_not_advance():
    session = _session(make_card("a"), make_card("b"))

    with pytest.raises(InvalidGradeError):
        session.grade(9, now=NOW)

    assert session.cursor == 0
    assert session.total == 2
    assert session.presented_count == 0


def test_progress_counters():
    session = _session(make_card("a", days_overdue=1), make_card("b"))

    session.grade(0, now=NOW)

    assert session.position == 2
    assert session.total == 3
    assert session.remaining == 2
    assert session.completed_count == 0


def test_is_mastered_threshold_is_stricter_than_scheduling_pass():
    assert [is_mastered(g) for g in range(6)] == [False, False, False, False, True, True]


def test_each_presentation_schedules_from_the_previous_grading():
    session = _session(make_card("a"))

    session.grade(3, now=NOW)
    session.grade(3, now=NOW)
    final = session.grade(4, now=NOW)

    # 1 → 6 → round(6 * 2.22) = 13（セッション開始時の状態からやり直さない）
    assert final.state.repetitions == 3
    assert final.state.interval_days == 13
    assert final.state.ease_factor == pytest.approx(2.22)
