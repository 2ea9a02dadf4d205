import random
from collections import Counter

import pytest

from flashdeck.models import StudyCard
from flashdeck.selector import (
    SESSION_COMPLETE,
    SessionCardSelector,
    SessionState,
    recency_window_size,
)


def make_cards(n):
    return [StudyCard(id=f"c{i}", front=f"front {i}", back=f"back {i}") for i in range(n)]


def test_empty_working_set_completes():
    selector = SessionCardSelector([], rng=random.Random(1))
    assert selector.state == SessionState.NOT_STARTED
    assert selector.select_next() is SESSION_COMPLETE
    assert selector.is_complete
    # Terminal
    assert selector.select_next() is SESSION_COMPLETE


def test_single_card_is_reselected():
    selector = SessionCardSelector(make_cards(1), target=5, rng=random.Random(1))
    assert selector.select_next() == "c0"
    assert selector.state == SessionState.IN_PROGRESS
    assert selector.select_next("c0") == "c0"


def test_never_repeats_previous_card():
    rng = random.Random(42)
    selector = SessionCardSelector(make_cards(3), target=10_000, rng=rng)
    previous = None
    for _ in range(1000):
        pick = selector.select_next(previous)
        assert pick != previous
        selector.record_answer(pick, rng.random() < 0.6)
        previous = pick


def test_two_card_session_alternates():
    selector = SessionCardSelector(make_cards(2), target=100, rng=random.Random(3))
    picks = [selector.select_next()]
    for _ in range(20):
        picks.append(selector.select_next(picks[-1]))
    assert all(a != b for a, b in zip(picks, picks[1:]))


@pytest.mark.parametrize("n,deck_size", [(1, 1), (5, 5), (10, 25)])
def test_session_terminates_after_target(n, deck_size):
    selector = SessionCardSelector(make_cards(deck_size), target=n, rng=random.Random(n))
    picks = 0
    previous = None
    while True:
        pick = selector.select_next(previous)
        if pick is SESSION_COMPLETE:
            break
        picks += 1
        selector.record_answer(pick, picks % 2 == 0)
        previous = pick
    assert picks == n
    assert selector.questions_answered == n
    assert selector.is_complete


def test_missed_card_is_picked_more_often():
    cards = make_cards(2)
    cards[0].incorrect_attempts = 5
    selector = SessionCardSelector(cards, target=100_000, rng=random.Random(2024))
    counts = Counter(selector.select_next() for _ in range(10_000))
    # Weights 30 vs 12
    assert counts["c0"] > counts["c1"]
    assert counts["c0"] / 10_000 == pytest.approx(30 / 42, abs=0.03)


def test_weights():
    cards = make_cards(4)
    selector = SessionCardSelector(cards, rng=random.Random(0))
    assert selector.card_weight(cards[0]) == 12

    cards[1].incorrect_attempts = 2
    assert selector.card_weight(cards[1]) == 19  # (10 + 6) * 1.2

    cards[1].consecutive_correct_attempts = 2
    assert selector.card_weight(cards[1]) == 12

    selector.select_next("c2")
    assert selector.recent_ids == ["c2"]
    assert selector.card_weight(cards[2]) == 5

    selector.select_next("c3")
    assert selector.recent_ids == ["c3", "c2"]
    assert selector.card_weight(cards[3]) == 2
    assert selector.card_weight(cards[2]) == 5


def test_recency_window_bound():
    assert recency_window_size(1) == 0
    assert recency_window_size(5) == 2
    assert recency_window_size(40) == 5

    selector = SessionCardSelector(make_cards(20), target=1000, rng=random.Random(5))
    for card_id in ["c1", "c2", "c3", "c1", "c4", "c5", "c6", "c7"]:
        selector.select_next(card_id)
    assert selector.recent_ids == ["c7", "c6", "c5", "c4", "c1"]
    assert len(set(selector.recent_ids)) == len(selector.recent_ids)


def test_seeded_selection_is_reproducible():
    def run(seed):
        selector = SessionCardSelector(make_cards(6), target=50, rng=random.Random(seed))
        previous, picks = None, []
        for _ in range(30):
            previous = selector.select_next(previous)
            picks.append(previous)
        return picks

    assert run(11) == run(11)


def test_record_answer_counters_and_streaks():
    selector = SessionCardSelector(make_cards(3), target=10, rng=random.Random(0))
    selector.record_answer("c0", False)
    selector.record_answer("c0", True)
    card = selector.record_answer("c0", True)
    assert card.incorrect_attempts == 1
    assert card.consecutive_correct_attempts == 2

    selector.record_answer("c1", True)
    selector.record_answer("c1", False)
    assert selector.get_card("c1").consecutive_correct_attempts == 0
    assert selector.longest_streak == 3
    assert selector.current_streak == 0
    assert selector.questions_answered == 5
    assert selector.correct_answers == 3

    with pytest.raises(KeyError):
        selector.record_answer("missing", True)


def test_removed_cards_end_the_session():
    selector = SessionCardSelector(make_cards(2), target=10, rng=random.Random(0))
    first = selector.select_next()
    assert selector.remove_card(first)
    assert not selector.remove_card(first)
    assert selector.select_next(first) != first
    selector.remove_card(selector.current_card_id)
    assert selector.select_next() is SESSION_COMPLETE


def test_summary_lists_hardest_cards():
    selector = SessionCardSelector(make_cards(5), target=20, rng=random.Random(0))
    for card_id, misses in [("c0", 1), ("c1", 4), ("c2", 2), ("c3", 3)]:
        for _ in range(misses):
            selector.record_answer(card_id, False)
    selector.record_answer("c4", True)

    summary = selector.summary()
    assert summary.total_answered == 11
    assert summary.correct_answers == 1
    assert summary.accuracy == pytest.approx(9.1)
    assert [c.id for c in summary.hardest_cards] == ["c1", "c3", "c2"]


def test_removed_card_stays_out_of_recency_window():
    selector = SessionCardSelector(make_cards(6), target=100, rng=random.Random(9))
    selector.select_next("c1")
    selector.remove_card("c2")
    selector.select_next("c2")
    assert selector.recent_ids == ["c1"]
    assert selector.card_weight(selector.get_card("c1")) == 5
