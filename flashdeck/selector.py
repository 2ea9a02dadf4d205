import math
import random
import logging
from enum import Enum
from typing import List, Optional, Union

from .models import StudyCard, SessionSummary

logger = logging.getLogger(__name__)

BASE_DESIRABILITY = 10.0
INCORRECT_WEIGHT = 3
MASTERY_STREAK = 2
FRESH_BONUS = 1.2
MAX_RECENT = 5


class SessionState(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class _SessionComplete:
    def __repr__(self):
        return "SESSION_COMPLETE"

    def __bool__(self):
        return False


# Returned by select_next() when there is nothing left to show
SESSION_COMPLETE = _SessionComplete()


def recency_window_size(session_size: int) -> int:
    return min(MAX_RECENT, session_size // 2)


class SessionCardSelector:
    """
    Picks the next card of a language/exam session.

    Cards the learner keeps missing come back more often, cards shown in the
    last few turns are pushed back, and the card that was just shown is never
    repeated while another one is available. One instance per session.
    """

    def __init__(self, cards: List[StudyCard], target: Optional[int] = None, rng: Optional[random.Random] = None):
        self.cards = list(cards)
        self.target = target if target is not None else len(self.cards)
        self.rng = rng or random.Random()
        self.window_size = recency_window_size(len(self.cards))
        self.recent_ids: List[str] = []
        self.current_card_id: Optional[str] = None
        self.questions_answered = 0
        self.correct_answers = 0
        self.current_streak = 0
        self.longest_streak = 0
        self.state = SessionState.NOT_STARTED

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.COMPLETE

    def get_card(self, card_id: str) -> Optional[StudyCard]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def _remember(self, card_id: str):
        if card_id in self.recent_ids:
            self.recent_ids.remove(card_id)
        self.recent_ids.insert(0, card_id)
        del self.recent_ids[self.window_size:]

    def card_weight(self, card: StudyCard) -> int:
        desirability = BASE_DESIRABILITY
        # Misses stop counting once the card has been answered right twice in a row
        if card.consecutive_correct_attempts < MASTERY_STREAK:
            desirability += card.incorrect_attempts * INCORRECT_WEIGHT

        if card.id in self.recent_ids:
            position = self.recent_ids.index(card.id)
            desirability /= max(1, (len(self.recent_ids) - position) * 2)
        else:
            desirability *= FRESH_BONUS

        return max(1, math.floor(desirability))

    def select_next(self, previous_card_id: Optional[str] = None) -> Union[str, _SessionComplete]:
        if self.is_complete:
            return SESSION_COMPLETE

        if not self.cards:
            logger.debug("Working set empty, session complete")
            self.state = SessionState.COMPLETE
            self.current_card_id = None
            return SESSION_COMPLETE

        # Cards dropped from the working set stay out of the recency window
        if previous_card_id is not None and self.get_card(previous_card_id) is not None:
            self._remember(previous_card_id)

        if len(self.cards) == 1:
            eligible = list(self.cards)
        else:
            eligible = [c for c in self.cards if c.id != previous_card_id]

        if not eligible:
            eligible = self.cards[:1]

        pool: List[str] = []
        for card in eligible:
            pool.extend([card.id] * self.card_weight(card))

        index = self.rng.randrange(len(pool))
        if pool[index] == previous_card_id and len(pool) > 1:
            index = (index + 1) % len(pool)

        self.current_card_id = pool[index]
        self.state = SessionState.IN_PROGRESS
        return self.current_card_id

    def record_answer(self, card_id: str, correct: bool) -> StudyCard:
        """Updates the card's counters and the session tally after a graded answer."""
        card = self.get_card(card_id)
        if card is None:
            raise KeyError(card_id)

        if correct:
            card.consecutive_correct_attempts += 1
            self.correct_answers += 1
            self.current_streak += 1
            self.longest_streak = max(self.longest_streak, self.current_streak)
        else:
            card.incorrect_attempts += 1
            card.consecutive_correct_attempts = 0
            self.current_streak = 0

        self.questions_answered += 1
        if self.questions_answered >= self.target:
            logger.info(f"Session complete after {self.questions_answered} answers")
            self.state = SessionState.COMPLETE
        return card

    def remove_card(self, card_id: str) -> bool:
        card = self.get_card(card_id)
        if card is None:
            return False
        self.cards.remove(card)
        if card_id in self.recent_ids:
            self.recent_ids.remove(card_id)
        if self.current_card_id == card_id:
            self.current_card_id = None
        return True

    def finish(self):
        self.state = SessionState.COMPLETE

    def hardest_cards(self, limit: int = 3) -> List[StudyCard]:
        missed = [c for c in self.cards if c.incorrect_attempts > 0]
        return sorted(missed, key=lambda c: c.incorrect_attempts, reverse=True)[:limit]

    def summary(self) -> SessionSummary:
        total = self.questions_answered
        accuracy = (self.correct_answers / total) * 100 if total else 0.0
        return SessionSummary(
            total_answered=total,
            correct_answers=self.correct_answers,
            accuracy=round(accuracy, 1),
            longest_streak=self.longest_streak,
            hardest_cards=[c.model_copy() for c in self.hardest_cards()],
        )
