import math
import logging
from datetime import datetime, timedelta
from typing import Optional

from .models import CardProgress, ConfidenceRating

logger = logging.getLogger(__name__)

MIN_EASE_FACTOR = 1.3

RATING_DESCRIPTIONS = {
    ConfidenceRating.BLACKOUT: "Complete blackout",
    ConfidenceRating.WRONG_REMEMBERED: "Incorrect response; the correct answer remembered",
    ConfidenceRating.WRONG_FAMILIAR: "Incorrect response; the correct answer seemed familiar",
    ConfidenceRating.CORRECT_HARD: "Correct response, but required significant effort to recall",
    ConfidenceRating.CORRECT_HESITANT: "Correct response, after some hesitation",
    ConfidenceRating.PERFECT: "Perfect response",
}


def default_progress(now: Optional[datetime] = None) -> CardProgress:
    """Progress record for a card that has never been reviewed."""
    now = now or datetime.now()
    return CardProgress(
        ease_factor=2.5,
        interval=0,
        repetitions=0,
        due_date=now,
        last_reviewed=now,
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_next_review(progress: CardProgress, rating: int, now: Optional[datetime] = None) -> CardProgress:
    """
    Implements the SuperMemo-2 (SM-2) algorithm.

    Args:
        progress (CardProgress): The card's current scheduling state.
        rating (int): The learner's confidence rating (0-5).
        now (datetime): Review time, defaults to the current time.

    Returns:
        CardProgress: A new progress record; the input is left untouched.
    """
    now = now or datetime.now()
    quality = int(rating)

    interval = progress.interval
    repetitions = progress.repetitions
    ease_factor = progress.ease_factor

    if quality < 3:
        repetitions = 0
        interval = 1
    else:
        if repetitions == 0:
            interval = 1
        elif repetitions == 1:
            interval = 6
        else:
            interval = _round_half_up(interval * ease_factor)
        repetitions += 1

    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), applied on failure too
    ease_factor = ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    ease_factor = max(MIN_EASE_FACTOR, ease_factor)

    logger.debug("SM-2 q=%s -> interval=%s reps=%s ef=%.2f", quality, interval, repetitions, ease_factor)

    return progress.model_copy(update={
        'ease_factor': ease_factor,
        'interval': interval,
        'repetitions': repetitions,
        'last_reviewed': now,
        'due_date': now + timedelta(days=interval),
    })


def is_card_due(progress: CardProgress, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now()
    return now >= progress.due_date


def get_next_review_text(progress: CardProgress, now: Optional[datetime] = None) -> str:
    """Human readable hint for when the card comes back ("Due now", "Tomorrow", "In N days")."""
    now = now or datetime.now()
    if progress.due_date <= now:
        return "Due now"

    diff_days = math.ceil((progress.due_date - now) / timedelta(days=1))
    if diff_days == 1:
        return "Tomorrow"
    return f"In {diff_days} days"


def get_rating_description(rating: int) -> str:
    try:
        return RATING_DESCRIPTIONS[ConfidenceRating(rating)]
    except ValueError:
        return ""
