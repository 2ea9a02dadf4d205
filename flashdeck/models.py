from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from enum import IntEnum

class ConfidenceRating(IntEnum):
    BLACKOUT = 0
    WRONG_REMEMBERED = 1
    WRONG_FAMILIAR = 2
    CORRECT_HARD = 3
    CORRECT_HESITANT = 4
    PERFECT = 5

class CardProgress(BaseModel):
    ease_factor: float = 2.5
    interval: int = 0
    repetitions: int = 0
    due_date: datetime
    last_reviewed: datetime

    @field_validator("due_date", "last_reviewed")
    @classmethod
    def _naive_local(cls, value: datetime) -> datetime:
        # Schedules are compared against datetime.now(), which is naive local time
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

class Card(BaseModel):
    id: str
    front: str
    back: str
    progress: Optional[CardProgress] = None
    removed: int = 0

class CardInput(BaseModel):
    front: str
    back: str

class StudyCard(BaseModel):
    id: str
    front: str
    back: str
    incorrect_attempts: int = 0
    consecutive_correct_attempts: int = 0

class ReviewRequest(BaseModel):
    quality: ConfidenceRating

class AnswerRequest(BaseModel):
    correct: Optional[bool] = None
    similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)

class StudyRequest(BaseModel):
    mode: str  # "review", "language", "exam"
    cards_per_session: Optional[int] = Field(default=None, ge=1)

class SessionSummary(BaseModel):
    total_answered: int
    correct_answers: int
    accuracy: float
    longest_streak: int
    hardest_cards: List[StudyCard] = []
    passed: Optional[bool] = None
