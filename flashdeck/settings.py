import os
import json
import logging
from typing import Optional
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

class StudySettings(BaseModel):
    cards_per_session: int = Field(default=20, ge=1)
    show_progress_bar: bool = True
    enable_spaced_repetition: bool = False
    auto_flip: bool = False
    auto_flip_delay: int = Field(default=5, ge=0)  # seconds
    language_similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    exam_time_limit_minutes: int = Field(default=30, ge=1)
    passing_score: int = Field(default=70, ge=0, le=100)


def load_settings(path: str) -> StudySettings:
    """Reads settings from JSON, writing the defaults if the file doesn't exist yet."""
    if not os.path.exists(path):
        settings = StudySettings()
        save_settings(path, settings)
        return settings

    try:
        with open(path, encoding='utf-8') as f:
            return StudySettings.model_validate(json.load(f))
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Error reading settings from {path}: {e}")
        return StudySettings()


def save_settings(path: str, settings: StudySettings):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(settings.model_dump(), f, indent=2)


def reset_settings(path: str) -> StudySettings:
    settings = StudySettings()
    save_settings(path, settings)
    return settings


class StudySettingsUpdate(BaseModel):
    """Partial update, fields left out keep their current value."""
    cards_per_session: Optional[int] = Field(default=None, ge=1)
    show_progress_bar: Optional[bool] = None
    enable_spaced_repetition: Optional[bool] = None
    auto_flip: Optional[bool] = None
    auto_flip_delay: Optional[int] = Field(default=None, ge=0)
    language_similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    exam_time_limit_minutes: Optional[int] = Field(default=None, ge=1)
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)

    def apply_to(self, settings: StudySettings) -> StudySettings:
        return settings.model_copy(update=self.model_dump(exclude_none=True))
