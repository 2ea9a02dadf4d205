import pandas as pd
import uuid
import random
import logging
from datetime import datetime, timedelta
from typing import List, Optional
import os

from .models import Card, CardProgress, StudyCard, SessionSummary, ConfidenceRating
from .scheduler import calculate_next_review, default_progress, is_card_due, get_next_review_text
from .selector import SessionCardSelector, SESSION_COMPLETE
from .settings import StudySettings, load_settings, save_settings, reset_settings

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

STUDY_MODES = ("review", "language", "exam")

# Rating fed to the scheduler for answers graded as right / wrong
CORRECT_RATING = ConfidenceRating.CORRECT_HESITANT
INCORRECT_RATING = ConfidenceRating.WRONG_REMEMBERED

PROGRESS_COLUMNS = ['ease_factor', 'interval', 'repetitions', 'due_date', 'last_reviewed']


class NoActiveSession(RuntimeError):
    pass


class FlashcardService:
    def __init__(self, file_path: str = "flashcards.csv", settings_path: str = "settings.json",
                 rng: Optional[random.Random] = None):
        self.file_path = file_path
        self.settings_path = settings_path
        self.rng = rng or random.Random()
        self.df = None
        self.settings = load_settings(settings_path)
        self._reset_session()

    def _reset_session(self):
        self.current_study_mode = None
        self.study_queue = []  # Card ids, review mode
        self.selector: Optional[SessionCardSelector] = None
        self.session_stats = {"reviewed": 0, "total": 0, "correct": 0, "streak": 0, "longest_streak": 0}
        self.exam_deadline: Optional[datetime] = None
        self._previous_card_id = None
        self._answered = True

    # --- Storage ---

    def load_data(self) -> bool:
        """Loads the deck from CSV."""
        if not os.path.exists(self.file_path):
            logging.error(f"File not found: {self.file_path}")
            return False

        try:
            df = self._ensure_columns(pd.read_csv(self.file_path, encoding='utf-8-sig'))
        except (OSError, ValueError, pd.errors.ParserError) as e:
            logging.error(f"Error loading CSV: {e}")
            return False
        self.df = df
        return True

    def _ensure_loaded(self):
        if self.df is None and not self.load_data():
            self.df = self._ensure_columns(pd.DataFrame(columns=['id', 'front', 'back', 'removed'] + PROGRESS_COLUMNS))

    @staticmethod
    def _normalize_timestamp(value) -> str:
        """ISO string for a parseable timestamp, '' (never reviewed) otherwise."""
        if value == '':
            return ''
        ts = pd.to_datetime(value, errors='coerce')
        if pd.isna(ts):
            return ''
        dt = ts.to_pydatetime()
        if dt.tzinfo is not None:
            dt = dt.astimezone().replace(tzinfo=None)
        return dt.isoformat()

    def _ensure_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """Returns a copy of the frame with the required columns, defaults and types."""
        df = df.copy()
        required_columns = {
            'id': lambda: str(uuid.uuid4()),
            'front': '',
            'back': '',
            'removed': 0,
            'ease_factor': 2.5,
            'interval': 0,
            'repetitions': 0,
            'due_date': '',
            'last_reviewed': '',
        }

        # Handle legacy column names if any
        column_mappings = {'question': 'front', 'answer': 'back'}
        for old, new in column_mappings.items():
            if old in df.columns and new not in df.columns:
                df[new] = df[old]

        for col, default in required_columns.items():
            if col not in df.columns:
                if callable(default):
                    df[col] = [default() for _ in range(len(df))]
                else:
                    df[col] = default

        mask = df['id'].isnull() | (df['id'] == '')
        if mask.any():
            df.loc[mask, 'id'] = [str(uuid.uuid4()) for _ in range(mask.sum())]

        df = df.fillna({col: v for col, v in required_columns.items() if not callable(v)})
        for col in ('id', 'front', 'back', 'due_date', 'last_reviewed'):
            df[col] = df[col].astype(str).replace('nan', '')

        # Unparseable dates mean the card is treated as never reviewed
        for col in ('due_date', 'last_reviewed'):
            df[col] = df[col].map(self._normalize_timestamp)

        for col in ('removed', 'interval', 'repetitions', 'ease_factor'):
            df[col] = pd.to_numeric(df[col], errors='coerce').fillna(required_columns[col])
        for col in ('removed', 'interval', 'repetitions'):
            df[col] = df[col].astype(int)
        df['ease_factor'] = df['ease_factor'].astype(float)
        return df

    def save_data(self):
        """Saves DataFrame to CSV."""
        if self.df is not None:
            self.df.to_csv(self.file_path, index=False, encoding='utf-8-sig')

    def _find_index(self, card_id: str):
        matches = self.df.index[self.df['id'] == card_id].tolist()
        if not matches:
            return None
        idx = matches[0]
        if self.df.at[idx, 'removed'] == 1:
            return None
        return idx

    def _active_df(self) -> pd.DataFrame:
        return self.df[self.df['removed'] != 1]

    def _row_progress(self, row) -> Optional[CardProgress]:
        if not row['last_reviewed']:
            return None
        last_reviewed = datetime.fromisoformat(row['last_reviewed'])
        due_date = datetime.fromisoformat(row['due_date']) if row['due_date'] else last_reviewed
        return CardProgress(
            ease_factor=float(row['ease_factor']),
            interval=int(row['interval']),
            repetitions=int(row['repetitions']),
            due_date=due_date,
            last_reviewed=last_reviewed,
        )

    def _row_card(self, row) -> Card:
        return Card(
            id=row['id'],
            front=row['front'],
            back=row['back'],
            progress=self._row_progress(row),
            removed=int(row['removed']),
        )

    def _write_progress(self, idx, progress: CardProgress):
        self.df.at[idx, 'ease_factor'] = progress.ease_factor
        self.df.at[idx, 'interval'] = progress.interval
        self.df.at[idx, 'repetitions'] = progress.repetitions
        # Use simple string for isoformat to be CSV friendly
        self.df.at[idx, 'due_date'] = progress.due_date.isoformat()
        self.df.at[idx, 'last_reviewed'] = progress.last_reviewed.isoformat()

    # --- Cards ---

    def list_cards(self) -> List[Card]:
        self._ensure_loaded()
        return [self._row_card(row) for _, row in self._active_df().iterrows()]

    def get_card(self, card_id: str) -> Optional[Card]:
        self._ensure_loaded()
        idx = self._find_index(card_id)
        if idx is None:
            return None
        return self._row_card(self.df.loc[idx])

    def add_card(self, front: str, back: str) -> Card:
        self._ensure_loaded()
        new_card = {
            'id': str(uuid.uuid4()),
            'front': front,
            'back': back,
            'removed': 0,
            'ease_factor': 2.5, 'interval': 0, 'repetitions': 0, 'due_date': '', 'last_reviewed': '',
        }
        self.df = pd.concat([self.df, pd.DataFrame([new_card])], ignore_index=True)
        self.save_data()
        return Card(id=new_card['id'], front=front, back=back)

    def update_card(self, card_id: str, updates: dict) -> bool:
        self._ensure_loaded()
        idx = self._find_index(card_id)
        if idx is None:
            return False

        for k, v in updates.items():
            if k in ('front', 'back'):
                self.df.at[idx, k] = v
        self.save_data()

        if self.selector is not None:
            study_card = self.selector.get_card(card_id)
            if study_card is not None:
                study_card.front = self.df.at[idx, 'front']
                study_card.back = self.df.at[idx, 'back']
        return True

    def delete_card(self, card_id: str) -> bool:
        # Soft delete
        self._ensure_loaded()
        idx = self._find_index(card_id)
        if idx is None:
            return False
        self.df.at[idx, 'removed'] = 1
        self.save_data()

        if card_id in self.study_queue:
            self.study_queue.remove(card_id)
        if self.selector is not None:
            was_current = self.selector.current_card_id == card_id
            if self.selector.remove_card(card_id):
                if self._previous_card_id == card_id:
                    self._previous_card_id = None
                # The card on screen is gone, draw a new one on the next request
                if was_current:
                    self._answered = True
        return True

    # --- Progress ---

    def get_progress(self, card_id: str) -> Optional[CardProgress]:
        card = self.get_card(card_id)
        return card.progress if card else None

    def update_progress(self, card_id: str, progress: CardProgress) -> bool:
        self._ensure_loaded()
        idx = self._find_index(card_id)
        if idx is None:
            return False
        self._write_progress(idx, progress)
        self.save_data()
        return True

    def _apply_rating(self, card_id: str, rating: int) -> Optional[CardProgress]:
        idx = self._find_index(card_id)
        if idx is None:
            return None
        current = self._row_progress(self.df.loc[idx]) or default_progress()
        updated = calculate_next_review(current, rating)
        self._write_progress(idx, updated)
        self.save_data()
        return updated

    def get_due_cards(self, now: Optional[datetime] = None) -> List[Card]:
        self._ensure_loaded()
        due = [c for c in self.list_cards() if c.progress is None or is_card_due(c.progress, now)]
        # Never-reviewed cards first, then the longest overdue
        return sorted(due, key=lambda c: c.progress.due_date if c.progress else datetime.min)

    # --- Sessions ---

    def initialize_session(self, mode: str, cards_per_session: Optional[int] = None) -> int:
        """Prepares a study session and returns the number of cards in it."""
        if mode not in STUDY_MODES:
            raise ValueError(f"Unknown study mode: {mode}")

        self._ensure_loaded()
        self._reset_session()
        limit = cards_per_session or self.settings.cards_per_session

        if mode == "review":
            if self.settings.enable_spaced_repetition:
                cards = self.get_due_cards()
            else:
                cards = self.list_cards()
            self.study_queue = [c.id for c in cards[:limit]]
            self.session_stats["total"] = len(self.study_queue)
            count = len(self.study_queue)
        else:
            cards = [StudyCard(id=c.id, front=c.front, back=c.back) for c in self.list_cards()[:limit]]
            self.rng.shuffle(cards)
            self.selector = SessionCardSelector(cards, target=limit, rng=self.rng)
            self.session_stats["total"] = limit if cards else 0
            count = len(cards)
            if mode == "exam":
                self.exam_deadline = datetime.now() + timedelta(minutes=self.settings.exam_time_limit_minutes)

        self.current_study_mode = mode
        logging.info(f"Started {mode} session with {count} cards")
        return count

    def _require_session(self):
        if self.current_study_mode is None:
            raise NoActiveSession("No study session in progress")

    def _check_deadline(self):
        if self.exam_deadline is None or self.selector.is_complete:
            return
        if datetime.now() >= self.exam_deadline:
            logging.warning("Exam time limit reached, submitting session")
            self.selector.finish()

    @property
    def session_finished(self) -> bool:
        if self.current_study_mode is None:
            return False
        if self.selector is not None:
            self._check_deadline()
            return self.selector.is_complete
        return not self.study_queue

    def get_next_card(self):
        """Returns the card to show next, or None once the session is over."""
        self._require_session()

        if self.current_study_mode == "review":
            if not self.study_queue:
                return None
            # Get head of queue but don't pop yet (wait for review)
            return self.get_card(self.study_queue[0])

        self._check_deadline()
        if self.selector.is_complete:
            return None
        if self._answered or self.selector.current_card_id is None:
            pick = self.selector.select_next(self._previous_card_id)
            if pick is SESSION_COMPLETE:
                return None
            self._answered = False
        return self.selector.get_card(self.selector.current_card_id)

    def process_review(self, card_id: str, quality: int) -> Optional[CardProgress]:
        """Grades the head of a review session with a confidence rating."""
        self._require_session()
        if self.current_study_mode != "review" or card_id not in self.study_queue:
            return None

        updated = self._apply_rating(card_id, quality)
        if updated is None:
            return None

        self.study_queue.remove(card_id)
        stats = self.session_stats
        stats["reviewed"] += 1
        if quality >= 3:
            stats["correct"] += 1
            stats["streak"] += 1
            stats["longest_streak"] = max(stats["longest_streak"], stats["streak"])
        else:
            stats["streak"] = 0
        logging.info(f"Card {card_id} scheduled: {get_next_review_text(updated)}")
        return updated

    def grade(self, correct: Optional[bool] = None, similarity: Optional[float] = None) -> bool:
        if correct is not None:
            return correct
        if similarity is None:
            raise ValueError("Either correct or similarity is required")
        return similarity >= self.settings.language_similarity_threshold

    def process_answer(self, card_id: str, correct: Optional[bool] = None,
                       similarity: Optional[float] = None) -> Optional[StudyCard]:
        """Records a graded answer for the card currently shown in a language/exam session."""
        self._require_session()
        if self.selector is None:
            return None
        self._check_deadline()
        if self.selector.is_complete or self._answered or card_id != self.selector.current_card_id:
            return None

        is_correct = self.grade(correct, similarity)
        card = self.selector.record_answer(card_id, is_correct)
        self._previous_card_id = card_id
        self._answered = True

        self._apply_rating(card_id, CORRECT_RATING if is_correct else INCORRECT_RATING)
        self.session_stats["reviewed"] = self.selector.questions_answered
        self.session_stats["correct"] = self.selector.correct_answers
        self.session_stats["streak"] = self.selector.current_streak
        self.session_stats["longest_streak"] = self.selector.longest_streak
        return card

    def get_session_summary(self) -> SessionSummary:
        self._require_session()
        if self.selector is not None:
            summary = self.selector.summary()
        else:
            stats = self.session_stats
            reviewed = stats["reviewed"]
            summary = SessionSummary(
                total_answered=reviewed,
                correct_answers=stats["correct"],
                accuracy=round(stats["correct"] / reviewed * 100, 1) if reviewed else 0.0,
                longest_streak=stats["longest_streak"],
            )
        if self.current_study_mode == "exam":
            summary.passed = summary.accuracy >= self.settings.passing_score
        return summary

    # --- Stats & settings ---

    def get_stats(self):
        self._ensure_loaded()
        cards = self.list_cards()
        total = len(cards)
        with_progress = sum(1 for c in cards if c.progress is not None)
        due_count = sum(1 for c in cards if c.progress is None or is_card_due(c.progress))

        return {
            "total_cards": total,
            "cards_with_progress": with_progress,
            "due_cards": due_count,
            "percent_in_system": round(with_progress / total * 100) if total else 0,
        }

    def update_settings(self, settings: StudySettings) -> StudySettings:
        save_settings(self.settings_path, settings)
        self.settings = settings
        return settings

    def reset_settings(self) -> StudySettings:
        self.settings = reset_settings(self.settings_path)
        return self.settings
