from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from .services import FlashcardService, NoActiveSession
from .models import Card, CardInput, CardProgress, ReviewRequest, AnswerRequest, StudyRequest, SessionSummary
from .scheduler import get_next_review_text, RATING_DESCRIPTIONS
from .settings import StudySettings, StudySettingsUpdate
from typing import List, Dict
import logging
import os

# Singleton Service
service = FlashcardService(
    file_path=os.environ.get("FLASHDECK_DATA", "flashcards.csv"),
    settings_path=os.environ.get("FLASHDECK_SETTINGS", "settings.json"),
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    if not service.load_data():
        logging.warning("Could not load deck on startup, starting with an empty one.")
    yield

app = FastAPI(title="Flashdeck API", lifespan=lifespan)

# CORS Setup
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _session_stats():
    return {"stats": service.session_stats, "finished": service.session_finished}


@app.get("/stats")
def get_stats():
    return service.get_stats()

@app.get("/ratings")
def get_ratings():
    return {int(rating): text for rating, text in RATING_DESCRIPTIONS.items()}

# --- Cards ---

@app.get("/cards", response_model=List[Card])
def list_cards():
    return service.list_cards()

@app.get("/cards/due", response_model=List[Card])
def due_cards():
    return service.get_due_cards()

@app.post("/cards", response_model=Card)
def add_card(card: CardInput):
    return service.add_card(card.front, card.back)

@app.get("/cards/{card_id}", response_model=Card)
def get_card(card_id: str):
    card = service.get_card(card_id)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return card

@app.put("/cards/{card_id}")
def update_card(card_id: str, card: CardInput):
    success = service.update_card(card_id, {"front": card.front, "back": card.back})
    if not success:
        raise HTTPException(status_code=404, detail="Card not found")
    return {"success": True}

@app.delete("/cards/{card_id}")
def delete_card(card_id: str):
    success = service.delete_card(card_id)
    if not success:
        raise HTTPException(status_code=404, detail="Card not found")
    return {"success": True}

@app.get("/cards/{card_id}/progress")
def get_progress(card_id: str):
    card = service.get_card(card_id)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    if card.progress is None:
        return {"progress": None, "next_review": "Due now"}
    return {"progress": card.progress, "next_review": get_next_review_text(card.progress)}

@app.put("/cards/{card_id}/progress")
def update_progress(card_id: str, progress: CardProgress):
    if not service.update_progress(card_id, progress):
        raise HTTPException(status_code=404, detail="Card not found")
    return {"success": True}

# --- Study sessions ---

@app.post("/study/start")
def start_study(request: StudyRequest):
    try:
        count = service.initialize_session(mode=request.mode, cards_per_session=request.cards_per_session)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"count": count, "mode": request.mode}

@app.get("/study/next", response_model=Dict)
def get_next_card():
    try:
        card = service.get_next_card()
    except NoActiveSession as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "card": card.model_dump(mode="json") if card else None,
        "finished": card is None,
        "stats": service.session_stats,
    }

@app.post("/study/review/{card_id}")
def review_card(card_id: str, request: ReviewRequest):
    try:
        progress = service.process_review(card_id, request.quality)
    except NoActiveSession as e:
        raise HTTPException(status_code=400, detail=str(e))
    if progress is None:
        raise HTTPException(status_code=404, detail="Card not found or not in queue")
    return {
        "success": True,
        "progress": progress,
        "next_review": get_next_review_text(progress),
        **_session_stats(),
    }

@app.post("/study/answer/{card_id}")
def answer_card(card_id: str, request: AnswerRequest):
    try:
        card = service.process_answer(card_id, correct=request.correct, similarity=request.similarity)
    except (NoActiveSession, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found or not the current card")
    return {
        "success": True,
        "correct": card.consecutive_correct_attempts > 0,
        "card": card,
        **_session_stats(),
    }

@app.get("/study/summary", response_model=SessionSummary)
def session_summary():
    try:
        return service.get_session_summary()
    except NoActiveSession as e:
        raise HTTPException(status_code=400, detail=str(e))

# --- Settings ---

@app.get("/settings", response_model=StudySettings)
def get_settings():
    return service.settings

@app.put("/settings", response_model=StudySettings)
def update_settings(update: StudySettingsUpdate):
    return service.update_settings(update.apply_to(service.settings))

@app.delete("/settings", response_model=StudySettings)
def reset_settings():
    return service.reset_settings()
