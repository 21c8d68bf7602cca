# Backend main entry point - REST collaborators consumed by the sync core
import logging
import os
from typing import Dict, Optional, Union

from fastapi import FastAPI, HTTPException, Path, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import allowed_origins, is_demo_mode
from errors import ValidationError
from logic import (
    DEMO_USER_ID,
    check_medication,
    create_mood_entry,
    get_baby_development,
    get_medication_checks,
    get_mood_entries,
    get_pregnancy_record,
    stage_update_with_development,
    update_pregnancy_stage,
)
from models import MOODS, PregnancyRecord, default_pregnancy_record
from seed import seed_data

logger = logging.getLogger(__name__)

# Initialize seed data
seed_data()

app = FastAPI(title="Pregnancy Stage Sync API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request models
class StageUpdateRequest(BaseModel):
    stageType: str
    stageValue: Union[str, int, float]
    language: str = "en"


class MoodEntryRequest(BaseModel):
    mood: str
    note: Optional[str] = None


class MedicationCheckRequest(BaseModel):
    medicationName: str = Field(min_length=1)


def _record_response(record: PregnancyRecord) -> Dict:
    """Server responses never carry the client-only provenance overlay"""
    data = record.to_dict()
    data.pop("provenance", None)
    return data


@app.get("/")
def read_root():
    return {"message": "Pregnancy Stage Sync API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/pregnancy")
def get_pregnancy():
    """Get the demo user's pregnancy record, or a week-1 default when none is set"""
    record = get_pregnancy_record(DEMO_USER_ID)
    if not record:
        return _record_response(default_pregnancy_record())
    return _record_response(record)


@app.post("/pregnancy/stage")
def update_stage(update: StageUpdateRequest):
    """Update the pregnancy stage"""
    try:
        record = update_pregnancy_stage(DEMO_USER_ID, update.stageType, str(update.stageValue))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _record_response(record)


@app.post("/stage-update-with-development")
def update_stage_with_development(update: StageUpdateRequest):
    """
    Combined stage update: returns the new record and the development snapshot
    for its week so clients can cache both in one step.
    """
    try:
        record, snapshot = stage_update_with_development(
            DEMO_USER_ID, update.stageType, str(update.stageValue), update.language
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "pregnancyData": _record_response(record),
        "babyDevelopment": snapshot.to_dict(),
    }


@app.get("/baby-development/{week}")
def baby_development(week: int = Path(ge=1, le=40), lang: str = Query("en")):
    """Development content for a week"""
    return get_baby_development(week, lang).to_dict()


@app.get("/mood")
def list_mood_entries():
    return [entry.to_dict() for entry in get_mood_entries(DEMO_USER_ID)]


@app.post("/mood")
def add_mood_entry(entry: MoodEntryRequest):
    """Log a mood for the current week"""
    if entry.mood not in MOODS:
        raise HTTPException(status_code=400, detail=f"mood must be one of {', '.join(MOODS)}")
    created = create_mood_entry(DEMO_USER_ID, entry.mood, entry.note or "")
    if not created:
        raise HTTPException(status_code=400, detail="Please set up your pregnancy stage first")
    return created.to_dict()


@app.get("/medication")
def list_medication_checks():
    return [check.to_dict() for check in get_medication_checks(DEMO_USER_ID)]


@app.post("/medication/check")
def medication_check(request: MedicationCheckRequest):
    """Check medication safety during pregnancy"""
    return check_medication(DEMO_USER_ID, request.medicationName).to_dict()


@app.post("/demo/reset")
def demo_reset():
    """
    Reset prototype to baseline. Only available when DEMO_MODE=true.
    """
    if not is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo reset not available")
    seed_data()
    logger.info("Demo state reset to baseline")
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
