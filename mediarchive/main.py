import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .exceptions import StoreError
from .intake import build_record_from_payload
from .schemas import (
    ChronicDisease,
    ChronicDiseaseCreate,
    IndicatorPoint,
    IntakeRequest,
    MedicalRecord,
    MedicalRecordCreate,
    RecordType,
    ReminderUpdate,
    Statistics,
    TimeRange,
    User,
    UserCreate,
)
from .store import HealthStore, store

logger = logging.getLogger(__name__)


# ----------------------------
# Setup
# ----------------------------
@asynccontextmanager
async def lifespan(app):
    config.configure_logging()
    store.init()
    yield
    store.close()


app = FastAPI(title="MediArchive - Local Health Store", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
def store_error_handler(request, exc: StoreError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ----------------------------
# Dependency
# ----------------------------
def get_store() -> HealthStore:
    return store


# ----------------------------
# Health
# ----------------------------
@app.get("/health")
def health(db: HealthStore = Depends(get_store)):
    return {
        "status": "ok" if db.initialized else "starting",
        "time": datetime.now(timezone.utc).isoformat(),
    }


# ----------------------------
# Users
# ----------------------------
@app.get("/users", response_model=List[User])
def list_users(db: HealthStore = Depends(get_store)):
    return db.get_users()


@app.post("/users", response_model=User)
def add_user(user: UserCreate, db: HealthStore = Depends(get_store)):
    db.add_user(user)
    return user


@app.put("/users/{user_id}", response_model=User)
def update_user(user_id: str, user: UserCreate, db: HealthStore = Depends(get_store)):
    user = user.model_copy(update={"id": user_id})
    if not db.update_user(user):
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.delete("/users/{user_id}")
def delete_user(user_id: str, cascade: bool = False, db: HealthStore = Depends(get_store)):
    db.delete_user(user_id, cascade=cascade)
    return {"deleted": user_id, "cascade": cascade}


# ----------------------------
# Medical records
# ----------------------------
@app.get("/records", response_model=List[MedicalRecord])
def list_records(
    user_id: Optional[str] = None,
    record_type: Optional[RecordType] = Query(None, alias="type"),
    disease_id: Optional[str] = None,
    db: HealthStore = Depends(get_store),
):
    return db.get_medical_records(user_id, record_type, disease_id)


@app.post("/records", response_model=MedicalRecord)
def add_record(record: MedicalRecordCreate, db: HealthStore = Depends(get_store)):
    db.add_medical_record(record)
    return db.get_medical_record(record.id)


@app.post("/records/intake", response_model=MedicalRecord)
def intake_record(request: IntakeRequest, db: HealthStore = Depends(get_store)):
    record = build_record_from_payload(
        request.payload,
        request.user_id,
        image_uri=request.image_uri,
        disease_id=request.disease_id,
    )
    db.add_medical_record(record)
    return db.get_medical_record(record.id)


@app.get("/records/{record_id}", response_model=MedicalRecord)
def get_record(record_id: str, db: HealthStore = Depends(get_store)):
    record = db.get_medical_record(record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@app.delete("/records/{record_id}")
def delete_record(record_id: str, db: HealthStore = Depends(get_store)):
    db.delete_medical_record(record_id)
    return {"deleted": record_id}


# ----------------------------
# Chronic diseases & reminders
# ----------------------------
@app.get("/diseases", response_model=List[ChronicDisease])
def list_diseases(user_id: Optional[str] = None, db: HealthStore = Depends(get_store)):
    return db.get_chronic_diseases(user_id)


@app.post("/diseases", response_model=ChronicDisease)
def add_disease(disease: ChronicDiseaseCreate, db: HealthStore = Depends(get_store)):
    db.add_chronic_disease(disease)
    return disease


@app.delete("/diseases/{disease_id}")
def delete_disease(disease_id: str, db: HealthStore = Depends(get_store)):
    db.delete_chronic_disease(disease_id)
    return {"deleted": disease_id}


@app.get("/diseases/{disease_id}/records", response_model=List[MedicalRecord])
def list_disease_records(disease_id: str, db: HealthStore = Depends(get_store)):
    return db.get_medical_records_by_disease(disease_id)


@app.patch("/reminders/{reminder_id}")
def update_reminder(reminder_id: str, update: ReminderUpdate, db: HealthStore = Depends(get_store)):
    if not db.set_reminder_completed(reminder_id, update.is_completed):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"id": reminder_id, "isCompleted": update.is_completed}


# ----------------------------
# Statistics & trends
# ----------------------------
@app.get("/statistics", response_model=Statistics)
def statistics(user_id: Optional[str] = None, db: HealthStore = Depends(get_store)):
    return db.get_statistics(user_id)


@app.get("/indicators/{name}/history", response_model=List[IndicatorPoint])
def indicator_history(
    name: str,
    user_id: Optional[str] = None,
    time_range: TimeRange = Query("ALL", alias="range"),
    db: HealthStore = Depends(get_store),
):
    return db.get_indicator_history(name, user_id=user_id, time_range=time_range)


# ----------------------------
# Maintenance
# ----------------------------
@app.delete("/data")
def clear_data(confirm: bool = False, db: HealthStore = Depends(get_store)):
    if not confirm:
        raise HTTPException(status_code=400, detail="Pass confirm=true to delete all data")
    db.clear_all_data()
    return {"status": "cleared"}
