from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from pathlib import Path

from study_tracker.database import engine, Base, SessionLocal
from study_tracker import models  # Import all models to register them with Base
from study_tracker.routes import goals, rewards, sessions, settings
from study_tracker.services.scheduler_service import start_scheduler, stop_scheduler
from study_tracker.services.reward_service import seed_default_rewards
from study_tracker.services.tip_service import seed_default_tips
from study_tracker.exceptions import (
    NotFoundException, InvalidStateException, ConflictException, ValidationException
)

from study_tracker.constants import DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, CORS_ALLOWED_ORIGINS

LOG_DIR = os.getenv("STUDY_TRACKER_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("STUDY_TRACKER_LOG_FILE", "app.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("study_tracker")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Study Tracker API",
    description="Goal progress, streaks and rewards for study habits",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(goals.router)
app.include_router(rewards.router)
app.include_router(sessions.router)
app.include_router(settings.router)


# Error mapping
@app.exception_handler(NotFoundException)
async def not_found_handler(request: Request, exc: NotFoundException):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStateException)
async def invalid_state_handler(request: Request, exc: InvalidStateException):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ConflictException)
async def conflict_handler(request: Request, exc: ConflictException):
    logger.warning(str(exc))
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ValidationException)
async def validation_handler(request: Request, exc: ValidationException):
    return JSONResponse(status_code=400, content={"detail": str(exc), "field": exc.field})


# Startup event
@app.on_event("startup")
async def startup_event():
    logger.info(f"Study Tracker API started. Logging to: {log_path}")
    db = SessionLocal()
    try:
        seed_default_rewards(db)
        seed_default_tips(db)
    finally:
        db.close()
    start_scheduler()


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Study Tracker API")
    stop_scheduler()


# Health check
@app.get("/")
async def root():
    return {"message": "Study Tracker API", "status": "active"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("study_tracker.main:app", host="0.0.0.0", port=8000, reload=False)
