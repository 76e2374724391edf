# race_notifier_service/app/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends
from google.cloud import firestore

from .utils.logging_config import setup_logging

setup_logging()

from .config import settings
from .firestore_client import get_firestore_client
from .firebase_admin_init import initialize_firebase_admin, is_firebase_admin_initialized
from .fcm_client import FcmPushTransport, IPushTransport
from .services.delivery_client import NotificationDeliveryClient
from .services.session_watcher import check_upcoming_sessions
from .services.standings_watcher import check_standings_changes
from .services.token_hygiene import clean_invalid_tokens

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Race Notifier Service starting up...")
    try:
        get_firestore_client()
        initialize_firebase_admin()
        logger.info("Firestore client and Firebase Admin SDK initialized.")
    except Exception as e:
        logger.critical(f"Failed to initialize clients on startup: {e}", exc_info=True)
    yield
    logger.info("Race Notifier Service shutting down...")


app = FastAPI(
    title="Race Notifier Service",
    description="Scheduled jobs that push session reminders and standings results to subscribed users.",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Dependencies ---
def get_db() -> firestore.Client:
    try:
        return get_firestore_client()
    except RuntimeError as e:
        logger.critical(f"Firestore client unavailable: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=f"Service not ready: {str(e)}")


def get_push_transport() -> IPushTransport:
    try:
        return FcmPushTransport(initialize_firebase_admin())
    except RuntimeError as e:
        logger.critical(f"FCM transport unavailable: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=f"Service not ready: {str(e)}")


def get_delivery_client(
    transport: IPushTransport = Depends(get_push_transport),
) -> NotificationDeliveryClient:
    return NotificationDeliveryClient(transport)


# --- Scheduler Endpoints (Cloud Scheduler targets) ---
@app.post("/scheduler/check-upcoming-sessions", status_code=200)
async def check_upcoming_sessions_endpoint(
    db: firestore.Client = Depends(get_db),
    delivery_client: NotificationDeliveryClient = Depends(get_delivery_client),
):
    """Runs every 5 minutes: alerts subscribers of sessions about to start."""
    try:
        return await check_upcoming_sessions(db, delivery_client)
    except Exception as e:
        logger.critical(f"Session check: Critical error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal error: {str(e)}")


@app.post("/scheduler/check-standings-changes", status_code=200)
async def check_standings_changes_endpoint(
    db: firestore.Client = Depends(get_db),
    delivery_client: NotificationDeliveryClient = Depends(get_delivery_client),
):
    """Runs every 2 hours: reports favorite-driver results inferred from standings."""
    try:
        return await check_standings_changes(db, delivery_client)
    except Exception as e:
        logger.critical(f"Standings check: Critical error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal error: {str(e)}")


@app.post("/scheduler/clean-invalid-tokens", status_code=200)
async def clean_invalid_tokens_endpoint(
    db: firestore.Client = Depends(get_db),
    transport: IPushTransport = Depends(get_push_transport),
):
    """Runs weekly: clears FCM tokens that are no longer registered."""
    try:
        return await clean_invalid_tokens(db, transport)
    except Exception as e:
        logger.critical(f"Token cleanup: Critical error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal error: {str(e)}")


@app.get("/scheduler/jobs")
async def list_scheduler_jobs():
    """Cadence contract for the Cloud Scheduler jobs that call this service."""
    return {
        "region": settings.SCHEDULER_REGION,
        "jobs": [
            {"name": name, "target": f"/scheduler/{name}", **job}
            for name, job in settings.SCHEDULER_JOBS.items()
        ],
    }


# --- Root and Health Check ---
@app.get("/")
async def read_root():
    return {"message": "Welcome to the Race Notifier Service"}


@app.get("/health")
async def health_check():
    db_ok = False
    try:
        get_firestore_client()
        db_ok = True
    except Exception:
        logger.warning("Health check: Firestore client not healthy.")
    firebase_ok = is_firebase_admin_initialized()

    if db_ok and firebase_ok:
        return {"status": "ok", "firestore_healthy": True, "firebase_admin_initialized": True}
    return {
        "status": "degraded",
        "firestore_healthy": db_ok,
        "firebase_admin_initialized": firebase_ok,
        "detail": "One or more components are not healthy.",
    }
