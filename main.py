# Load .env file FIRST before any other imports that use os.getenv
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes.crisis import router as crisis_router
from app.core.config import settings
from app.db.database import ENGINE_INIT_ERROR_MSG, initialize_main_database
from app.db.session import SessionLocal, create_all
from app.services.registry import build_crisis_services
from app.utils.date_utils import utcnow
from app.utils.ws_manager import AlertWSManager

app = FastAPI(title=settings.APP_NAME)

logging.basicConfig(level=logging.INFO)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(crisis_router, prefix="/api/crisis", tags=["crisis"])

ws_alert_manager = AlertWSManager()
app.state.crisis_services = build_crisis_services(SessionLocal, live_notifier=ws_alert_manager)


@app.on_event("startup")
def _init_database():
    if ENGINE_INIT_ERROR_MSG:
        logging.error("[db] engine initialization failed: %s", ENGINE_INIT_ERROR_MSG)
        return
    try:
        initialize_main_database()
        create_all()
        logging.info("[db] tables ready")
    except Exception as exc:  # pragma: no cover
        logging.exception("[db] initialization failed: %s", exc)


@app.get("/health")
def health():
    return {"status": "ok", "db_error": ENGINE_INIT_ERROR_MSG}


# --- Internal Scheduler (APScheduler) ---
scheduler: Optional[BackgroundScheduler] = None


def _run_follow_up_sweep_job():
    try:
        report = asyncio.run(app.state.crisis_services.follow_up_scheduler.process_pending_follow_ups())
        logging.info(
            "[scheduler] follow-up sweep: %d due, %d processed, %d skipped, %d errors",
            report["total"], report["processed"], report["skipped"], report["errors"],
        )
    except Exception as exc:  # pragma: no cover
        logging.exception("[scheduler] follow-up sweep failed: %s", exc)


def _run_cooldown_sweep_job():
    try:
        removed = app.state.crisis_services.dispatcher.sweep_cooldowns()
        logging.info("[scheduler] cooldown sweep removed %d entries", removed)
    except Exception as exc:  # pragma: no cover
        logging.exception("[scheduler] cooldown sweep failed: %s", exc)


@app.on_event("startup")
def _start_scheduler():
    global scheduler
    if not settings.CRISIS_SCHEDULER_ENABLED:
        logging.info("[scheduler] crisis scheduler disabled; not started")
        return
    try:
        scheduler = BackgroundScheduler()
        # Hourly, plus one run right away to catch follow-ups that came due while down
        scheduler.add_job(
            _run_follow_up_sweep_job,
            IntervalTrigger(minutes=settings.FOLLOW_UP_SWEEP_MINUTES),
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            _run_cooldown_sweep_job,
            IntervalTrigger(minutes=settings.COOLDOWN_SWEEP_MINUTES),
        )
        scheduler.start()
        logging.info(
            "[scheduler] started (follow-ups every %d min, cooldown sweep every %d min)",
            settings.FOLLOW_UP_SWEEP_MINUTES, settings.COOLDOWN_SWEEP_MINUTES,
        )
    except Exception as exc:  # pragma: no cover
        logging.exception("[scheduler] failed to start: %s", exc)


@app.on_event("shutdown")
async def _stop_background_work():
    global scheduler
    if scheduler:
        try:
            scheduler.shutdown(wait=False)
            logging.info("[scheduler] stopped")
        except Exception as exc:
            logging.warning("[scheduler] shutdown failed: %s", exc)
    await app.state.crisis_services.runner.drain()


# --- Live crisis alerts for the user's open app sessions ---
@app.websocket("/ws/crisis-alerts/{user_id}")
async def crisis_alerts_ws(websocket: WebSocket, user_id: int) -> None:
    await ws_alert_manager.connect(websocket, user_id)
    try:
        while True:
            msg = await websocket.receive_text()
            if msg == "ping":
                await websocket.send_json({"type": "pong", "ts": utcnow().isoformat() + "Z"})
    except WebSocketDisconnect:
        pass
    finally:
        await ws_alert_manager.disconnect(websocket)
