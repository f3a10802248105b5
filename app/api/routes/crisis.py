from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.crisis_event import RiskLevel
from app.schemas.risk import CrisisHandlingResult, IncomingMessageRequest
from app.services.crisis_metrics_service import PERIOD_DAYS, CrisisMetricsService
from app.services.registry import CrisisServices, get_crisis_services
from app.utils.date_utils import safe_parse_datetime

router = APIRouter()


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    parsed = safe_parse_datetime(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: expected ISO date")
    return parsed


def _parse_risk_level(value: Optional[str]) -> Optional[RiskLevel]:
    if not value:
        return None
    try:
        return RiskLevel(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid risk_level: {value}")


# ============================================================================
# METRICS
# ============================================================================

@router.get("/{user_id}/summary")
def crisis_summary(user_id: int, days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return CrisisMetricsService.get_crisis_summary(db, user_id, days)


@router.get("/{user_id}/trends")
def emotional_trends(user_id: int, period: str = "30d", db: Session = Depends(get_db)) -> Dict[str, Any]:
    if period not in PERIOD_DAYS:
        raise HTTPException(status_code=400, detail=f"Invalid period: {period}. Use one of {sorted(PERIOD_DAYS)}")
    return CrisisMetricsService.get_emotional_trends(db, user_id, period)


@router.get("/{user_id}/by-month")
def crisis_by_month(user_id: int, months: int = Query(6, ge=1, le=24), db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return CrisisMetricsService.get_crisis_by_month(db, user_id, months)


@router.get("/{user_id}/history")
def crisis_history(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    risk_level: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return CrisisMetricsService.get_crisis_history(
        db,
        user_id,
        limit=limit,
        offset=offset,
        risk_level=_parse_risk_level(risk_level),
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
    )


@router.get("/{user_id}/alerts-stats")
def alert_statistics(
    user_id: int,
    days: int = Query(30, ge=1, le=365),
    include_tests: bool = False,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return CrisisMetricsService.get_alert_statistics(db, user_id, days, include_tests=include_tests)


@router.get("/{user_id}/followup-stats")
def follow_up_statistics(user_id: int, days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return CrisisMetricsService.get_follow_up_statistics(db, user_id, days)


@router.get("/{user_id}/emotion-distribution")
def emotion_distribution(user_id: int, days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return CrisisMetricsService.get_emotion_distribution(db, user_id, days)


@router.get("/{user_id}/compare-periods")
def compare_periods(
    user_id: int,
    current_days: int = Query(30, ge=1, le=365),
    previous_days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return CrisisMetricsService.compare_periods(db, user_id, current_days, previous_days)


@router.get("/{user_id}/export")
def export_data(user_id: int, days: int = Query(90, ge=1, le=365), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return CrisisMetricsService.get_export_data(db, user_id, days)


# ============================================================================
# PIPELINE
# ============================================================================

@router.post("/messages", response_model=CrisisHandlingResult)
async def handle_message(
    payload: IncomingMessageRequest,
    services: CrisisServices = Depends(get_crisis_services),
) -> CrisisHandlingResult:
    if services.user_store.get_user_summary(payload.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return await services.orchestrator.handle_incoming_message(payload.user_id, payload.message, payload.analyses)


@router.post("/followups/run")
async def run_follow_ups(services: CrisisServices = Depends(get_crisis_services)) -> Dict[str, Any]:
    return await services.follow_up_scheduler.process_pending_follow_ups()
