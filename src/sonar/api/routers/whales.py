"""
Whales Router.

Endpoints:
- GET / - Global whale alert log, newest first
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from sonar.api.deps import get_monitor
from sonar.api.schemas import WhaleAlertListResponse, WhaleAlertResponse
from sonar.monitor import SignalMonitor


router = APIRouter()


@router.get("", response_model=WhaleAlertListResponse)
async def list_whales(
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
    limit: int | None = Query(None, ge=1, le=50),
    symbol: str | None = Query(None, description="Only alerts for this symbol"),
) -> WhaleAlertListResponse:
    """Get recent whale alerts."""
    alerts = monitor.detector.get_alerts(limit=limit, symbol=symbol)
    return WhaleAlertListResponse(
        alerts=[WhaleAlertResponse.from_alert(a) for a in alerts],
        total=len(alerts),
        threshold_usd=monitor.whale_threshold_usd,
        stats=monitor.detector.get_summary()["stats"],
    )
