"""
System and Config Routers.

Endpoints (system):
- GET /health - Monitor state and counters

Endpoints (config):
- GET /thresholds - Current runtime thresholds
- PUT /thresholds - Change the whale threshold (restarts the stream)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from sonar.api.deps import get_monitor
from sonar.api.schemas import ThresholdsResponse, ThresholdsUpdate
from sonar.monitor import MonitorState, SignalMonitor


router = APIRouter()
config_router = APIRouter()


@router.get("/health")
async def health_check(
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
) -> dict[str, Any]:
    """
    Health check endpoint.

    Healthy while the monitor is running.
    """
    return {
        "status": "healthy" if monitor.state == MonitorState.RUNNING else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "monitor": monitor.get_summary(),
    }


@config_router.get("/thresholds", response_model=ThresholdsResponse)
async def get_thresholds(
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
) -> ThresholdsResponse:
    """Get runtime thresholds."""
    return ThresholdsResponse(whale_usd=monitor.whale_threshold_usd)


@config_router.put("/thresholds", response_model=ThresholdsResponse)
async def update_thresholds(
    body: ThresholdsUpdate,
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
) -> ThresholdsResponse:
    """
    Change the whale threshold.

    Applies to events evaluated after the change; past alerts are kept.
    """
    await monitor.set_whale_threshold(body.whale_usd)
    return ThresholdsResponse(whale_usd=monitor.whale_threshold_usd)
