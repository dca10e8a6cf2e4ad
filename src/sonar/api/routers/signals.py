"""
Signals Router.

Endpoints:
- GET /              - Filtered signal view (selection always included)
- GET /selected      - Current selection
- PUT /selection     - Change the selection
- POST /search       - Track and select a symbol
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sonar.api.deps import get_monitor
from sonar.api.schemas import (
    SearchRequest,
    SelectionRequest,
    SelectionResponse,
    SignalListResponse,
    SignalResponse,
)
from sonar.monitor import SignalMonitor
from sonar.signals.protocol import SignalFilter


router = APIRouter()


def _selection(monitor: SignalMonitor) -> SelectionResponse:
    selected = monitor.registry.selected_signal
    return SelectionResponse(
        selected_id=monitor.registry.selected_id,
        tracked=selected is not None,
        signal=SignalResponse.from_signal(selected) if selected else None,
    )


@router.get("", response_model=SignalListResponse)
async def list_signals(
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
    filter_: str = Query("ALL", alias="filter", description="ALL, CRYPTO, KR, GLOBAL or WHALE"),
    selected_id: str | None = Query(None, description="Override the selection kept visible"),
) -> SignalListResponse:
    """
    Get the displayed signal subset.

    The selected signal is included whatever the filter.
    """
    try:
        active = SignalFilter.parse(filter_)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    keep = selected_id if selected_id is not None else monitor.registry.selected_id
    signals = monitor.select(active, keep)

    return SignalListResponse(
        signals=[SignalResponse.from_signal(s) for s in signals],
        total=len(signals),
        filter=active.value,
        selected_id=keep,
    )


@router.get("/selected", response_model=SelectionResponse)
async def get_selected(
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
) -> SelectionResponse:
    """Get the current selection (may be dangling)."""
    return _selection(monitor)


@router.put("/selection", response_model=SelectionResponse)
async def set_selection(
    body: SelectionRequest,
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
) -> SelectionResponse:
    """Select a signal by ID or symbol, or clear the selection with null."""
    if body.signal_id is None:
        monitor.select_signal(None)
        return _selection(monitor)

    signal = monitor.registry.find(body.signal_id)
    if signal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Signal {body.signal_id} not found",
        )
    monitor.select_signal(signal.id)
    return _selection(monitor)


@router.post("/search", response_model=SignalResponse)
async def search(
    body: SearchRequest,
    monitor: Annotated[SignalMonitor, Depends(get_monitor)],
) -> SignalResponse:
    """
    Track and select a symbol.

    Unknown symbols still produce a signal, flagged with
    "Price data unavailable".
    """
    try:
        signal = await monitor.insert_from_search(body.query)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return SignalResponse.from_signal(signal)
