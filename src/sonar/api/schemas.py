"""
Pydantic schemas for API request/response models.

Core records are msgspec Structs; responses are built from their builtin
form (msgspec.to_builtins) so enums arrive as plain values.
"""

from __future__ import annotations

from typing import Any

import msgspec
from pydantic import BaseModel, ConfigDict, Field

from sonar.signals.protocol import Signal, WhaleAlert


# =============================================================================
# Signal Schemas
# =============================================================================


class WhaleSignalResponse(BaseModel):
    """Whale annotation on a signal."""

    model_config = ConfigDict(from_attributes=True)

    type: str
    description: str
    intensity: float = Field(..., ge=0.0, le=1.0)


class SignalResponse(BaseModel):
    """Signal response model."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Stable signal ID")
    symbol: str = Field(..., description="Instrument ticker")
    market: str = Field(..., description="CRYPTO, NASDAQ, NYSE, KOSPI or KOSDAQ")
    price: float
    change_rate: float = Field(..., description="Daily change in percent")
    volume: float
    score: float
    reasons: list[str] = Field(default_factory=list)
    whale_signals: list[WhaleSignalResponse] = Field(default_factory=list)
    created_ns: int = 0

    @classmethod
    def from_signal(cls, signal: Signal) -> SignalResponse:
        return cls.model_validate(msgspec.to_builtins(signal))


class SignalListResponse(BaseModel):
    """Response for the filtered signal view."""

    model_config = ConfigDict(from_attributes=True)

    signals: list[SignalResponse]
    total: int
    filter: str
    selected_id: str | None = None


class SearchRequest(BaseModel):
    """Search for a symbol to track."""

    query: str = Field(..., min_length=1, max_length=64, description="Symbol or signal ID")


class SelectionRequest(BaseModel):
    """Change the selected signal."""

    signal_id: str | None = Field(None, description="Signal ID, or null to clear")


class SelectionResponse(BaseModel):
    """Current selection."""

    selected_id: str | None
    tracked: bool = Field(..., description="Whether the selected ID is in the registry")
    signal: SignalResponse | None = None


# =============================================================================
# Whale Schemas
# =============================================================================


class WhaleAlertResponse(BaseModel):
    """Whale alert response model."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    timestamp_ms: int
    symbol: str
    market: str
    type: str
    side: str
    amount_usd: float
    description: str

    @classmethod
    def from_alert(cls, alert: WhaleAlert) -> WhaleAlertResponse:
        return cls.model_validate(msgspec.to_builtins(alert))


class WhaleAlertListResponse(BaseModel):
    """Response for the whale alert log."""

    alerts: list[WhaleAlertResponse]
    total: int
    threshold_usd: float
    stats: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Config Schemas
# =============================================================================


class ThresholdsResponse(BaseModel):
    """Runtime thresholds."""

    whale_usd: float


class ThresholdsUpdate(BaseModel):
    """Update runtime thresholds."""

    whale_usd: float = Field(..., ge=0, description="Minimum whale notional in USD")


# =============================================================================
# Market Schemas
# =============================================================================


class PriceResponse(BaseModel):
    """Normalized 24h ticker."""

    market: str
    symbol: str
    last_price: float
    change_24h: float = Field(..., description="24h change in percent")
    volume_24h: float = Field(..., description="24h volume in quote currency")
