"""Pydantic schemas for the Mercator API request/response models.

Engine result models (:class:`CarrierRuleResult`,
:class:`QuotationPricingResult`) are returned as-is; the envelopes below add
request context and timing.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from mercator.rules.schemas import CargoInput, CarrierRuleResult


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CargoEvaluationRequest(BaseModel):
    """Body of POST /v1/cargo/evaluate."""

    cargo: CargoInput
    as_of: date | None = Field(default=None, description="Rule reference date (default today)")


class MarginRequest(BaseModel):
    """Body of POST /v1/pricing/margin."""

    carrier_id: int | None = None
    client_id: str | None = None
    vehicle_category: str | None = None
    unit_basis: str | None = None
    base_amount: float = Field(..., ge=0)
    as_of: date | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CargoEvaluationResponse(BaseModel):
    carrier_id: int
    result: CarrierRuleResult
    evaluation_time_ms: float


class MarginResponse(BaseModel):
    pricing_profile_id: int | None = None
    base_amount: float
    margin: float
    selling_amount: float


class HealthResponse(BaseModel):
    """Response for GET /v1/health.

    Attributes
    ----------
    status:
        ``"ok"`` | ``"error"``.
    version:
        Mercator version string.
    database:
        ``"connected"`` or the connection error.
    """

    status: str
    version: str
    database: str
