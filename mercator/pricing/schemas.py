"""Pricing profile and margin rule models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from mercator.rules.schemas import EffectiveWindowMixin


class MarginType(str, Enum):
    FIXED = "FIXED"
    PERCENT = "PERCENT"


class PricingRule(BaseModel):
    """One margin rule of a pricing profile.

    ``vehicle_category`` and ``unit_basis`` are optional filters; a rule with
    neither is the profile's global rule.
    """

    id: int
    pricing_profile_id: int | None = None
    vehicle_category: str | None = None
    unit_basis: str | None = None
    margin_type: MarginType
    margin_value: float = Field(..., description="Amount for FIXED, percentage for PERCENT")
    is_active: bool = True

    @field_validator("margin_type", mode="before")
    @classmethod
    def _upper(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("vehicle_category", "unit_basis", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PricingProfile(EffectiveWindowMixin):
    """Named set of margin rules.

    A profile is global (no carrier, no client), carrier-specific
    (``carrier_id``) or client-specific (``robaws_client_id``).
    """

    id: int
    name: str
    currency: str = "EUR"
    carrier_id: int | None = None
    robaws_client_id: str | None = None
    rules: list[PricingRule] = Field(default_factory=list)

    @field_validator("robaws_client_id", mode="before")
    @classmethod
    def _client_as_text(cls, value):
        if value is None:
            return None
        text = str(value).strip()
        return text or None
