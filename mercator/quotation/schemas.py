"""Quotation, commodity item and quote line models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from mercator.rules.schemas import CarrierRuleResult, ScheduleContext, as_list
from mercator.rules.measure import compute_cbm


class CommodityItem(BaseModel):
    """One cargo line of a quotation request.

    Stacked cargo is modelled as one *stack base* carrying the combined stack
    dimensions plus members pointing at it through ``stack_group`` (the id of
    the base item).  Only the base is measured; members are folded into it.
    """

    id: int
    quotation_request_id: int | None = None
    line_number: int | None = None
    commodity_type: str | None = None
    category: str | None = None
    quick_bucket: str | None = None
    quantity: int = 1

    length_cm: float | None = None
    width_cm: float | None = None
    height_cm: float | None = None
    cbm: float | None = None
    weight_kg: float | None = None
    flags: list[str] = Field(default_factory=list)

    stack_group: int | None = None
    stack_length_cm: float | None = None
    stack_width_cm: float | None = None
    stack_height_cm: float | None = None
    stack_cbm: float | None = None
    stack_weight_kg: float | None = None
    stack_unit_count: int | None = None

    @field_validator("flags", mode="before")
    @classmethod
    def _decode_flags(cls, value: Any) -> list:
        return as_list(value)

    def is_in_stack(self) -> bool:
        return self.stack_group is not None

    def is_stack_base(self) -> bool:
        return self.stack_group is not None and self.stack_group == self.id

    def calculate_cbm(self) -> float:
        if self.cbm is not None:
            return self.cbm
        return compute_cbm(self.length_cm, self.width_cm, self.height_cm)

    def calculate_stack_cbm(self) -> float:
        if self.stack_cbm is not None:
            return self.stack_cbm
        return compute_cbm(
            self.stack_length_cm or self.length_cm,
            self.stack_width_cm or self.width_cm,
            self.stack_height_cm or self.height_cm,
        )


class Article(BaseModel):
    """Catalog article a quote line is priced with."""

    id: int
    name: str | None = None
    unit_type: str = "UNIT"
    unit_price: float = 0.0
    currency: str = "EUR"


class QuotationRequestArticle(BaseModel):
    """Article already attached to a quotation (freight, fees, surcharges)."""

    id: int | None = None
    article_id: int
    unit_type: str = "UNIT"
    quantity: float = 1.0
    unit_price: float = 0.0
    vehicle_category: str | None = None
    event_code: str | None = None


class QuotationRequest(BaseModel):
    id: int
    robaws_client_id: str | None = None
    carrier_id: int | None = None
    pod_port_id: int | None = None
    pod_country_code: str | None = None
    vessel_name: str | None = None
    vessel_class: str | None = None
    basic_freight_amount: float | None = None
    project_vat_code: str | None = None
    commodity_items: list[CommodityItem] = Field(default_factory=list)
    articles: list[QuotationRequestArticle] = Field(default_factory=list)

    @field_validator("robaws_client_id", mode="before")
    @classmethod
    def _client_as_text(cls, value):
        return None if value is None else str(value)

    def schedule(self) -> ScheduleContext | None:
        """Selected carrier / route / vessel, or ``None`` before a carrier is chosen."""
        if self.carrier_id is None:
            return None
        return ScheduleContext(
            carrier_id=self.carrier_id,
            pod_port_id=self.pod_port_id,
            vessel_name=self.vessel_name,
            vessel_class=self.vessel_class,
        )


class QuoteLine(BaseModel):
    """Final priced line handed to the CRM export."""

    article_id: int
    quotation_article_id: int | None = None
    source: str = Field(..., description="article | surcharge")
    unit_type: str
    quantity: float
    unit_price: float
    base_amount: float
    margin: float
    selling_amount: float
    vehicle_category: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class QuotationPricingResult(BaseModel):
    quotation_id: int
    pricing_profile_id: int | None = None
    project_vat_code: str
    item_results: dict[int, CarrierRuleResult] = Field(default_factory=dict)
    lines: list[QuoteLine] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def total_selling_amount(self) -> float:
        return round(sum(line.selling_amount for line in self.lines), 2)
