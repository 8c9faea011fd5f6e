"""SQLAlchemy ORM models matching the Mercator PostgreSQL schema.

Rule tables are written by the admin UI and read-only to the engine.  Scope
columns follow one convention per dimension: a single value column, a JSONB
list column and, for ports, a JSONB list of port-group ids.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    String, Text, Integer, Boolean, Date,
    DateTime, Numeric, ForeignKey, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from mercator.config import settings


# ── Engine & Session ──────────────────────────────────────────────

engine = create_async_engine(settings.database_url, echo=False, pool_size=10)
async_session = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class EffectiveWindowMixin:
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    effective_from: Mapped[Optional[date]] = mapped_column(Date)
    effective_to: Mapped[Optional[date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ScopeColumnsMixin:
    port_id: Mapped[Optional[int]] = mapped_column(Integer)
    port_ids: Mapped[Optional[list]] = mapped_column(JSONB)
    port_group_ids: Mapped[Optional[list]] = mapped_column(JSONB)
    vehicle_category: Mapped[Optional[str]] = mapped_column(String(50))
    vehicle_categories: Mapped[Optional[list]] = mapped_column(JSONB)
    category_group_id: Mapped[Optional[int]] = mapped_column(Integer)
    category_group_ids: Mapped[Optional[list]] = mapped_column(JSONB)
    vessel_name: Mapped[Optional[str]] = mapped_column(String(200))
    vessel_names: Mapped[Optional[list]] = mapped_column(JSONB)
    vessel_class: Mapped[Optional[str]] = mapped_column(String(100))
    vessel_classes: Mapped[Optional[list]] = mapped_column(JSONB)


# ── Carriers & Ports ─────────────────────────────────────────────

class ShippingCarrier(TimestampMixin, Base):
    __tablename__ = "mercator_carriers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    lm_strategy: Mapped[str] = mapped_column(String(30), nullable=False, default="iso")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Port(Base):
    __tablename__ = "mercator_ports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    country_code: Mapped[Optional[str]] = mapped_column(String(2))


class CarrierPortGroup(EffectiveWindowMixin, Base):
    __tablename__ = "mercator_carrier_port_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))

    members: Mapped[List["CarrierPortGroupMember"]] = relationship(back_populates="group")


class CarrierPortGroupMember(Base):
    __tablename__ = "mercator_carrier_port_group_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    port_group_id: Mapped[int] = mapped_column(
        ForeignKey("mercator_carrier_port_groups.id", ondelete="CASCADE"), nullable=False
    )
    port_id: Mapped[int] = mapped_column(ForeignKey("mercator_ports.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    group: Mapped["CarrierPortGroup"] = relationship(back_populates="members")


# ── Vehicle Categories ───────────────────────────────────────────

class CarrierCategoryGroup(EffectiveWindowMixin, Base):
    __tablename__ = "mercator_carrier_category_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))

    members: Mapped[List["CarrierCategoryGroupMember"]] = relationship(back_populates="group")


class CarrierCategoryGroupMember(Base):
    __tablename__ = "mercator_carrier_category_group_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_category_group_id: Mapped[int] = mapped_column(
        ForeignKey("mercator_carrier_category_groups.id", ondelete="CASCADE"), nullable=False
    )
    vehicle_category: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    group: Mapped["CarrierCategoryGroup"] = relationship(back_populates="members")


class CarrierClassificationBand(EffectiveWindowMixin, Base):
    __tablename__ = "mercator_carrier_classification_bands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    outcome_vehicle_category: Mapped[str] = mapped_column(String(50), nullable=False)
    commodity_type: Mapped[Optional[str]] = mapped_column(String(50))
    min_length_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    max_length_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    min_width_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    max_width_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    min_height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    max_height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    min_cbm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    max_cbm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    min_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    max_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    rule_logic: Mapped[str] = mapped_column(String(3), nullable=False, default="AND")


# ── Carrier Rules ────────────────────────────────────────────────

class CarrierAcceptanceRule(ScopeColumnsMixin, EffectiveWindowMixin, TimestampMixin, Base):
    __tablename__ = "mercator_carrier_acceptance_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200))

    min_length_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    min_width_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    min_height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    min_cbm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    min_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    min_is_hard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    max_length_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    max_width_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    max_height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    max_cbm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    max_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    soft_max_height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    soft_height_requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    soft_max_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    soft_weight_requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    must_be_empty: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    must_be_self_propelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allows_stacked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allows_piggy_back: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class CarrierTransformRule(ScopeColumnsMixin, EffectiveWindowMixin, TimestampMixin, Base):
    __tablename__ = "mercator_carrier_transform_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    transform_code: Mapped[str] = mapped_column(String(50), nullable=False)
    params: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)


class CarrierSurchargeRule(ScopeColumnsMixin, EffectiveWindowMixin, TimestampMixin, Base):
    __tablename__ = "mercator_carrier_surcharge_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    event_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    calc_mode: Mapped[str] = mapped_column(String(40), nullable=False)
    params: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)


class CarrierSurchargeArticleMap(ScopeColumnsMixin, EffectiveWindowMixin, TimestampMixin, Base):
    __tablename__ = "mercator_carrier_surcharge_article_maps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("mercator_carriers.id"), nullable=False)
    event_code: Mapped[str] = mapped_column(String(50), nullable=False)
    article_id: Mapped[int] = mapped_column(ForeignKey("mercator_articles.id"), nullable=False)
    qty_mode: Mapped[str] = mapped_column(String(30), nullable=False, default="AS_EVENT")


# ── Articles & Pricing ───────────────────────────────────────────

class Article(TimestampMixin, Base):
    __tablename__ = "mercator_articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    robaws_article_id: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    unit_type: Mapped[str] = mapped_column(String(20), nullable=False, default="UNIT")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")


class PricingProfile(TimestampMixin, Base):
    __tablename__ = "mercator_pricing_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    carrier_id: Mapped[Optional[int]] = mapped_column(ForeignKey("mercator_carriers.id"))
    robaws_client_id: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[Optional[date]] = mapped_column(Date)
    effective_to: Mapped[Optional[date]] = mapped_column(Date)

    rules: Mapped[List["PricingRule"]] = relationship(back_populates="profile")


class PricingRule(TimestampMixin, Base):
    __tablename__ = "mercator_pricing_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pricing_profile_id: Mapped[int] = mapped_column(
        ForeignKey("mercator_pricing_profiles.id", ondelete="CASCADE"), nullable=False
    )
    vehicle_category: Mapped[Optional[str]] = mapped_column(String(50))
    unit_basis: Mapped[Optional[str]] = mapped_column(String(20))
    margin_type: Mapped[str] = mapped_column(String(10), nullable=False)
    margin_value: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    profile: Mapped["PricingProfile"] = relationship(back_populates="rules")


# ── Quotations ───────────────────────────────────────────────────

class QuotationRequest(TimestampMixin, Base):
    __tablename__ = "mercator_quotation_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reference: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    robaws_client_id: Mapped[Optional[str]] = mapped_column(String(50))
    carrier_id: Mapped[Optional[int]] = mapped_column(ForeignKey("mercator_carriers.id"))
    pod_port_id: Mapped[Optional[int]] = mapped_column(ForeignKey("mercator_ports.id"))
    vessel_name: Mapped[Optional[str]] = mapped_column(String(200))
    vessel_class: Mapped[Optional[str]] = mapped_column(String(100))
    basic_freight_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    project_vat_code: Mapped[Optional[str]] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    commodity_items: Mapped[List["QuotationCommodityItem"]] = relationship(
        back_populates="quotation_request"
    )
    articles: Mapped[List["QuotationRequestArticle"]] = relationship(
        back_populates="quotation_request"
    )


class QuotationCommodityItem(TimestampMixin, Base):
    __tablename__ = "mercator_quotation_commodity_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quotation_request_id: Mapped[int] = mapped_column(
        ForeignKey("mercator_quotation_requests.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[Optional[int]] = mapped_column(Integer)
    commodity_type: Mapped[Optional[str]] = mapped_column(String(50))
    category: Mapped[Optional[str]] = mapped_column(String(50))
    quick_bucket: Mapped[Optional[str]] = mapped_column(String(30))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    length_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    width_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    cbm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    flags: Mapped[Optional[list]] = mapped_column(JSONB)

    stack_group: Mapped[Optional[int]] = mapped_column(Integer)
    stack_length_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    stack_width_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    stack_height_cm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    stack_cbm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    stack_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    stack_unit_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Derived by the rule engine
    chargeable_lm: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))
    carrier_rule_meta: Mapped[Optional[dict]] = mapped_column(JSONB)

    quotation_request: Mapped["QuotationRequest"] = relationship(back_populates="commodity_items")


class QuotationRequestArticle(TimestampMixin, Base):
    __tablename__ = "mercator_quotation_request_articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quotation_request_id: Mapped[int] = mapped_column(
        ForeignKey("mercator_quotation_requests.id", ondelete="CASCADE"), nullable=False
    )
    article_id: Mapped[int] = mapped_column(ForeignKey("mercator_articles.id"), nullable=False)
    unit_type: Mapped[str] = mapped_column(String(20), nullable=False, default="UNIT")
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    selling_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    margin: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    vehicle_category: Mapped[Optional[str]] = mapped_column(String(50))
    event_code: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[dict]] = mapped_column(JSONB)

    quotation_request: Mapped["QuotationRequest"] = relationship(back_populates="articles")
