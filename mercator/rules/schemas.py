"""Pydantic models shared by the carrier rule engine.

Rule rows arrive from the database as plain dicts whose scope lives in
several storage columns per dimension (a single value, a JSON list and, for
ports, a JSON list of port-group ids).  :class:`ScopedRule` folds those
columns into one :class:`ScopeSpec` per dimension at validation time, so
every component downstream matches scope through a single code path.

Cargo and result models are plain value objects: :class:`CargoInput` is
built fresh for every evaluation and :class:`CarrierRuleResult` is never
persisted as an entity.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger("mercator.rules.schemas")


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

VEHICLE_CATEGORIES: tuple[str, ...] = (
    "motorcycle",
    "car",
    "suv",
    "small_van",
    "big_van",
    "truck",
    "truckhead",
    "truck_chassis",
    "tipper_truck",
    "platform_truck",
    "box_truck",
    "vacuum_truck",
    "refuse_truck",
    "bus",
    "concrete_mixer",
    "tank_truck",
    "trailer",
    "trailer_stack",
    "tank_trailer",
    "truck_trailer_combination",
    "loaded_truck_trailer",
    "high_and_heavy",
)

UNCLASSIFIED = "unclassified"


class AcceptanceStatus(str, Enum):
    ALLOWED = "ALLOWED"
    ALLOWED_WITH_SURCHARGES = "ALLOWED_WITH_SURCHARGES"
    ALLOWED_UPON_REQUEST = "ALLOWED_UPON_REQUEST"
    NOT_ALLOWED = "NOT_ALLOWED"


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def as_list(raw: Any) -> list:
    """Coerce a scope storage column (None, scalar, list or JSON text) to a list."""
    if raw is None:
        return []
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            parsed = json.loads(stripped)
            if not isinstance(parsed, list):
                raise ValueError(f"expected JSON list, got {type(parsed).__name__}")
            return parsed
        return [stripped]
    if isinstance(raw, (list, tuple, set, frozenset)):
        return list(raw)
    return [raw]


def normalise_id(value: Any) -> int:
    """Return *value* as an ``int`` id; raise ``ValueError`` if it is not one."""
    if isinstance(value, bool):
        raise ValueError(f"boolean is not an id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError(f"not an integer id: {value!r}")


def normalise_text(value: Any) -> str | None:
    """Trim and casefold a string scope value; empty strings become ``None``."""
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValueError(f"not a text value: {value!r}")
    text = str(value).strip().casefold()
    return text or None


def _parse_params(raw: Any) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError("params must be a JSON object")
    return raw


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


class ScopeSpec(BaseModel):
    """Normalised scope of a rule on one dimension.

    Attributes
    ----------
    values:
        Individual values the rule is scoped to (ints for ids, casefolded
        strings for categories and vessel names/classes).
    group_ids:
        Group ids the rule is scoped to (port groups).
    malformed:
        Set when the storage columns could not be parsed.  A malformed scope
        never matches.
    """

    model_config = ConfigDict(frozen=True)

    values: frozenset[int | str] = frozenset()
    group_ids: frozenset[int] = frozenset()
    malformed: bool = False

    @property
    def is_global(self) -> bool:
        return not self.malformed and not self.values and not self.group_ids

    @classmethod
    def build(
        cls,
        single: Any = None,
        many: Any = None,
        groups: Any = None,
        *,
        numeric: bool = True,
        label: str = "scope",
    ) -> "ScopeSpec":
        """Fold the single/list/group storage columns of one dimension."""
        try:
            raw_values = as_list(many)
            if single is not None and single != "":
                raw_values.append(single)
            if numeric:
                values = frozenset(normalise_id(v) for v in raw_values)
            else:
                values = frozenset(
                    t for t in (normalise_text(v) for v in raw_values) if t is not None
                )
            group_ids = frozenset(normalise_id(g) for g in as_list(groups))
        except (TypeError, ValueError) as exc:
            logger.warning("Malformed %s; rule will never match: %s", label, exc)
            return cls(malformed=True)
        return cls(values=values, group_ids=group_ids)


class EffectiveWindowMixin(BaseModel):
    is_active: bool = True
    effective_from: date | None = None
    effective_to: date | None = None

    def is_effective(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if self.effective_from is not None and self.effective_from > as_of:
            return False
        if self.effective_to is not None and self.effective_to < as_of:
            return False
        return True


class ScopedRule(EffectiveWindowMixin):
    """Common shape of every carrier rule that is scoped by port, vehicle
    category, category group, vessel name and vessel class."""

    model_config = ConfigDict(frozen=True)

    id: int
    carrier_id: int
    priority: int = 0

    port_scope: ScopeSpec = Field(default_factory=ScopeSpec)
    category_scope: ScopeSpec = Field(default_factory=ScopeSpec)
    category_group_scope: ScopeSpec = Field(default_factory=ScopeSpec)
    vessel_name_scope: ScopeSpec = Field(default_factory=ScopeSpec)
    vessel_class_scope: ScopeSpec = Field(default_factory=ScopeSpec)

    @model_validator(mode="before")
    @classmethod
    def _collect_scope_columns(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        label = f"{cls.__name__} #{data.get('id')}"
        if "port_scope" not in data:
            data["port_scope"] = ScopeSpec.build(
                data.pop("port_id", None),
                data.pop("port_ids", None),
                data.pop("port_group_ids", None),
                label=f"port scope on {label}",
            )
        if "category_scope" not in data:
            data["category_scope"] = ScopeSpec.build(
                data.pop("vehicle_category", None),
                data.pop("vehicle_categories", None),
                numeric=False,
                label=f"category scope on {label}",
            )
        if "category_group_scope" not in data:
            data["category_group_scope"] = ScopeSpec.build(
                data.pop("category_group_id", None),
                data.pop("category_group_ids", None),
                label=f"category group scope on {label}",
            )
        if "vessel_name_scope" not in data:
            data["vessel_name_scope"] = ScopeSpec.build(
                data.pop("vessel_name", None),
                data.pop("vessel_names", None),
                numeric=False,
                label=f"vessel name scope on {label}",
            )
        if "vessel_class_scope" not in data:
            data["vessel_class_scope"] = ScopeSpec.build(
                data.pop("vessel_class", None),
                data.pop("vessel_classes", None),
                numeric=False,
                label=f"vessel class scope on {label}",
            )
        return data

    @property
    def scopes(self) -> tuple[ScopeSpec, ...]:
        return (
            self.port_scope,
            self.category_scope,
            self.category_group_scope,
            self.vessel_name_scope,
            self.vessel_class_scope,
        )

    @property
    def is_malformed(self) -> bool:
        return any(scope.malformed for scope in self.scopes)


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

_LIMIT_DIMENSIONS: tuple[str, ...] = ("length", "width", "height", "cbm", "weight")


def _limit_field(kind: str, dimension: str) -> str:
    suffix = {"cbm": "", "weight": "_kg"}.get(dimension, "_cm")
    return f"{kind}_{dimension}{suffix}"


class AcceptanceRule(ScopedRule):
    name: str | None = None

    min_length_cm: float | None = None
    min_width_cm: float | None = None
    min_height_cm: float | None = None
    min_cbm: float | None = None
    min_weight_kg: float | None = None
    min_is_hard: bool = False

    max_length_cm: float | None = None
    max_width_cm: float | None = None
    max_height_cm: float | None = None
    max_cbm: float | None = None
    max_weight_kg: float | None = None

    soft_max_height_cm: float | None = None
    soft_height_requires_approval: bool = False
    soft_max_weight_kg: float | None = None
    soft_weight_requires_approval: bool = False

    must_be_empty: bool = False
    must_be_self_propelled: bool = False
    allows_stacked: bool = True
    allows_piggy_back: bool = True

    notes: str | None = None

    def limit(self, kind: str, dimension: str) -> float | None:
        return getattr(self, _limit_field(kind, dimension))

    def contradictions(self) -> list[str]:
        """Dimensions whose declared minimum exceeds the declared maximum."""
        bad = []
        for dimension in _LIMIT_DIMENSIONS:
            low, high = self.limit("min", dimension), self.limit("max", dimension)
            if low is not None and high is not None and low > high:
                bad.append(dimension)
        return bad


class ParamsMixin(BaseModel):
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def _decode_params(cls, value: Any) -> dict[str, Any]:
        return _parse_params(value)


class TransformRule(ParamsMixin, ScopedRule):
    transform_code: str


class SurchargeRule(ParamsMixin, ScopedRule):
    event_code: str
    name: str
    calc_mode: str

    @property
    def exclusive_group(self) -> str | None:
        return self.params.get("exclusive_group") or None


class SurchargeArticleMap(ScopedRule):
    event_code: str
    article_id: int
    qty_mode: str = "AS_EVENT"


class ClassificationBand(EffectiveWindowMixin):
    """Dimension band that classifies cargo into a vehicle category for one
    carrier.  ``rule_logic`` decides whether all declared bounds (``AND``) or
    any declared bound (``OR``) must hold."""

    id: int
    carrier_id: int
    outcome_vehicle_category: str
    commodity_type: str | None = None
    min_length_cm: float | None = None
    max_length_cm: float | None = None
    min_width_cm: float | None = None
    max_width_cm: float | None = None
    min_height_cm: float | None = None
    max_height_cm: float | None = None
    min_cbm: float | None = None
    max_cbm: float | None = None
    min_weight_kg: float | None = None
    max_weight_kg: float | None = None
    rule_logic: str = "AND"
    priority: int = 0


class CategoryGroup(EffectiveWindowMixin):
    id: int
    carrier_id: int
    code: str
    display_name: str | None = None
    priority: int = 0
    members: frozenset[str] = frozenset()

    @field_validator("members", mode="before")
    @classmethod
    def _normalise_members(cls, value: Any) -> Any:
        return frozenset(
            m for m in (normalise_text(v) for v in as_list(value)) if m is not None
        )


class PortGroup(EffectiveWindowMixin):
    id: int
    carrier_id: int
    code: str
    port_ids: frozenset[int] = frozenset()

    @field_validator("port_ids", mode="before")
    @classmethod
    def _decode_port_ids(cls, value: Any) -> Any:
        return frozenset(normalise_id(v) for v in as_list(value))


# ---------------------------------------------------------------------------
# Cargo input
# ---------------------------------------------------------------------------


class ScheduleContext(BaseModel):
    """Carrier / route / vessel selected for a quotation."""

    model_config = ConfigDict(frozen=True)

    carrier_id: int
    pod_port_id: int | None = None
    vessel_name: str | None = None
    vessel_class: str | None = None


class CargoInput(BaseModel):
    """Immutable description of one piece of cargo offered to a carrier."""

    model_config = ConfigDict(frozen=True)

    carrier_id: int
    pod_port_id: int | None = None
    length_cm: float | None = None
    width_cm: float | None = None
    height_cm: float | None = None
    cbm: float | None = None
    weight_kg: float | None = None
    unit_count: int = 1
    commodity_type: str | None = None
    category: str | None = None
    quick_bucket: str | None = None
    category_group_id: int | None = None
    flags: tuple[str, ...] = ()
    basic_freight_amount: float | None = None
    vessel_name: str | None = None
    vessel_class: str | None = None

    @field_validator("flags", mode="before")
    @classmethod
    def _normalise_flags(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, dict):
            value = [name for name, enabled in value.items() if enabled]
        elif isinstance(value, str):
            value = [value]
        return tuple(sorted({str(v).strip().lower() for v in value if str(v).strip()}))

    def has_flag(self, name: str) -> bool:
        return name in self.flags

    @property
    def volume_cbm(self) -> float | None:
        """Declared volume, or L×W×H when the volume was not supplied."""
        if self.cbm is not None:
            return self.cbm
        if self.length_cm and self.width_cm and self.height_cm:
            return round(self.length_cm * self.width_cm * self.height_cm / 1_000_000, 4)
        return None

    @classmethod
    def from_commodity_item(
        cls,
        item: Any,
        schedule: ScheduleContext,
        basic_freight_amount: float | None = None,
    ) -> "CargoInput":
        """Build the cargo input for a commodity item.

        A stack base is evaluated with its combined stack dimensions and
        ``stack_unit_count``; any other item with its own dimensions and
        quantity.
        """
        flags: list[str] = list(item.flags or ())
        if item.is_stack_base():
            flags.append("stacked")
            length, width, height = (
                item.stack_length_cm or item.length_cm,
                item.stack_width_cm or item.width_cm,
                item.stack_height_cm or item.height_cm,
            )
            cbm = item.stack_cbm
            weight = item.stack_weight_kg or item.weight_kg
            units = item.stack_unit_count or 1
        else:
            length, width, height = item.length_cm, item.width_cm, item.height_cm
            cbm, weight, units = item.cbm, item.weight_kg, item.quantity or 1
        return cls(
            carrier_id=schedule.carrier_id,
            pod_port_id=schedule.pod_port_id,
            vessel_name=schedule.vessel_name,
            vessel_class=schedule.vessel_class,
            length_cm=length,
            width_cm=width,
            height_cm=height,
            cbm=cbm,
            weight_kg=weight,
            unit_count=units,
            commodity_type=item.commodity_type,
            category=item.category,
            quick_bucket=item.quick_bucket,
            flags=flags,
            basic_freight_amount=basic_freight_amount,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ChargeableMeasure(BaseModel):
    base_lm: float = 0.0
    chargeable_lm: float = 0.0
    cbm: float = 0.0
    applied_transform_rule_id: int | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class SurchargeEvent(BaseModel):
    event_code: str
    qty: float
    amount_basis: str
    amount: float
    params: dict[str, Any] = Field(default_factory=dict)
    matched_rule_id: int
    reason: str


class QuoteLineDraft(BaseModel):
    article_id: int
    qty: float
    amount_override: float | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class CarrierRuleResult(BaseModel):
    """Outcome of evaluating one cargo against one carrier's rules.

    Attributes
    ----------
    classified_vehicle_category:
        One of :data:`VEHICLE_CATEGORIES` or :data:`UNCLASSIFIED`.
    matched_category_group:
        Code of the carrier category group the category belongs to.
    acceptance_status:
        Final :class:`AcceptanceStatus`.
    violations / approvals_required / warnings:
        De-duplicated machine readable codes, in first-seen order.
    chargeable_measure:
        Base and chargeable LM with the transform that produced it.
    surcharge_events / quote_line_drafts:
        Surcharges that fired and the article lines they map to.
    """

    classified_vehicle_category: str = UNCLASSIFIED
    matched_category_group: str | None = None
    acceptance_status: AcceptanceStatus = AcceptanceStatus.ALLOWED
    violations: list[str] = Field(default_factory=list)
    approvals_required: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    chargeable_measure: ChargeableMeasure = Field(default_factory=ChargeableMeasure)
    surcharge_events: list[SurchargeEvent] = Field(default_factory=list)
    quote_line_drafts: list[QuoteLineDraft] = Field(default_factory=list)

    @property
    def is_accepted(self) -> bool:
        return self.acceptance_status != AcceptanceStatus.NOT_ALLOWED


def dedupe(codes: Iterable[str]) -> list[str]:
    """Drop repeated codes, keeping first-seen order."""
    seen: dict[str, None] = {}
    for code in codes:
        seen.setdefault(code, None)
    return list(seen)
