"""Chargeable linear-meter and CBM computation.

The base LM comes from a per-carrier strategy (see :data:`LM_STRATEGIES`);
carrier transform rules may then replace it, e.g. recalculate overwidth
cargo on its real footprint or enforce a minimum chargeable LM.
"""

from __future__ import annotations

import logging
from typing import Any

from mercator.config import settings
from mercator.rules.resolver import CarrierRuleResolver
from mercator.rules.schemas import CargoInput, ChargeableMeasure, TransformRule
from mercator.rules.scope import MatchContext

logger = logging.getLogger("mercator.rules.measure")

DEFAULT_LM_STRATEGY = "iso"


def compute_cbm(length_cm: float | None, width_cm: float | None, height_cm: float | None) -> float:
    """Volume in cubic metres; 0.0 when any dimension is missing."""
    if not length_cm or not width_cm or not height_cm:
        return 0.0
    return round(length_cm * width_cm * height_cm / 1_000_000, 4)


# ---------------------------------------------------------------------------
# LM strategies
# ---------------------------------------------------------------------------


class IsoLaneStrategy:
    """Deck lanes are a fixed width: ``(L_m × max(W_m, lane_m)) / lane_m``.

    Anything narrower than a lane still occupies a full lane, so a 4.2 m car
    costs 4.2 LM and a 3 m wide machine 1.2 LM per metre of length.
    """

    def __init__(self, lane_width_cm: float | None = None) -> None:
        self.lane_width_m = (lane_width_cm or settings.iso_lane_width_cm) / 100

    def base_lm(self, length_cm: float, width_cm: float) -> float:
        length_m, width_m = length_cm / 100, width_cm / 100
        return (length_m * max(width_m, self.lane_width_m)) / self.lane_width_m


class FootprintStrategy:
    """Charge the real footprint against the lane width, no minimum width."""

    def __init__(self, lane_width_cm: float | None = None) -> None:
        self.lane_width_m = (lane_width_cm or settings.iso_lane_width_cm) / 100

    def base_lm(self, length_cm: float, width_cm: float) -> float:
        return (length_cm / 100) * (width_cm / 100) / self.lane_width_m


class LengthOnlyStrategy:
    """Charge length only, regardless of width."""

    def base_lm(self, length_cm: float, width_cm: float) -> float:
        return length_cm / 100


LM_STRATEGIES: dict[str, type] = {
    "iso": IsoLaneStrategy,
    "footprint": FootprintStrategy,
    "length": LengthOnlyStrategy,
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ChargeableMeasureEngine:
    """Computes base and chargeable LM for a cargo on a carrier.

    Parameters
    ----------
    resolver:
        Rule resolver over the request's rule book.  Supplies the carrier's
        LM strategy key and its transform rules.
    """

    OVERWIDTH_LM_RECALC = "OVERWIDTH_LM_RECALC"
    MIN_LM = "MIN_LM"

    def __init__(self, resolver: CarrierRuleResolver) -> None:
        self.resolver = resolver
        self._strategies: dict[int, Any] = {}

    def strategy_for(self, carrier_id: int) -> Any:
        if carrier_id not in self._strategies:
            key = self.resolver.lm_strategy_key(carrier_id) or DEFAULT_LM_STRATEGY
            strategy_cls = LM_STRATEGIES.get(key)
            if strategy_cls is None:
                logger.warning(
                    "Unknown LM strategy %r for carrier %s; using %s",
                    key,
                    carrier_id,
                    DEFAULT_LM_STRATEGY,
                )
                strategy_cls = LM_STRATEGIES[DEFAULT_LM_STRATEGY]
            self._strategies[carrier_id] = strategy_cls()
        return self._strategies[carrier_id]

    def compute_chargeable_lm(
        self,
        length_cm: float | None,
        width_cm: float | None,
        carrier_id: int,
        port_id: int | None = None,
        category: str | None = None,
        vessel_name: str | None = None,
        vessel_class: str | None = None,
        category_group_id: int | None = None,
    ) -> ChargeableMeasure:
        """Base LM from the carrier strategy, then the most specific transform.

        Returns
        -------
        ChargeableMeasure
            ``chargeable_lm`` equals ``base_lm`` and
            ``applied_transform_rule_id`` is ``None`` when no transform rule
            applies.  Missing or zero length/width yields 0.0 for both.
        """
        if not length_cm or not width_cm or length_cm <= 0 or width_cm <= 0:
            return ChargeableMeasure()

        base_lm = round(self.strategy_for(carrier_id).base_lm(length_cm, width_cm), 4)
        measure = ChargeableMeasure(base_lm=base_lm, chargeable_lm=base_lm)

        context = MatchContext(
            port_id=port_id,
            port_group_ids=self.resolver.port_group_ids(carrier_id, port_id),
            vehicle_category=category,
            category_group_id=category_group_id,
            vessel_name=vessel_name,
            vessel_class=vessel_class,
        )
        for rule in self.resolver.transform_rules(carrier_id, context):
            applied = self._apply_transform(rule, length_cm, width_cm, base_lm)
            if applied is None:
                continue
            chargeable, meta = applied
            logger.debug(
                "Transform rule %s (%s) on carrier %s: %.4f -> %.4f LM",
                rule.id,
                rule.transform_code,
                carrier_id,
                base_lm,
                chargeable,
            )
            return measure.model_copy(
                update={
                    "chargeable_lm": round(chargeable, 4),
                    "applied_transform_rule_id": rule.id,
                    "meta": meta,
                }
            )
        return measure

    def measure(
        self,
        cargo: CargoInput,
        category: str | None,
        category_group_id: int | None,
    ) -> ChargeableMeasure:
        """Chargeable LM plus volume for a cargo input."""
        measure = self.compute_chargeable_lm(
            cargo.length_cm,
            cargo.width_cm,
            cargo.carrier_id,
            port_id=cargo.pod_port_id,
            category=category,
            vessel_name=cargo.vessel_name,
            vessel_class=cargo.vessel_class,
            category_group_id=category_group_id,
        )
        cbm = cargo.volume_cbm or 0.0
        return measure.model_copy(update={"cbm": round(cbm, 4)})

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def _apply_transform(
        self,
        rule: TransformRule,
        length_cm: float,
        width_cm: float,
        base_lm: float,
    ) -> tuple[float, dict[str, Any]] | None:
        try:
            if rule.transform_code == self.OVERWIDTH_LM_RECALC:
                return self._overwidth(rule, length_cm, width_cm)
            if rule.transform_code == self.MIN_LM:
                return self._minimum(rule, base_lm)
        except (TypeError, ValueError, ZeroDivisionError) as exc:
            logger.warning("Transform rule %s has unusable params: %s", rule.id, exc)
            return None
        logger.warning(
            "Transform rule %s has unknown transform code %r", rule.id, rule.transform_code
        )
        return None

    @staticmethod
    def _overwidth(
        rule: TransformRule, length_cm: float, width_cm: float
    ) -> tuple[float, dict[str, Any]] | None:
        trigger = float(rule.params.get("trigger_width_gt_cm", settings.iso_lane_width_cm))
        if width_cm <= trigger:
            return None
        divisor = float(rule.params.get("divisor_cm", settings.iso_lane_width_cm))
        chargeable = (length_cm * width_cm) / (divisor * 100)
        return chargeable, {
            "transform_reason": (
                f"Overwidth {width_cm:g}cm > {trigger:g}cm: "
                f"LM recalculated as (L x W) / {divisor:g}"
            ),
            "trigger_width_gt_cm": trigger,
            "divisor_cm": divisor,
        }

    @staticmethod
    def _minimum(rule: TransformRule, base_lm: float) -> tuple[float, dict[str, Any]] | None:
        raw = rule.params.get("min_lm")
        if raw is None:
            return None
        floor = float(raw)
        if base_lm >= floor:
            return None
        return floor, {
            "transform_reason": f"Minimum chargeable LM {floor:g} applied",
            "min_lm": floor,
        }
