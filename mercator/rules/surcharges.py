"""Surcharge calculation and evaluation.

:class:`SurchargeCalculator` turns one surcharge rule into a quantity and an
amount according to its ``calc_mode``.  :class:`SurchargeEvaluator` walks the
carrier's matching surcharge rules, applies trigger conditions and
``exclusive_group`` de-duplication, and maps every event that fires onto the
article configured for its event code.

Calc modes
----------
``FLAT``                      qty 1, ``amount``
``PER_UNIT`` / ``PER_TANK``   qty = unit count, ``amount`` per unit
``PER_LM``                    qty = chargeable LM, ``amount`` per LM
``PERCENT_OF_BASIC_FREIGHT``  qty 1, ``basic freight × percentage / 100``
``WEIGHT_TIER``               qty 1, amount of the matching weight tier
``PER_TON_ABOVE``             qty = tons above ``threshold_kg``
``WIDTH_LM_BASIS``            qty = LM when wider than ``trigger_width_gt_cm``
``WIDTH_STEP_BLOCKS``         qty = started width blocks × LM (or units)
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable

from pydantic import BaseModel, Field

from mercator.rules.resolver import CarrierRuleResolver
from mercator.rules.schemas import (
    UNCLASSIFIED,
    CargoInput,
    CarrierRuleResult,
    ChargeableMeasure,
    QuoteLineDraft,
    SurchargeEvent,
    SurchargeRule,
)
from mercator.rules.scope import MatchContext

logger = logging.getLogger("mercator.rules.surcharges")


class SurchargeCalculation(BaseModel):
    qty: float = 0.0
    amount_basis: str
    amount: float = 0.0
    needs_basic_freight: bool = False


class SurchargeOutcome(BaseModel):
    events: list[SurchargeEvent] = Field(default_factory=list)
    drafts: list[QuoteLineDraft] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def _as_codes(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    return [str(code) for code in raw]


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------


class SurchargeCalculator:
    """Stateless calc-mode dispatcher."""

    def __init__(self) -> None:
        self._modes: dict[str, Callable[..., SurchargeCalculation]] = {
            "FLAT": self._flat,
            "PER_UNIT": self._per_unit,
            "PER_TANK": self._per_unit,
            "PER_LM": self._per_lm,
            "PERCENT_OF_BASIC_FREIGHT": self._percent_of_basic_freight,
            "WEIGHT_TIER": self._weight_tier,
            "PER_TON_ABOVE": self._per_ton_above,
            "WIDTH_LM_BASIS": self._width_lm_basis,
            "WIDTH_STEP_BLOCKS": self._width_step_blocks,
        }

    @property
    def calc_modes(self) -> tuple[str, ...]:
        return tuple(self._modes)

    def calculate(
        self,
        rule: SurchargeRule,
        cargo: CargoInput,
        measure: ChargeableMeasure,
    ) -> SurchargeCalculation:
        """Quantity and amount for *rule* applied to *cargo*.

        Raises
        ------
        ValueError
            Unknown ``calc_mode`` or non-numeric params.
        """
        mode = rule.calc_mode.strip().upper()
        handler = self._modes.get(mode)
        if handler is None:
            raise ValueError(f"unknown calc_mode {rule.calc_mode!r}")
        return handler(mode, rule.params, cargo, measure)

    @staticmethod
    def _flat(mode, params, cargo, measure) -> SurchargeCalculation:
        return SurchargeCalculation(qty=1, amount_basis=mode, amount=float(params.get("amount", 0)))

    @staticmethod
    def _per_unit(mode, params, cargo, measure) -> SurchargeCalculation:
        return SurchargeCalculation(
            qty=cargo.unit_count, amount_basis=mode, amount=float(params.get("amount", 0))
        )

    @staticmethod
    def _per_lm(mode, params, cargo, measure) -> SurchargeCalculation:
        return SurchargeCalculation(
            qty=measure.chargeable_lm, amount_basis=mode, amount=float(params.get("amount", 0))
        )

    @staticmethod
    def _percent_of_basic_freight(mode, params, cargo, measure) -> SurchargeCalculation:
        basic = cargo.basic_freight_amount
        if basic is None or basic <= 0:
            return SurchargeCalculation(amount_basis=mode, needs_basic_freight=True)
        percentage = float(params.get("percentage", 0))
        return SurchargeCalculation(qty=1, amount_basis=mode, amount=round(basic * percentage / 100, 2))

    @staticmethod
    def _weight_tier(mode, params, cargo, measure) -> SurchargeCalculation:
        weight = cargo.weight_kg
        if weight is None:
            return SurchargeCalculation(amount_basis=mode)

        matched = None
        catch_all = None
        for tier in params.get("tiers", []):
            max_kg, min_kg = tier.get("max_kg"), tier.get("min_kg")
            if max_kg is not None and weight <= float(max_kg):
                matched = tier
                break
            if min_kg is not None and weight >= float(min_kg):
                matched = tier
            if max_kg is None:
                catch_all = tier
        matched = matched or catch_all
        if matched is None:
            return SurchargeCalculation(amount_basis=mode)

        amount = float(matched.get("amount", 0))
        per_ton_over = matched.get("per_ton_over")
        if per_ton_over is not None and matched.get("min_kg") is not None:
            amount += (weight - float(matched["min_kg"])) / 1000 * float(per_ton_over)
        return SurchargeCalculation(qty=1, amount_basis=mode, amount=round(amount, 2))

    @staticmethod
    def _per_ton_above(mode, params, cargo, measure) -> SurchargeCalculation:
        threshold = float(params.get("threshold_kg", 0))
        weight = cargo.weight_kg
        if weight is None or weight <= threshold:
            return SurchargeCalculation(amount_basis=mode)
        return SurchargeCalculation(
            qty=round((weight - threshold) / 1000, 4),
            amount_basis=mode,
            amount=float(params.get("amount_per_ton", 0)),
        )

    @staticmethod
    def _width_lm_basis(mode, params, cargo, measure) -> SurchargeCalculation:
        trigger = float(params.get("trigger_width_gt_cm", 250))
        if cargo.width_cm is None or cargo.width_cm <= trigger:
            return SurchargeCalculation(amount_basis=mode)
        qty = measure.chargeable_lm if params.get("use_chargeable_lm", True) else measure.base_lm
        return SurchargeCalculation(
            qty=qty, amount_basis=mode, amount=float(params.get("amount_per_lm", 0))
        )

    @staticmethod
    def _width_step_blocks(mode, params, cargo, measure) -> SurchargeCalculation:
        threshold = float(params.get("threshold_cm", 250))
        block = float(params.get("block_cm", 25))
        trigger = float(params.get("trigger_width_gt_cm", threshold))
        if cargo.width_cm is None or cargo.width_cm <= trigger:
            return SurchargeCalculation(amount_basis=mode)
        blocks = math.ceil(max(0.0, cargo.width_cm - threshold) / block)
        basis = measure.base_lm if params.get("qty_basis", "LM") == "LM" else cargo.unit_count
        return SurchargeCalculation(
            qty=round(blocks * basis, 4),
            amount_basis=mode,
            amount=float(params.get("amount_per_block", 0)),
        )


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class SurchargeEvaluator:
    """Raises surcharge events for an evaluated cargo.

    Parameters
    ----------
    resolver:
        Rule resolver over the request's rule book.
    calculator:
        Calc-mode implementation; a default :class:`SurchargeCalculator`
        when omitted.
    """

    def __init__(
        self,
        resolver: CarrierRuleResolver,
        calculator: SurchargeCalculator | None = None,
    ) -> None:
        self.resolver = resolver
        self.calculator = calculator or SurchargeCalculator()

    def evaluate(self, result: CarrierRuleResult, cargo: CargoInput) -> SurchargeOutcome:
        """Surcharge events and quote line drafts for an acceptance result.

        Rules run in priority order.  A rule fires when its trigger
        conditions hold, its exclusive group has not fired yet and its
        calculated quantity is positive.
        """
        category = result.classified_vehicle_category
        scope_category = category if category != UNCLASSIFIED else None
        group = self.resolver.group_for_cargo(cargo, scope_category)
        context = self.resolver.context(
            cargo, scope_category, group.id if group is not None else cargo.category_group_id
        )

        outcome = SurchargeOutcome()
        fired_groups: set[str] = set()
        for rule in self.resolver.surcharge_rules(cargo.carrier_id, context):
            if not self._triggered(rule, result, cargo):
                continue
            exclusive = rule.exclusive_group
            if exclusive and exclusive in fired_groups:
                logger.debug(
                    "Surcharge rule %s skipped: exclusive group %s already applied",
                    rule.id,
                    exclusive,
                )
                continue

            try:
                calc = self.calculator.calculate(rule, cargo, result.chargeable_measure)
                reason = self._reason(rule, cargo)
            except (AttributeError, TypeError, ValueError, ZeroDivisionError) as exc:
                logger.warning("Surcharge rule %s (%s) skipped: %s", rule.id, rule.event_code, exc)
                continue

            if calc.needs_basic_freight:
                logger.info(
                    "Surcharge %s needs a basic freight amount; event skipped", rule.event_code
                )
                outcome.warnings.append(f"basic_freight_missing:{rule.event_code}")
                continue
            if calc.qty <= 0:
                continue

            event = SurchargeEvent(
                event_code=rule.event_code,
                qty=calc.qty,
                amount_basis=calc.amount_basis,
                amount=calc.amount,
                params=rule.params,
                matched_rule_id=rule.id,
                reason=reason,
            )
            outcome.events.append(event)
            if exclusive:
                fired_groups.add(exclusive)

            draft = self._draft(event, cargo.carrier_id, context)
            if draft is not None:
                outcome.drafts.append(draft)
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _triggered(rule: SurchargeRule, result: CarrierRuleResult, cargo: CargoInput) -> bool:
        approvals = _as_codes(rule.params.get("when_approval"))
        if approvals and not set(approvals) & set(result.approvals_required):
            return False
        violations = _as_codes(rule.params.get("when_violation"))
        if violations and not set(violations) & set(result.violations):
            return False
        flags = _as_codes(rule.params.get("when_flag"))
        if flags and not any(cargo.has_flag(flag.lower()) for flag in flags):
            return False
        return True

    def _draft(
        self, event: SurchargeEvent, carrier_id: int, context: MatchContext
    ) -> QuoteLineDraft | None:
        mapping = self.resolver.article_map(carrier_id, context, event.event_code)
        if mapping is None:
            logger.warning(
                "No article mapped for surcharge event %s on carrier %s",
                event.event_code,
                carrier_id,
            )
            return None
        return QuoteLineDraft(
            article_id=mapping.article_id,
            qty=event.qty,
            amount_override=event.amount if event.amount > 0 else None,
            meta={
                "event_code": event.event_code,
                "qty_mode": mapping.qty_mode,
                "reason": event.reason,
                "matched_rule_id": event.matched_rule_id,
            },
        )

    @staticmethod
    def _reason(rule: SurchargeRule, cargo: CargoInput) -> str:
        reason = rule.name
        width = cargo.width_cm
        mode = rule.calc_mode.strip().upper()
        if mode == "WIDTH_LM_BASIS" and width is not None:
            trigger = rule.params.get("trigger_width_gt_cm", 250)
            reason += f" (width {width:g}cm exceeds {trigger}cm)"
        elif mode == "WIDTH_STEP_BLOCKS" and width is not None:
            threshold = float(rule.params.get("threshold_cm", 250))
            block = float(rule.params.get("block_cm", 25))
            blocks = math.ceil(max(0.0, width - threshold) / block)
            reason += f" ({blocks} blocks x {block:g}cm over {threshold:g}cm)"
        return reason
