"""Margin calculation from a pricing profile's rules."""

from __future__ import annotations

import logging

from mercator.pricing.schemas import MarginType, PricingProfile, PricingRule

logger = logging.getLogger("mercator.pricing.margin")


def _same(rule_value: str | None, wanted: str | None) -> bool:
    if rule_value is None or wanted is None:
        return False
    return rule_value.strip().casefold() == wanted.strip().casefold()


class MarginCalculator:
    """Applies the most specific active rule of a profile.

    Rule order: category and unit basis, category only, unit basis only,
    global.  The first match wins; margins never stack.
    """

    def find_rule(
        self,
        profile: PricingProfile,
        category: str | None,
        unit_basis: str | None,
    ) -> PricingRule | None:
        active = [rule for rule in profile.rules if rule.is_active]
        chain = (
            lambda r: _same(r.vehicle_category, category) and _same(r.unit_basis, unit_basis),
            lambda r: _same(r.vehicle_category, category) and r.unit_basis is None,
            lambda r: r.vehicle_category is None and _same(r.unit_basis, unit_basis),
            lambda r: r.vehicle_category is None and r.unit_basis is None,
        )
        for predicate in chain:
            for rule in sorted(active, key=lambda r: r.id):
                if predicate(rule):
                    return rule
        return None

    def calculate_margin(
        self,
        category: str | None,
        unit_basis: str | None,
        base_amount: float,
        profile: PricingProfile | None,
    ) -> float:
        """Margin amount for *base_amount*.

        Parameters
        ----------
        category:
            Vehicle category of the line (``None`` for non-vehicle lines).
        unit_basis:
            Unit the line is priced in (``LM``, ``CBM``, ``UNIT`` …).
        base_amount:
            Cost the margin applies to.
        profile:
            Resolved pricing profile; ``None`` means no margin.

        Returns
        -------
        float
            ``margin_value`` for FIXED rules, ``base × value / 100`` for
            PERCENT rules, rounded to cents; 0.0 when no rule matches.
        """
        if profile is None:
            return 0.0
        rule = self.find_rule(profile, category, unit_basis)
        if rule is None:
            logger.debug(
                "No margin rule in profile %s for category=%s basis=%s",
                profile.id,
                category,
                unit_basis,
            )
            return 0.0
        if rule.margin_type == MarginType.FIXED:
            return round(float(rule.margin_value), 2)
        return round(float(base_amount) * float(rule.margin_value) / 100, 2)

    def apply_margin(
        self,
        category: str | None,
        unit_basis: str | None,
        base_amount: float,
        profile: PricingProfile | None,
    ) -> float:
        """*base_amount* plus its margin."""
        margin = self.calculate_margin(category, unit_basis, base_amount, profile)
        return round(float(base_amount) + margin, 2)
