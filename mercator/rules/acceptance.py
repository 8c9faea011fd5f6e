"""Carrier acceptance evaluation.

:class:`CarrierAcceptanceEngine` classifies a cargo, resolves its category
group, computes its chargeable measure and checks it against every matching
acceptance rule of the carrier.  Breaches are reported as machine readable
codes:

``violations``
    hard breaches (``max_height_exceeded``, ``must_be_empty_required`` …);
    any violation makes the cargo ``NOT_ALLOWED``.
``approvals_required``
    soft breaches inside a tolerance band (``soft_height_approval``);
    the cargo becomes ``ALLOWED_UPON_REQUEST``.
``warnings``
    informational findings such as ``min_length_below``; the status is
    unchanged.
"""

from __future__ import annotations

import logging

from mercator.rules.classifier import VehicleClassifier
from mercator.rules.measure import ChargeableMeasureEngine
from mercator.rules.resolver import CarrierRuleResolver
from mercator.rules.schemas import (
    UNCLASSIFIED,
    AcceptanceRule,
    AcceptanceStatus,
    CargoInput,
    CarrierRuleResult,
    dedupe,
)

logger = logging.getLogger("mercator.rules.acceptance")

_MAX_ONLY_DIMENSIONS = ("length", "width", "cbm")
_MIN_DIMENSIONS = ("length", "width", "height", "cbm", "weight")


def _cargo_values(cargo: CargoInput) -> dict[str, float | None]:
    return {
        "length": cargo.length_cm,
        "width": cargo.width_cm,
        "height": cargo.height_cm,
        "cbm": cargo.volume_cbm,
        "weight": cargo.weight_kg,
    }


class _Findings:
    __slots__ = ("violations", "approvals", "warnings")

    def __init__(self) -> None:
        self.violations: list[str] = []
        self.approvals: list[str] = []
        self.warnings: list[str] = []


class CarrierAcceptanceEngine:
    """Classification plus acceptance for one cargo on one carrier.

    Parameters
    ----------
    resolver:
        Rule resolver over the request's rule book.
    classifier:
        Vehicle classifier; built on *resolver* when omitted.
    measure_engine:
        Chargeable measure engine; built on *resolver* when omitted.
    """

    def __init__(
        self,
        resolver: CarrierRuleResolver,
        classifier: VehicleClassifier | None = None,
        measure_engine: ChargeableMeasureEngine | None = None,
    ) -> None:
        self.resolver = resolver
        self.classifier = classifier or VehicleClassifier(resolver)
        self.measure_engine = measure_engine or ChargeableMeasureEngine(resolver)

    def evaluate(self, cargo: CargoInput) -> CarrierRuleResult:
        """Classify *cargo* and check it against the carrier's acceptance rules.

        The returned result carries the classification, category group,
        chargeable measure and acceptance outcome; surcharge fields are left
        empty for :class:`~mercator.rules.surcharges.SurchargeEvaluator`.
        """
        category = self.classifier.classify(cargo)
        classified = category != UNCLASSIFIED
        scope_category = category if classified else None

        group = self.resolver.group_for_cargo(cargo, scope_category)
        group_id = group.id if group is not None else cargo.category_group_id

        findings = _Findings()
        if not classified:
            findings.violations.append("classification_failed")

        context = self.resolver.context(cargo, scope_category, group_id)
        rules = self.resolver.acceptance_rules(cargo.carrier_id, context)
        for rule in rules:
            self._check_rule(rule, cargo, findings)

        violations = dedupe(findings.violations)
        approvals = dedupe(findings.approvals)
        if violations:
            status = AcceptanceStatus.NOT_ALLOWED
        elif approvals:
            status = AcceptanceStatus.ALLOWED_UPON_REQUEST
        else:
            status = AcceptanceStatus.ALLOWED

        logger.debug(
            "Carrier %s: %s cargo checked against %d rule(s) -> %s",
            cargo.carrier_id,
            category,
            len(rules),
            status.value,
        )
        return CarrierRuleResult(
            classified_vehicle_category=category,
            matched_category_group=group.code if group is not None else None,
            acceptance_status=status,
            violations=violations,
            approvals_required=approvals,
            warnings=dedupe(findings.warnings),
            chargeable_measure=self.measure_engine.measure(cargo, scope_category, group_id),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_rule(rule: AcceptanceRule, cargo: CargoInput, findings: _Findings) -> None:
        values = _cargo_values(cargo)

        for dimension in _MAX_ONLY_DIMENSIONS:
            value, limit = values[dimension], rule.limit("max", dimension)
            if value is not None and limit is not None and value > limit:
                findings.violations.append(f"max_{dimension}_exceeded")

        _check_soft_limit(
            "height",
            values["height"],
            rule.max_height_cm,
            rule.soft_max_height_cm,
            rule.soft_height_requires_approval,
            findings,
        )
        _check_soft_limit(
            "weight",
            values["weight"],
            rule.max_weight_kg,
            rule.soft_max_weight_kg,
            rule.soft_weight_requires_approval,
            findings,
        )

        for dimension in _MIN_DIMENSIONS:
            value, limit = values[dimension], rule.limit("min", dimension)
            if value is None or limit is None or value >= limit:
                continue
            code = f"min_{dimension}_below"
            if rule.min_is_hard:
                findings.violations.append(code)
            else:
                findings.warnings.append(code)

        if rule.must_be_empty and not cargo.has_flag("empty"):
            findings.violations.append("must_be_empty_required")
        if rule.must_be_self_propelled and cargo.has_flag("non_self_propelled"):
            findings.violations.append("must_be_self_propelled_required")
        if not rule.allows_stacked and cargo.has_flag("stacked"):
            findings.violations.append("stacking_not_allowed")
        if not rule.allows_piggy_back and cargo.has_flag("piggy_back"):
            findings.violations.append("piggy_back_not_allowed")


def _check_soft_limit(
    dimension: str,
    value: float | None,
    hard_max: float | None,
    soft_max: float | None,
    requires_approval: bool,
    findings: _Findings,
) -> None:
    """Above ``hard_max`` but within ``soft_max`` needs approval when the rule
    says so; anything else above ``hard_max`` is a violation."""
    if value is None or hard_max is None or value <= hard_max:
        return
    if requires_approval and soft_max is not None and value <= soft_max:
        findings.approvals.append(f"soft_{dimension}_approval")
    else:
        findings.violations.append(f"max_{dimension}_exceeded")
