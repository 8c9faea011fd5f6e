"""Carrier rule engine — the orchestrator for one cargo on one carrier.

:class:`CarrierRuleEngine` runs the acceptance stage (classification,
category group, chargeable measure, acceptance limits) and then the surcharge
stage, and folds both into a single :class:`CarrierRuleResult`.  It never
raises: an unexpected error is logged and reported as a
``NOT_ALLOWED`` result.
"""

from __future__ import annotations

import logging
from datetime import date

from mercator.rules.acceptance import CarrierAcceptanceEngine
from mercator.rules.measure import ChargeableMeasureEngine
from mercator.rules.resolver import CarrierRuleResolver, RuleBook
from mercator.rules.schemas import (
    AcceptanceStatus,
    CargoInput,
    CarrierRuleResult,
    dedupe,
)
from mercator.rules.scope import ScopeMatcher
from mercator.rules.surcharges import SurchargeEvaluator

logger = logging.getLogger("mercator.rules.engine")

EVALUATION_FAILED = "evaluation_failed"


class CarrierRuleEngine:
    """Evaluates cargo against a request-scoped :class:`RuleBook`.

    Parameters
    ----------
    book:
        Rule tables for the carriers involved in the request.
    as_of:
        Date used for rule effective windows.  Defaults to today.

    Example::

        engine = CarrierRuleEngine(book)
        result = engine.process_cargo(CargoInput(carrier_id=1, category="truck",
                                                 length_cm=500, width_cm=250))
    """

    def __init__(self, book: RuleBook, as_of: date | None = None) -> None:
        self.resolver = CarrierRuleResolver(book, ScopeMatcher(), as_of=as_of)
        self.measure_engine = ChargeableMeasureEngine(self.resolver)
        self.acceptance = CarrierAcceptanceEngine(
            self.resolver, measure_engine=self.measure_engine
        )
        self.surcharges = SurchargeEvaluator(self.resolver)

    def process_cargo(self, cargo: CargoInput) -> CarrierRuleResult:
        """Full rule evaluation for *cargo*.

        Returns
        -------
        CarrierRuleResult
            ``ALLOWED`` is upgraded to ``ALLOWED_WITH_SURCHARGES`` when at
            least one surcharge event fired.  Unexpected errors yield
            ``NOT_ALLOWED`` with violation ``evaluation_failed``.
        """
        try:
            result = self.acceptance.evaluate(cargo)
            outcome = self.surcharges.evaluate(result, cargo)
        except Exception:
            logger.exception(
                "Rule evaluation failed for carrier %s (category=%s)",
                cargo.carrier_id,
                cargo.category,
            )
            return CarrierRuleResult(
                acceptance_status=AcceptanceStatus.NOT_ALLOWED,
                violations=[EVALUATION_FAILED],
            )

        status = result.acceptance_status
        if status == AcceptanceStatus.ALLOWED and outcome.events:
            status = AcceptanceStatus.ALLOWED_WITH_SURCHARGES

        final = result.model_copy(
            update={
                "acceptance_status": status,
                "warnings": dedupe([*result.warnings, *outcome.warnings]),
                "surcharge_events": outcome.events,
                "quote_line_drafts": outcome.drafts,
            }
        )
        logger.info(
            "Carrier %s: %s -> %s (%d surcharge event(s), %.2f LM)",
            cargo.carrier_id,
            final.classified_vehicle_category,
            final.acceptance_status.value,
            len(final.surcharge_events),
            final.chargeable_measure.chargeable_lm,
        )
        return final
