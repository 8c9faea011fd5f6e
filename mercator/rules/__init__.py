"""Mercator carrier rules package — acceptance, chargeable measure and surcharges.

Exports the public API for evaluating cargo against carrier rules:

- :class:`CarrierRuleEngine` — orchestrates acceptance and surcharge evaluation
- :class:`CarrierAcceptanceEngine` — classification and acceptance limits
- :class:`ChargeableMeasureEngine` — base and chargeable LM with transforms
- :class:`SurchargeEvaluator` — surcharge events and quote line drafts
- :class:`ScopeMatcher` — port / category / vessel scope predicate
- :class:`RuleBook` — request-scoped rule tables
"""

from mercator.rules.scope import ScopeMatcher
from mercator.rules.resolver import CarrierRuleResolver, RuleBook
from mercator.rules.measure import ChargeableMeasureEngine
from mercator.rules.acceptance import CarrierAcceptanceEngine
from mercator.rules.surcharges import SurchargeEvaluator
from mercator.rules.engine import CarrierRuleEngine

__all__ = [
    "CarrierRuleEngine",
    "CarrierAcceptanceEngine",
    "ChargeableMeasureEngine",
    "SurchargeEvaluator",
    "ScopeMatcher",
    "CarrierRuleResolver",
    "RuleBook",
]
