"""Article quantity calculators.

Each calculator aggregates one measure over a quotation's commodity items:

- stack members that are not the stack base are skipped;
- a stack base contributes its per-stack measure × ``stack_unit_count``;
- a standalone item contributes its per-item measure × ``quantity``.

When the aggregate is zero the article keeps its stored (manual) quantity.
"""

from __future__ import annotations

import logging

from mercator.quotation.schemas import CommodityItem, QuotationRequest, QuotationRequestArticle
from mercator.rules.measure import IsoLaneStrategy

logger = logging.getLogger("mercator.quotation.quantity")


class QuantityCalculator:
    """Base calculator: one unit per item."""

    unit_type = "UNIT"

    def item_measure(self, item: CommodityItem, quotation: QuotationRequest) -> float:
        return 1.0

    def stack_measure(self, item: CommodityItem, quotation: QuotationRequest) -> float:
        return 1.0

    def calculate(self, article: QuotationRequestArticle, quotation: QuotationRequest) -> float:
        total = 0.0
        for item in quotation.commodity_items:
            if item.is_in_stack() and not item.is_stack_base():
                continue
            if item.is_stack_base():
                total += self.stack_measure(item, quotation) * (item.stack_unit_count or 1)
            else:
                total += self.item_measure(item, quotation) * item.quantity
        total = round(total, 4)
        if total <= 0:
            logger.debug(
                "No %s measure on quotation %s; keeping stored quantity %s for article %s",
                self.unit_type,
                quotation.id,
                article.quantity,
                article.article_id,
            )
            return article.quantity
        return total


class DefaultQuantityCalculator(QuantityCalculator):
    pass


class CbmQuantityCalculator(QuantityCalculator):
    unit_type = "CBM"

    def item_measure(self, item: CommodityItem, quotation: QuotationRequest) -> float:
        return item.calculate_cbm()

    def stack_measure(self, item: CommodityItem, quotation: QuotationRequest) -> float:
        return item.calculate_stack_cbm()


class LmQuantityCalculator(QuantityCalculator):
    """Chargeable LM per item.

    ``measures`` maps commodity item ids to the chargeable LM the rule engine
    computed for them (per stack for a stack base). Items without an entry,
    including every item of a quotation without a carrier, fall back to the
    ISO lane formula.
    """

    unit_type = "LM"

    def __init__(self, measures: dict[int, float] | None = None) -> None:
        self.measures = measures or {}
        self._iso = IsoLaneStrategy()

    def item_measure(self, item: CommodityItem, quotation: QuotationRequest) -> float:
        if item.id in self.measures:
            return self.measures[item.id]
        return self._iso_lm(item.length_cm, item.width_cm)

    def stack_measure(self, item: CommodityItem, quotation: QuotationRequest) -> float:
        if item.id in self.measures:
            return self.measures[item.id]
        return self._iso_lm(
            item.stack_length_cm or item.length_cm,
            item.stack_width_cm or item.width_cm,
        )

    def _iso_lm(self, length_cm: float | None, width_cm: float | None) -> float:
        if not length_cm or not width_cm:
            return 0.0
        return round(self._iso.base_lm(length_cm, width_cm), 4)


def quantity_calculator_for(
    article: QuotationRequestArticle,
    measures: dict[int, float] | None = None,
) -> QuantityCalculator:
    """Calculator matching the article's unit type.

    ``measures`` is only used by the LM calculator; see
    :class:`LmQuantityCalculator`.
    """
    unit = (article.unit_type or "").strip().upper()
    if unit in ("LM", "LINEAR_METER", "LINEAR_METRE"):
        return LmQuantityCalculator(measures)
    if unit in ("CBM", "M3"):
        return CbmQuantityCalculator()
    return DefaultQuantityCalculator()
