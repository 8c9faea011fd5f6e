"""Quotation pricing — turns a quotation request into priced quote lines.

:class:`QuotationPricer` ties the pieces together for one quotation:

1. every standalone item and stack base is evaluated by the
   :class:`~mercator.rules.engine.CarrierRuleEngine` (stack members are
   folded into their base);
2. surcharge drafts are merged per article, event and vehicle category;
3. quantities of the articles already on the quotation are recomputed by
   the matching quantity calculator, LM articles reusing the chargeable
   LM the engine computed per item;
4. the pricing profile is resolved and margins applied per line;
5. the project VAT code is assigned, falling back to the default code.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from mercator.pricing.margin import MarginCalculator
from mercator.pricing.profiles import PricingProfileResolver
from mercator.pricing.schemas import PricingProfile
from mercator.quotation.quantity import quantity_calculator_for
from mercator.quotation.schemas import (
    Article,
    QuotationPricingResult,
    QuotationRequest,
    QuoteLine,
)
from mercator.quotation.vat import VatResolver
from mercator.rules.engine import EVALUATION_FAILED, CarrierRuleEngine
from mercator.rules.resolver import RuleBook
from mercator.rules.schemas import UNCLASSIFIED, CargoInput, QuoteLineDraft, dedupe

logger = logging.getLogger("mercator.quotation.builder")


class QuotationPricer:
    """Prices quotation requests against one request's rules and profiles.

    Parameters
    ----------
    book:
        Carrier rule tables.
    profiles:
        Pricing profiles with their rules.
    catalog:
        Article catalog keyed by article id; supplies unit prices for
        surcharge lines without an amount override.
    as_of:
        Reference date for effective windows.  Defaults to today.
    """

    def __init__(
        self,
        book: RuleBook,
        profiles: Iterable[PricingProfile] = (),
        catalog: dict[int, Article] | None = None,
        as_of: date | None = None,
        vat_resolver: VatResolver | None = None,
    ) -> None:
        self.as_of = as_of or date.today()
        self.engine = CarrierRuleEngine(book, as_of=self.as_of)
        self.profile_resolver = PricingProfileResolver(profiles)
        self.margins = MarginCalculator()
        self.catalog = catalog or {}
        self.vat = vat_resolver or VatResolver()

    def price(self, quotation: QuotationRequest) -> QuotationPricingResult:
        warnings: list[str] = []
        item_results = {}
        merged: dict[tuple[int, str, str | None], QuoteLineDraft] = {}

        schedule = quotation.schedule()
        if schedule is None:
            logger.info("Quotation %s has no carrier selected; skipping rule evaluation", quotation.id)
            warnings.append("carrier_not_selected")
        else:
            for item in quotation.commodity_items:
                if item.is_in_stack() and not item.is_stack_base():
                    continue
                cargo = CargoInput.from_commodity_item(
                    item, schedule, quotation.basic_freight_amount
                )
                result = self.engine.process_cargo(cargo)
                item_results[item.id] = result
                category = result.classified_vehicle_category
                category = category if category != UNCLASSIFIED else None
                for draft in result.quote_line_drafts:
                    self._merge(merged, draft, category)

        profile = self.profile_resolver.resolve(
            quotation.carrier_id, quotation.robaws_client_id, self.as_of
        )
        lm_measures = {
            item_id: result.chargeable_measure.chargeable_lm
            for item_id, result in item_results.items()
            if EVALUATION_FAILED not in result.violations
        }

        lines = []
        for article in quotation.articles:
            quantity = quantity_calculator_for(article, lm_measures).calculate(article, quotation)
            lines.append(
                self._line(
                    article_id=article.article_id,
                    quotation_article_id=article.id,
                    source="article",
                    unit_type=article.unit_type,
                    quantity=quantity,
                    unit_price=article.unit_price,
                    category=article.vehicle_category,
                    profile=profile,
                    meta={"event_code": article.event_code} if article.event_code else {},
                )
            )

        for (article_id, _event, category), draft in merged.items():
            catalog_entry = self.catalog.get(article_id)
            if draft.amount_override is not None:
                unit_price = draft.amount_override
            elif catalog_entry is not None:
                unit_price = catalog_entry.unit_price
            else:
                logger.warning("No price for surcharge article %s; pricing at 0", article_id)
                warnings.append(f"article_price_missing:{article_id}")
                unit_price = 0.0
            lines.append(
                self._line(
                    article_id=article_id,
                    source="surcharge",
                    unit_type=catalog_entry.unit_type if catalog_entry else "UNIT",
                    quantity=draft.qty,
                    unit_price=unit_price,
                    category=category,
                    profile=profile,
                    meta=draft.meta,
                )
            )

        vat_code, fell_back = self.vat.resolve_or_default(quotation.pod_country_code)
        if fell_back:
            warnings.append("vat_code_fallback")

        logger.info(
            "Quotation %s priced: %d item(s) evaluated, %d line(s), profile=%s",
            quotation.id,
            len(item_results),
            len(lines),
            profile.id if profile else None,
        )
        return QuotationPricingResult(
            quotation_id=quotation.id,
            pricing_profile_id=profile.id if profile else None,
            project_vat_code=vat_code,
            item_results=item_results,
            lines=lines,
            warnings=dedupe(warnings),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _merge(
        merged: dict[tuple[int, str, str | None], QuoteLineDraft],
        draft: QuoteLineDraft,
        category: str | None,
    ) -> None:
        key = (draft.article_id, draft.meta.get("event_code", ""), category)
        existing = merged.get(key)
        if existing is None:
            merged[key] = draft
            return
        merged[key] = existing.model_copy(update={"qty": round(existing.qty + draft.qty, 4)})

    def _line(
        self,
        *,
        article_id: int,
        quotation_article_id: int | None = None,
        source: str,
        unit_type: str,
        quantity: float,
        unit_price: float,
        category: str | None,
        profile: PricingProfile | None,
        meta: dict,
    ) -> QuoteLine:
        base_amount = round(quantity * unit_price, 2)
        margin = self.margins.calculate_margin(category, unit_type, base_amount, profile)
        return QuoteLine(
            article_id=article_id,
            quotation_article_id=quotation_article_id,
            source=source,
            unit_type=unit_type,
            quantity=quantity,
            unit_price=unit_price,
            base_amount=base_amount,
            margin=margin,
            selling_amount=round(base_amount + margin, 2),
            vehicle_category=category,
            meta=meta,
        )
