"""Service entry points shared by the API, the CLI and the Celery tasks.

Each call loads a fresh rule book for the carriers involved, so rule changes
made in the admin UI apply to the next request without any cache
invalidation.
"""

from __future__ import annotations

import logging
from datetime import date

from mercator.pricing.margin import MarginCalculator
from mercator.pricing.profiles import PricingProfileResolver
from mercator.quotation.builder import QuotationPricer
from mercator.quotation.schemas import QuotationPricingResult
from mercator.repository import RuleRepository
from mercator.rules.engine import CarrierRuleEngine
from mercator.rules.schemas import CargoInput, CarrierRuleResult

logger = logging.getLogger("mercator.service")


async def evaluate_cargo(
    repository: RuleRepository,
    cargo: CargoInput,
    as_of: date | None = None,
) -> CarrierRuleResult:
    """Evaluate one cargo against its carrier's current rules."""
    book = await repository.load_rule_book([cargo.carrier_id])
    return CarrierRuleEngine(book, as_of=as_of).process_cargo(cargo)


async def price_quotation(
    repository: RuleRepository,
    quotation_id: int,
    *,
    persist: bool = False,
    as_of: date | None = None,
) -> QuotationPricingResult | None:
    """Price a stored quotation; ``None`` when it does not exist.

    With ``persist=True`` the derived lines, per-item rule outcomes and VAT
    code are written back.
    """
    quotation = await repository.load_quotation(quotation_id)
    if quotation is None:
        logger.info("Quotation %s not found", quotation_id)
        return None

    carriers = [quotation.carrier_id] if quotation.carrier_id is not None else []
    book = await repository.load_rule_book(carriers)
    profiles = await repository.load_pricing_profiles()
    catalog = await repository.load_article_catalog(
        m.article_id for m in book.article_maps
    )

    result = QuotationPricer(book, profiles, catalog, as_of=as_of).price(quotation)
    if persist:
        await repository.save_pricing_result(result)
    return result


async def quote_margin(
    repository: RuleRepository,
    carrier_id: int | None,
    client_id: str | None,
    category: str | None,
    unit_basis: str | None,
    base_amount: float,
    as_of: date | None = None,
) -> tuple[int | None, float]:
    """Resolve the pricing profile and return ``(profile_id, margin)``."""
    profiles = await repository.load_pricing_profiles()
    profile = PricingProfileResolver(profiles).resolve(carrier_id, client_id, as_of)
    margin = MarginCalculator().calculate_margin(category, unit_basis, base_amount, profile)
    return (profile.id if profile else None), margin
