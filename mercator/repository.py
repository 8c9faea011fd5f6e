"""Async loader for carrier rules, pricing profiles and quotations.

:class:`RuleRepository` reads the Mercator rule tables with raw SQL through a
SQLAlchemy :class:`AsyncEngine` and validates each row into its pydantic
model.  A row that fails validation is a configuration error: it is logged
and left out, so the engine treats it as a non-matching rule.

It also writes back what the engine derives for a quotation: per-item
chargeable LM and rule outcome, the priced article lines and the project VAT
code.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from mercator.config import settings
from mercator.pricing.schemas import PricingProfile, PricingRule
from mercator.quotation.schemas import (
    Article,
    CommodityItem,
    QuotationPricingResult,
    QuotationRequest,
    QuotationRequestArticle,
)
from mercator.rules.resolver import RuleBook
from mercator.rules.schemas import (
    AcceptanceRule,
    CategoryGroup,
    ClassificationBand,
    PortGroup,
    SurchargeArticleMap,
    SurchargeRule,
    TransformRule,
)

logger = logging.getLogger("mercator.repository")

M = TypeVar("M", bound=BaseModel)

_CARRIER_RULE_TABLES: dict[str, tuple[str, type[BaseModel]]] = {
    "acceptance_rules": ("mercator_carrier_acceptance_rules", AcceptanceRule),
    "transform_rules": ("mercator_carrier_transform_rules", TransformRule),
    "surcharge_rules": ("mercator_carrier_surcharge_rules", SurchargeRule),
    "article_maps": ("mercator_carrier_surcharge_article_maps", SurchargeArticleMap),
    "classification_bands": ("mercator_carrier_classification_bands", ClassificationBand),
}


def _validate_rows(model: type[M], rows: Iterable[Any], table: str) -> list[M]:
    """Validate mapping rows into *model*, logging and skipping bad rows."""
    out: list[M] = []
    for row in rows:
        data = dict(row)
        try:
            out.append(model.model_validate(data))
        except ValidationError as exc:
            logger.warning(
                "Skipping %s row id=%s: %d validation error(s): %s",
                table,
                data.get("id"),
                exc.error_count(),
                exc.errors()[0]["msg"] if exc.errors() else "",
            )
    return out


class RuleRepository:
    """Database access for the rule engine.

    Parameters
    ----------
    engine:
        Optional pre-built SQLAlchemy async engine.  When omitted, one is
        created from :data:`mercator.config.settings`.
    """

    def __init__(self, engine: AsyncEngine | None = None) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Engine access
    # ------------------------------------------------------------------

    async def _get_engine(self) -> AsyncEngine:
        """Return (creating lazily) the shared async SQLAlchemy engine."""
        if self._engine is None:
            self._engine = create_async_engine(
                settings.database_url,
                pool_size=5,
                max_overflow=10,
                echo=False,
            )
        return self._engine

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def ping(self) -> bool:
        engine = await self._get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Rule book
    # ------------------------------------------------------------------

    async def load_rule_book(self, carrier_ids: Iterable[int]) -> RuleBook:
        """Load every rule table for *carrier_ids* into a :class:`RuleBook`.

        Inactive rows are filtered in SQL; effective windows are checked by
        the resolver against the evaluation date.
        """
        ids = sorted({int(c) for c in carrier_ids})
        if not ids:
            return RuleBook()

        engine = await self._get_engine()
        tables: dict[str, list] = {}
        async with engine.connect() as conn:
            for key, (table, model) in _CARRIER_RULE_TABLES.items():
                result = await conn.execute(
                    text(
                        f"SELECT * FROM {table} "
                        "WHERE carrier_id IN :ids AND is_active = TRUE"
                    ).bindparams(bindparam("ids", expanding=True)),
                    {"ids": ids},
                )
                tables[key] = _validate_rows(model, result.mappings().all(), table)

            result = await conn.execute(
                text("""
                    SELECT g.id, g.carrier_id, g.code, g.display_name, g.priority,
                           g.is_active, g.effective_from, g.effective_to,
                           COALESCE(
                               json_agg(m.vehicle_category) FILTER (WHERE m.is_active),
                               '[]'
                           ) AS members
                    FROM mercator_carrier_category_groups g
                    LEFT JOIN mercator_carrier_category_group_members m
                           ON m.carrier_category_group_id = g.id
                    WHERE g.carrier_id IN :ids AND g.is_active = TRUE
                    GROUP BY g.id
                """).bindparams(bindparam("ids", expanding=True)),
                {"ids": ids},
            )
            tables["category_groups"] = _validate_rows(
                CategoryGroup, result.mappings().all(), "mercator_carrier_category_groups"
            )

            result = await conn.execute(
                text("""
                    SELECT g.id, g.carrier_id, g.code, g.is_active,
                           g.effective_from, g.effective_to,
                           COALESCE(
                               json_agg(m.port_id) FILTER (WHERE m.is_active),
                               '[]'
                           ) AS port_ids
                    FROM mercator_carrier_port_groups g
                    LEFT JOIN mercator_carrier_port_group_members m
                           ON m.port_group_id = g.id
                    WHERE g.carrier_id IN :ids AND g.is_active = TRUE
                    GROUP BY g.id
                """).bindparams(bindparam("ids", expanding=True)),
                {"ids": ids},
            )
            tables["port_groups"] = _validate_rows(
                PortGroup, result.mappings().all(), "mercator_carrier_port_groups"
            )

            result = await conn.execute(
                text(
                    "SELECT id, lm_strategy FROM mercator_carriers WHERE id IN :ids"
                ).bindparams(bindparam("ids", expanding=True)),
                {"ids": ids},
            )
            lm_strategies = {row["id"]: row["lm_strategy"] for row in result.mappings().all()}

        book = RuleBook(lm_strategies=lm_strategies, **tables)
        logger.info(
            "Loaded rule book for carriers %s: %d acceptance, %d transform, %d surcharge rules",
            ids,
            len(book.acceptance_rules),
            len(book.transform_rules),
            len(book.surcharge_rules),
        )
        return book

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def load_pricing_profiles(self) -> list[PricingProfile]:
        """Active pricing profiles with their active rules."""
        engine = await self._get_engine()
        async with engine.connect() as conn:
            profiles = await conn.execute(
                text("SELECT * FROM mercator_pricing_profiles WHERE is_active = TRUE")
            )
            profile_rows = [dict(r) for r in profiles.mappings().all()]
            rules = await conn.execute(
                text("SELECT * FROM mercator_pricing_rules WHERE is_active = TRUE")
            )
            rule_rows = _validate_rows(PricingRule, rules.mappings().all(), "mercator_pricing_rules")

        by_profile: dict[int, list[PricingRule]] = {}
        for rule in rule_rows:
            by_profile.setdefault(rule.pricing_profile_id, []).append(rule)
        for row in profile_rows:
            row["rules"] = by_profile.get(row["id"], [])
        return _validate_rows(PricingProfile, profile_rows, "mercator_pricing_profiles")

    async def load_article_catalog(self, article_ids: Iterable[int] | None = None) -> dict[int, Article]:
        engine = await self._get_engine()
        query = "SELECT id, name, unit_type, unit_price, currency FROM mercator_articles"
        params: dict[str, Any] = {}
        stmt = text(query)
        if article_ids is not None:
            ids = sorted({int(a) for a in article_ids})
            if not ids:
                return {}
            stmt = text(query + " WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))
            params["ids"] = ids
        async with engine.connect() as conn:
            result = await conn.execute(stmt, params)
            articles = _validate_rows(Article, result.mappings().all(), "mercator_articles")
        return {a.id: a for a in articles}

    # ------------------------------------------------------------------
    # Quotations
    # ------------------------------------------------------------------

    async def load_quotation(self, quotation_id: int) -> QuotationRequest | None:
        """Quotation request with its commodity items and articles."""
        engine = await self._get_engine()
        async with engine.connect() as conn:
            result = await conn.execute(
                text("""
                    SELECT q.id, q.robaws_client_id, q.carrier_id, q.pod_port_id,
                           q.vessel_name, q.vessel_class, q.basic_freight_amount,
                           q.project_vat_code, p.country_code AS pod_country_code
                    FROM mercator_quotation_requests q
                    LEFT JOIN mercator_ports p ON p.id = q.pod_port_id
                    WHERE q.id = :qid
                """),
                {"qid": quotation_id},
            )
            row = result.mappings().first()
            if row is None:
                return None
            quotation = dict(row)

            items = await conn.execute(
                text("""
                    SELECT * FROM mercator_quotation_commodity_items
                    WHERE quotation_request_id = :qid
                    ORDER BY line_number NULLS LAST, id
                """),
                {"qid": quotation_id},
            )
            quotation["commodity_items"] = _validate_rows(
                CommodityItem, items.mappings().all(), "mercator_quotation_commodity_items"
            )

            articles = await conn.execute(
                text("""
                    SELECT id, article_id, unit_type, quantity, unit_price,
                           vehicle_category, event_code
                    FROM mercator_quotation_request_articles
                    WHERE quotation_request_id = :qid AND event_code IS NULL
                    ORDER BY id
                """),
                {"qid": quotation_id},
            )
            quotation["articles"] = _validate_rows(
                QuotationRequestArticle,
                articles.mappings().all(),
                "mercator_quotation_request_articles",
            )
        return QuotationRequest.model_validate(quotation)

    async def save_pricing_result(self, result: QuotationPricingResult) -> None:
        """Persist the derived quote lines and per-item rule outcomes.

        Surcharge lines are replaced wholesale; article lines are updated in
        place.  The VAT code is written separately so a failure there does
        not roll back the pricing.
        """
        engine = await self._get_engine()
        async with engine.begin() as conn:
            for item_id, item_result in result.item_results.items():
                await conn.execute(
                    text("""
                        UPDATE mercator_quotation_commodity_items
                        SET chargeable_lm = :lm,
                            carrier_rule_meta = CAST(:meta AS jsonb),
                            updated_at = NOW()
                        WHERE id = :id
                    """),
                    {
                        "id": item_id,
                        "lm": Decimal(str(item_result.chargeable_measure.chargeable_lm)),
                        "meta": item_result.model_dump_json(),
                    },
                )

            await conn.execute(
                text("""
                    DELETE FROM mercator_quotation_request_articles
                    WHERE quotation_request_id = :qid AND event_code IS NOT NULL
                """),
                {"qid": result.quotation_id},
            )

            for line in result.lines:
                params = {
                    "qid": result.quotation_id,
                    "article_id": line.article_id,
                    "unit_type": line.unit_type,
                    "qty": Decimal(str(line.quantity)),
                    "price": Decimal(str(line.unit_price)),
                    "selling": Decimal(str(line.selling_amount)),
                    "margin": Decimal(str(line.margin)),
                    "category": line.vehicle_category,
                    "notes": json.dumps(line.meta, default=str),
                }
                if line.source == "article" and line.quotation_article_id is not None:
                    await conn.execute(
                        text("""
                            UPDATE mercator_quotation_request_articles
                            SET quantity = :qty, selling_price = :selling,
                                margin = :margin, updated_at = NOW()
                            WHERE id = :id
                        """),
                        {**params, "id": line.quotation_article_id},
                    )
                else:
                    await conn.execute(
                        text("""
                            INSERT INTO mercator_quotation_request_articles
                                (quotation_request_id, article_id, unit_type, quantity,
                                 unit_price, selling_price, margin, vehicle_category,
                                 event_code, notes)
                            VALUES
                                (:qid, :article_id, :unit_type, :qty, :price, :selling,
                                 :margin, :category, :event_code, CAST(:notes AS jsonb))
                        """),
                        {**params, "event_code": line.meta.get("event_code")},
                    )

        try:
            async with engine.begin() as conn:
                await conn.execute(
                    text("""
                        UPDATE mercator_quotation_requests
                        SET project_vat_code = :vat, updated_at = NOW()
                        WHERE id = :qid
                    """),
                    {"qid": result.quotation_id, "vat": result.project_vat_code},
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to store VAT code %s on quotation %s",
                result.project_vat_code,
                result.quotation_id,
            )
        logger.info(
            "Stored pricing for quotation %s: %d line(s)", result.quotation_id, len(result.lines)
        )
