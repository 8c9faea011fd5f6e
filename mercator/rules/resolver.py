"""Rule lookup and specificity ordering over a request-scoped rule book.

:class:`RuleBook` holds every rule table the engine needs for the carriers
involved in one request; it is loaded once (see
:mod:`mercator.repository`) and then passed explicitly to the engines.
:class:`CarrierRuleResolver` answers "which rules apply to this cargo, most
specific first" against that book.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Sequence, TypeVar

from pydantic import BaseModel, Field

from mercator.rules.schemas import (
    AcceptanceRule,
    CargoInput,
    CategoryGroup,
    ClassificationBand,
    PortGroup,
    ScopedRule,
    SurchargeArticleMap,
    SurchargeRule,
    TransformRule,
    normalise_text,
)
from mercator.rules.scope import MatchContext, ScopeMatcher

logger = logging.getLogger("mercator.rules.resolver")

R = TypeVar("R", bound=ScopedRule)

# Points added per scoped dimension when ranking matching rules.
SPECIFICITY_WEIGHTS: dict[str, int] = {
    "vessel_name": 10,
    "port": 8,
    "port_group": 6,
    "vessel_class": 6,
    "category_group": 3,
    "vehicle_category": 2,
}


class RuleBook(BaseModel):
    """All carrier rule tables for one request."""

    acceptance_rules: list[AcceptanceRule] = Field(default_factory=list)
    transform_rules: list[TransformRule] = Field(default_factory=list)
    surcharge_rules: list[SurchargeRule] = Field(default_factory=list)
    article_maps: list[SurchargeArticleMap] = Field(default_factory=list)
    classification_bands: list[ClassificationBand] = Field(default_factory=list)
    category_groups: list[CategoryGroup] = Field(default_factory=list)
    port_groups: list[PortGroup] = Field(default_factory=list)
    lm_strategies: dict[int, str] = Field(
        default_factory=dict, description="carrier id -> LM strategy key"
    )


def _recency(effective_from: date | None) -> tuple[int, int]:
    # Latest effective date first, undated rules last.
    if effective_from is None:
        return (1, 0)
    return (0, -effective_from.toordinal())


def priority_key(rule: ScopedRule) -> tuple:
    """Sort key: priority desc, effective_from desc (null last), id desc."""
    return (-rule.priority, *_recency(rule.effective_from), -rule.id)


class CarrierRuleResolver:
    """Selects the rules that apply to a cargo and orders them.

    Parameters
    ----------
    book:
        Rule tables for the request.
    matcher:
        Scope predicate; a fresh :class:`ScopeMatcher` when omitted.
    as_of:
        Date used for effective windows.  Defaults to today.
    """

    def __init__(
        self,
        book: RuleBook,
        matcher: ScopeMatcher | None = None,
        as_of: date | None = None,
    ) -> None:
        self.book = book
        self.matcher = matcher or ScopeMatcher()
        self.as_of = as_of or date.today()
        self._port_groups: dict[tuple[int, int], frozenset[int]] = {}

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def port_group_ids(self, carrier_id: int, port_id: int | None) -> frozenset[int]:
        """Active port groups of *carrier_id* that contain *port_id*."""
        if port_id is None:
            return frozenset()
        key = (carrier_id, port_id)
        if key not in self._port_groups:
            self._port_groups[key] = frozenset(
                group.id
                for group in self.book.port_groups
                if group.carrier_id == carrier_id
                and group.is_effective(self.as_of)
                and port_id in group.port_ids
            )
        return self._port_groups[key]

    def category_group_for(self, carrier_id: int, category: str | None) -> CategoryGroup | None:
        """Best matching active category group holding *category*.

        Highest group priority wins, then the lowest id.
        """
        wanted = normalise_text(category)
        if wanted is None:
            return None
        candidates = [
            group
            for group in self.book.category_groups
            if group.carrier_id == carrier_id
            and group.is_effective(self.as_of)
            and wanted in group.members
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda g: (-g.priority, g.id))

    def category_group_by_id(self, group_id: int | None) -> CategoryGroup | None:
        if group_id is None:
            return None
        for group in self.book.category_groups:
            if group.id == group_id:
                return group
        return None

    def group_for_cargo(self, cargo: CargoInput, category: str | None) -> CategoryGroup | None:
        """Category group for *cargo*: the explicit id on the input, or the
        carrier group holding *category*."""
        if cargo.category_group_id is not None:
            group = self.category_group_by_id(cargo.category_group_id)
            if group is None:
                logger.warning("Category group %s on cargo input is unknown", cargo.category_group_id)
            return group
        return self.category_group_for(cargo.carrier_id, category)

    def classification_bands(self, carrier_id: int) -> list[ClassificationBand]:
        """Active bands for the carrier, priority desc then id asc."""
        bands = [
            band
            for band in self.book.classification_bands
            if band.carrier_id == carrier_id and band.is_effective(self.as_of)
        ]
        return sorted(bands, key=lambda b: (-b.priority, b.id))

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def context(
        self,
        cargo: CargoInput,
        vehicle_category: str | None,
        category_group_id: int | None,
    ) -> MatchContext:
        return MatchContext(
            port_id=cargo.pod_port_id,
            port_group_ids=self.port_group_ids(cargo.carrier_id, cargo.pod_port_id),
            vehicle_category=vehicle_category,
            category_group_id=category_group_id,
            vessel_name=cargo.vessel_name,
            vessel_class=cargo.vessel_class,
        )

    # ------------------------------------------------------------------
    # Matching and ordering
    # ------------------------------------------------------------------

    def matching(self, rules: Iterable[R], carrier_id: int, context: MatchContext) -> list[R]:
        """Active, in-window rules of *carrier_id* whose scope matches."""
        return [
            rule
            for rule in rules
            if rule.carrier_id == carrier_id
            and rule.is_effective(self.as_of)
            and self.matcher.matches_rule(rule, context)
        ]

    @staticmethod
    def specificity(rule: ScopedRule, context: MatchContext) -> int:
        """Score how narrowly *rule* is scoped for *context*."""
        score = 0
        if rule.vessel_name_scope.values:
            score += SPECIFICITY_WEIGHTS["vessel_name"]
        if context.port_id is not None and context.port_id in rule.port_scope.values:
            score += SPECIFICITY_WEIGHTS["port"]
        elif rule.port_scope.group_ids.intersection(context.port_group_ids):
            score += SPECIFICITY_WEIGHTS["port_group"]
        if rule.vessel_class_scope.values:
            score += SPECIFICITY_WEIGHTS["vessel_class"]
        if rule.category_group_scope.values:
            score += SPECIFICITY_WEIGHTS["category_group"]
        if rule.category_scope.values:
            score += SPECIFICITY_WEIGHTS["vehicle_category"]
        return score

    def by_specificity(self, rules: Sequence[R], context: MatchContext) -> list[R]:
        return sorted(rules, key=lambda r: (-self.specificity(r, context), *priority_key(r)))

    def select_most_specific(self, rules: Sequence[R], context: MatchContext) -> R | None:
        ordered = self.by_specificity(rules, context)
        return ordered[0] if ordered else None

    # ------------------------------------------------------------------
    # Per-table lookups
    # ------------------------------------------------------------------

    def acceptance_rules(self, carrier_id: int, context: MatchContext) -> list[AcceptanceRule]:
        """Matching acceptance rules, most specific first.

        Rules whose minimum exceeds their maximum on any dimension are
        configuration errors and are left out.
        """
        usable = []
        for rule in self.matching(self.book.acceptance_rules, carrier_id, context):
            bad = rule.contradictions()
            if bad:
                logger.warning(
                    "Ignoring acceptance rule %s: min exceeds max on %s",
                    rule.id,
                    ", ".join(bad),
                )
                continue
            usable.append(rule)
        return self.by_specificity(usable, context)

    def transform_rules(self, carrier_id: int, context: MatchContext) -> list[TransformRule]:
        matched = self.matching(self.book.transform_rules, carrier_id, context)
        return self.by_specificity(matched, context)

    def surcharge_rules(self, carrier_id: int, context: MatchContext) -> list[SurchargeRule]:
        matched = self.matching(self.book.surcharge_rules, carrier_id, context)
        return sorted(matched, key=priority_key)

    def article_map(
        self, carrier_id: int, context: MatchContext, event_code: str
    ) -> SurchargeArticleMap | None:
        candidates = [
            mapping
            for mapping in self.matching(self.book.article_maps, carrier_id, context)
            if mapping.event_code == event_code
        ]
        return self.select_most_specific(candidates, context)

    def lm_strategy_key(self, carrier_id: int) -> str | None:
        return self.book.lm_strategies.get(carrier_id)
