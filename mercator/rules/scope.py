"""Scope matching for carrier rules.

A rule is scoped independently on five dimensions.  On each dimension the
rule either declares nothing (global, matches anything) or a set of
individual values and/or group ids; a declared scope matches when the input
value is in the set OR the input's group ids intersect the rule's groups.
A declared scope never matches a missing input value.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from mercator.rules.schemas import ScopedRule, ScopeSpec, normalise_id, normalise_text

logger = logging.getLogger("mercator.rules.scope")


class MatchContext(BaseModel):
    """Input values a rule's scope is checked against."""

    model_config = ConfigDict(frozen=True)

    port_id: int | None = None
    port_group_ids: frozenset[int] = frozenset()
    vehicle_category: str | None = None
    category_group_id: int | None = None
    vessel_name: str | None = None
    vessel_class: str | None = None


class ScopeMatcher:
    """Stateless scope predicate shared by every rule table."""

    def matches(
        self,
        scope: ScopeSpec,
        input_value: Any,
        input_group_ids: Iterable[int] = (),
        *,
        numeric: bool = True,
    ) -> bool:
        """Return ``True`` when *input_value* falls within *scope*.

        Parameters
        ----------
        scope:
            Normalised scope of one rule dimension.
        input_value:
            Value of that dimension on the cargo / schedule.  ``None`` never
            matches a declared scope.
        input_group_ids:
            Groups the input value belongs to (port groups for ports).
        numeric:
            Compare as integer ids (``True``) or as casefolded text.
        """
        if scope.malformed:
            return False
        if scope.is_global:
            return True
        if input_value is None:
            return False

        try:
            value = normalise_id(input_value) if numeric else normalise_text(input_value)
        except ValueError:
            logger.debug("Unusable scope input %r; treating as no match", input_value)
            return False
        if value is None:
            return False

        if value in scope.values:
            return True
        return bool(scope.group_ids.intersection(input_group_ids))

    def matches_rule(self, rule: ScopedRule, context: MatchContext) -> bool:
        """Check *rule* against *context* on all five dimensions."""
        return (
            self.matches(rule.port_scope, context.port_id, context.port_group_ids)
            and self.matches(rule.category_scope, context.vehicle_category, numeric=False)
            and self.matches(rule.category_group_scope, context.category_group_id)
            and self.matches(rule.vessel_name_scope, context.vessel_name, numeric=False)
            and self.matches(rule.vessel_class_scope, context.vessel_class, numeric=False)
        )
