"""Pricing profile resolution.

Precedence, first non-empty tier wins:

1. client-specific profile (``robaws_client_id`` equals the client);
2. carrier default (``carrier_id`` equals the carrier, no client);
3. global profile (neither carrier nor client).

Only active profiles whose effective window contains the reference date are
candidates.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from mercator.pricing.schemas import PricingProfile

logger = logging.getLogger("mercator.pricing.profiles")


def _tie_break(profile: PricingProfile) -> tuple:
    # Carrier-bound first, then latest effective_from (undated last), then highest id.
    dated = profile.effective_from is not None
    return (
        profile.carrier_id is None,
        not dated,
        -(profile.effective_from.toordinal() if dated else 0),
        -profile.id,
    )


class PricingProfileResolver:
    """Picks the pricing profile for a carrier / client pair.

    Parameters
    ----------
    profiles:
        Every pricing profile known to the request, with their rules.
    """

    def __init__(self, profiles: Iterable[PricingProfile]) -> None:
        self.profiles = list(profiles)

    def resolve(
        self,
        carrier_id: int | None,
        client_id: str | int | None,
        as_of: date | None = None,
    ) -> PricingProfile | None:
        """Return the applicable profile, or ``None`` (no margin)."""
        as_of = as_of or date.today()
        client = str(client_id).strip() if client_id is not None else None
        candidates = [p for p in self.profiles if p.is_effective(as_of)]

        tiers = (
            (
                "client",
                [
                    p
                    for p in candidates
                    if client
                    and p.robaws_client_id == client
                    and (p.carrier_id is None or p.carrier_id == carrier_id)
                ],
            ),
            (
                "carrier",
                [
                    p
                    for p in candidates
                    if carrier_id is not None
                    and p.robaws_client_id is None
                    and p.carrier_id == carrier_id
                ],
            ),
            (
                "global",
                [p for p in candidates if p.robaws_client_id is None and p.carrier_id is None],
            ),
        )
        for tier, matches in tiers:
            if matches:
                profile = min(matches, key=_tie_break)
                logger.debug(
                    "Pricing profile %s (%s) selected for carrier=%s client=%s",
                    profile.id,
                    tier,
                    carrier_id,
                    client,
                )
                return profile

        logger.info("No pricing profile for carrier=%s client=%s", carrier_id, client)
        return None
