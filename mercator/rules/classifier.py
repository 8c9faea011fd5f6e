"""Vehicle classification.

Maps a cargo input onto one of the 22 vehicle category keys, or the
``unclassified`` sentinel when nothing applies.  The steps are tried in
order and the first hit wins:

1. an explicit, known ``category`` on the input;
2. a cargo flag that implies a category (``tank_trailer``, ``tank_truck``);
3. the carrier's classification bands;
4. the quick bucket chosen at intake;
5. the commodity-type default;
6. the vehicle dimension table.
"""

from __future__ import annotations

import logging

from mercator.rules.resolver import CarrierRuleResolver
from mercator.rules.schemas import (
    UNCLASSIFIED,
    VEHICLE_CATEGORIES,
    CargoInput,
    ClassificationBand,
    normalise_text,
)

logger = logging.getLogger("mercator.rules.classifier")

FLAG_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("tank_trailer", "tank_trailer"),
    ("tank_truck", "tank_truck"),
)

QUICK_BUCKETS: dict[str, str] = {
    "motorcycle": "motorcycle",
    "car": "car",
    "suv": "suv",
    "van": "small_van",
    "small_van": "small_van",
    "big_van": "big_van",
    "truck": "truck",
    "lm": "truck",
    "lm_cargo": "truck",
    "bus": "bus",
    "trailer": "trailer",
    "hh": "high_and_heavy",
    "high_and_heavy": "high_and_heavy",
}

COMMODITY_TYPE_DEFAULTS: dict[str, str] = {
    "machinery": "high_and_heavy",
}

# (category, max height cm, max cbm) for self-propelled vehicles, smallest first.
VEHICLE_DIMENSION_TABLE: tuple[tuple[str, float, float], ...] = (
    ("car", 170.0, 13.0),
    ("small_van", 210.0, 18.0),
    ("big_van", 260.0, 28.0),
)
MOTORCYCLE_MAX_LENGTH_CM = 250.0
MOTORCYCLE_MAX_WIDTH_CM = 100.0
HIGH_AND_HEAVY_MIN_WEIGHT_KG = 40_000.0

_VEHICLE_COMMODITY_TYPES = {None, "vehicle", "vehicles"}

_BAND_DIMENSIONS: tuple[tuple[str, str, str], ...] = (
    ("length_cm", "min_length_cm", "max_length_cm"),
    ("width_cm", "min_width_cm", "max_width_cm"),
    ("height_cm", "min_height_cm", "max_height_cm"),
    ("volume_cbm", "min_cbm", "max_cbm"),
    ("weight_kg", "min_weight_kg", "max_weight_kg"),
)


def band_matches(band: ClassificationBand, cargo: CargoInput) -> bool:
    """Check *cargo* against one classification band.

    Only bounds the band declares take part.  A band without bounds matches
    any cargo of its commodity type.
    """
    if band.commodity_type and normalise_text(band.commodity_type) != normalise_text(
        cargo.commodity_type
    ):
        return False

    checks: list[bool] = []
    for attr, low_field, high_field in _BAND_DIMENSIONS:
        low, high = getattr(band, low_field), getattr(band, high_field)
        if low is None and high is None:
            continue
        value = getattr(cargo, attr)
        checks.append(
            value is not None
            and (low is None or value >= low)
            and (high is None or value <= high)
        )
    if not checks:
        return True
    if band.rule_logic.strip().upper() == "OR":
        return any(checks)
    return all(checks)


class VehicleClassifier:
    """Deterministic, total classifier for cargo inputs.

    Parameters
    ----------
    resolver:
        Supplies the carrier's classification bands.
    """

    def __init__(self, resolver: CarrierRuleResolver) -> None:
        self.resolver = resolver

    def classify(self, cargo: CargoInput) -> str:
        """Return a vehicle category key or :data:`UNCLASSIFIED`."""
        category, source = self._classify(cargo)
        logger.debug(
            "Carrier %s cargo classified as %s (%s)", cargo.carrier_id, category, source
        )
        return category

    def _classify(self, cargo: CargoInput) -> tuple[str, str]:
        explicit = normalise_text(cargo.category)
        if explicit in VEHICLE_CATEGORIES:
            return explicit, "explicit"
        if explicit is not None:
            logger.info("Ignoring unknown category %r on cargo input", cargo.category)

        for flag, category in FLAG_CATEGORIES:
            if cargo.has_flag(flag):
                return category, f"flag:{flag}"

        for band in self.resolver.classification_bands(cargo.carrier_id):
            if band_matches(band, cargo):
                outcome = normalise_text(band.outcome_vehicle_category)
                if outcome in VEHICLE_CATEGORIES:
                    return outcome, f"band:{band.id}"
                logger.warning(
                    "Classification band %s has unknown outcome %r",
                    band.id,
                    band.outcome_vehicle_category,
                )

        bucket = normalise_text(cargo.quick_bucket)
        if bucket in QUICK_BUCKETS:
            return QUICK_BUCKETS[bucket], f"quick_bucket:{bucket}"

        commodity = normalise_text(cargo.commodity_type)
        if commodity in COMMODITY_TYPE_DEFAULTS:
            return COMMODITY_TYPE_DEFAULTS[commodity], f"commodity_type:{commodity}"

        if commodity in _VEHICLE_COMMODITY_TYPES:
            by_size = self._by_dimensions(cargo)
            if by_size is not None:
                return by_size, "dimensions"

        return UNCLASSIFIED, "none"

    @staticmethod
    def _by_dimensions(cargo: CargoInput) -> str | None:
        if not cargo.length_cm or not cargo.width_cm or not cargo.height_cm:
            return None
        if cargo.length_cm <= MOTORCYCLE_MAX_LENGTH_CM and cargo.width_cm <= MOTORCYCLE_MAX_WIDTH_CM:
            return "motorcycle"
        if cargo.weight_kg is not None and cargo.weight_kg > HIGH_AND_HEAVY_MIN_WEIGHT_KG:
            return "high_and_heavy"
        volume = cargo.volume_cbm or 0.0
        for category, max_height, max_cbm in VEHICLE_DIMENSION_TABLE:
            if cargo.height_cm <= max_height and volume <= max_cbm:
                return category
        return "truck"
