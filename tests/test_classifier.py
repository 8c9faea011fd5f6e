from conftest import AS_OF
from mercator.rules.classifier import VehicleClassifier, band_matches
from mercator.rules.resolver import CarrierRuleResolver, RuleBook
from mercator.rules.schemas import UNCLASSIFIED, CargoInput, ClassificationBand


def _classify(book: RuleBook = None, **cargo) -> str:
    resolver = CarrierRuleResolver(book or RuleBook(), as_of=AS_OF)
    return VehicleClassifier(resolver).classify(CargoInput(carrier_id=1, **cargo))


def test_explicit_category_wins():
    assert _classify(category="Truck", quick_bucket="car") == "truck"


def test_unknown_explicit_category_falls_through():
    assert _classify(category="spaceship", commodity_type="general_cargo") == UNCLASSIFIED
    assert _classify(category="spaceship", quick_bucket="van") == "small_van"


def test_flag_implies_category():
    assert _classify(flags=["tank_trailer"], length_cm=1300, width_cm=250, height_cm=380) == "tank_trailer"


def test_classification_band_for_carrier():
    book = RuleBook(
        classification_bands=[
            {
                "id": 1,
                "carrier_id": 1,
                "outcome_vehicle_category": "big_van",
                "min_height_cm": 200,
                "max_height_cm": 280,
            },
            {
                "id": 2,
                "carrier_id": 2,
                "outcome_vehicle_category": "bus",
                "min_height_cm": 200,
            },
        ]
    )
    assert _classify(book, length_cm=600, width_cm=210, height_cm=250) == "big_van"


def test_band_priority_orders_overlapping_bands():
    book = RuleBook(
        classification_bands=[
            {"id": 1, "carrier_id": 1, "outcome_vehicle_category": "truck", "min_length_cm": 500},
            {
                "id": 2,
                "carrier_id": 1,
                "outcome_vehicle_category": "bus",
                "min_length_cm": 500,
                "priority": 5,
            },
        ]
    )
    assert _classify(book, length_cm=1200, width_cm=250, height_cm=350) == "bus"


def test_band_or_logic():
    band = ClassificationBand(
        id=3,
        carrier_id=1,
        outcome_vehicle_category="car",
        max_length_cm=300,
        max_weight_kg=1000,
        rule_logic="OR",
    )
    assert band_matches(band, CargoInput(carrier_id=1, length_cm=500, weight_kg=800))
    assert not band_matches(band, CargoInput(carrier_id=1, length_cm=500, weight_kg=1800))


def test_band_bound_on_missing_value_does_not_hold():
    band = ClassificationBand(id=4, carrier_id=1, outcome_vehicle_category="car", max_weight_kg=2000)
    assert not band_matches(band, CargoInput(carrier_id=1, length_cm=450))


def test_quick_bucket_and_commodity_default():
    assert _classify(quick_bucket="van") == "small_van"
    assert _classify(quick_bucket="HH") == "high_and_heavy"
    assert _classify(commodity_type="machinery") == "high_and_heavy"


def test_dimension_table():
    assert _classify(length_cm=200, width_cm=80, height_cm=120) == "motorcycle"
    assert _classify(length_cm=450, width_cm=180, height_cm=150) == "car"
    assert _classify(length_cm=480, width_cm=180, height_cm=200) == "small_van"
    assert _classify(length_cm=1200, width_cm=250, height_cm=380) == "truck"
    assert _classify(length_cm=1200, width_cm=300, height_cm=380, weight_kg=55000) == "high_and_heavy"


def test_non_vehicle_commodity_without_hints_is_unclassified():
    assert _classify(commodity_type="general_cargo", length_cm=300, width_cm=200, height_cm=200) == UNCLASSIFIED


def test_missing_dimensions_is_unclassified():
    assert _classify(length_cm=450) == UNCLASSIFIED
