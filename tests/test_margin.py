import pytest

from mercator.pricing.margin import MarginCalculator
from mercator.pricing.schemas import PricingProfile


def _profile(*rules):
    return PricingProfile(id=1, name="Test", rules=list(rules))


def test_percent_margin():
    profile = _profile({"id": 1, "margin_type": "PERCENT", "margin_value": 15})
    assert MarginCalculator().calculate_margin("truck", "LM", 1000, profile) == 150.0

    profile = _profile({"id": 1, "margin_type": "percent", "margin_value": 12.5})
    assert MarginCalculator().calculate_margin(None, None, 2000, profile) == 250.0


def test_fixed_margin_ignores_amount():
    profile = _profile({"id": 1, "margin_type": "FIXED", "margin_value": 35})
    assert MarginCalculator().calculate_margin("car", "UNIT", 10, profile) == 35.0


@pytest.mark.parametrize(
    "category, basis, expected",
    [
        ("truck", "LM", 125.0),
        ("TRUCK", "lm", 125.0),
        ("truck", "CBM", 100.0),
        ("car", "LM", 25.0),
        ("car", "CBM", 50.0),
        (None, None, 50.0),
    ],
)
def test_rule_fallback_chain(category, basis, expected):
    profile = _profile(
        {"id": 1, "margin_type": "PERCENT", "margin_value": 5},
        {"id": 2, "vehicle_category": "truck", "margin_type": "PERCENT", "margin_value": 10},
        {"id": 3, "unit_basis": "LM", "margin_type": "FIXED", "margin_value": 25},
        {"id": 4, "vehicle_category": "truck", "unit_basis": "LM", "margin_type": "PERCENT", "margin_value": 12.5},
    )
    assert MarginCalculator().calculate_margin(category, basis, 1000, profile) == expected


def test_inactive_rule_is_skipped():
    profile = _profile(
        {"id": 1, "margin_type": "PERCENT", "margin_value": 5},
        {"id": 2, "vehicle_category": "truck", "margin_type": "PERCENT", "margin_value": 10, "is_active": False},
    )
    assert MarginCalculator().calculate_margin("truck", "LM", 1000, profile) == 50.0


def test_no_profile_or_no_rule_means_no_margin():
    calc = MarginCalculator()
    assert calc.calculate_margin("truck", "LM", 1000, None) == 0.0
    assert calc.calculate_margin("truck", "LM", 1000, _profile()) == 0.0
    only_cars = _profile({"id": 1, "vehicle_category": "car", "margin_type": "FIXED", "margin_value": 20})
    assert calc.calculate_margin("truck", "LM", 1000, only_cars) == 0.0


def test_margin_is_rounded_to_cents():
    profile = _profile({"id": 1, "margin_type": "PERCENT", "margin_value": 7.5})
    assert MarginCalculator().calculate_margin(None, None, 333.33, profile) == 25.0
    assert MarginCalculator().apply_margin(None, None, 333.33, profile) == 358.33
