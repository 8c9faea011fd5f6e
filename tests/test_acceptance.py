from datetime import date

from conftest import AS_OF, carrier_book
from mercator.rules.acceptance import CarrierAcceptanceEngine
from mercator.rules.resolver import CarrierRuleResolver
from mercator.rules.schemas import UNCLASSIFIED, AcceptanceStatus, CargoInput


def _evaluate(book, **cargo):
    engine = CarrierAcceptanceEngine(CarrierRuleResolver(book, as_of=AS_OF))
    data = {"carrier_id": 1, "pod_port_id": 10, "category": "truck", "length_cm": 600, "width_cm": 250}
    data.update(cargo)
    return engine.evaluate(CargoInput(**data))


def _rule(**fields):
    return {"id": 1, "carrier_id": 1, **fields}


def test_within_limits_is_allowed(book):
    result = _evaluate(book, height_cm=280, weight_kg=20000)
    assert result.acceptance_status == AcceptanceStatus.ALLOWED
    assert result.violations == []
    assert result.approvals_required == []
    assert result.classified_vehicle_category == "truck"
    assert result.matched_category_group == "HH"
    assert result.chargeable_measure.base_lm == 6.0


def test_height_in_soft_band_needs_approval(book):
    result = _evaluate(book, height_cm=310)
    assert result.acceptance_status == AcceptanceStatus.ALLOWED_UPON_REQUEST
    assert result.approvals_required == ["soft_height_approval"]
    assert result.violations == []


def test_height_above_soft_band_is_violation(book):
    result = _evaluate(book, height_cm=360)
    assert result.acceptance_status == AcceptanceStatus.NOT_ALLOWED
    assert result.violations == ["max_height_exceeded"]


def test_soft_band_without_approval_flag_is_violation():
    book = carrier_book(
        acceptance_rules=[_rule(max_height_cm=300, soft_max_height_cm=350)]
    )
    result = _evaluate(book, height_cm=310)
    assert result.violations == ["max_height_exceeded"]


def test_soft_weight_band():
    book = carrier_book(
        acceptance_rules=[
            _rule(max_weight_kg=40000, soft_max_weight_kg=50000, soft_weight_requires_approval=True)
        ]
    )
    assert _evaluate(book, weight_kg=45000).approvals_required == ["soft_weight_approval"]
    assert _evaluate(book, weight_kg=52000).violations == ["max_weight_exceeded"]


def test_max_length_width_and_cbm(book):
    result = _evaluate(book, length_cm=1900, width_cm=420)
    assert result.acceptance_status == AcceptanceStatus.NOT_ALLOWED
    assert result.violations == ["max_length_exceeded", "max_width_exceeded"]

    by_volume = carrier_book(acceptance_rules=[_rule(max_cbm=40)])
    assert _evaluate(by_volume, height_cm=300).violations == ["max_cbm_exceeded"]


def test_soft_minimum_is_warning_and_hard_minimum_is_violation():
    soft = carrier_book(acceptance_rules=[_rule(min_length_cm=700)])
    result = _evaluate(soft)
    assert result.acceptance_status == AcceptanceStatus.ALLOWED
    assert result.warnings == ["min_length_below"]

    hard = carrier_book(acceptance_rules=[_rule(min_length_cm=700, min_is_hard=True)])
    result = _evaluate(hard)
    assert result.acceptance_status == AcceptanceStatus.NOT_ALLOWED
    assert result.violations == ["min_length_below"]


def test_cargo_condition_rules():
    book = carrier_book(
        acceptance_rules=[
            _rule(
                must_be_empty=True,
                must_be_self_propelled=True,
                allows_stacked=False,
                allows_piggy_back=False,
            )
        ]
    )
    result = _evaluate(book, flags=["non_self_propelled", "stacked", "piggy_back"])
    assert result.violations == [
        "must_be_empty_required",
        "must_be_self_propelled_required",
        "stacking_not_allowed",
        "piggy_back_not_allowed",
    ]
    assert _evaluate(book, flags=["empty"]).violations == []


def test_violation_codes_are_deduplicated_across_rules():
    book = carrier_book(
        acceptance_rules=[
            _rule(max_length_cm=500),
            {"id": 2, "carrier_id": 1, "port_id": 10, "max_length_cm": 550},
        ]
    )
    assert _evaluate(book).violations == ["max_length_exceeded"]


def test_contradictory_rule_is_ignored():
    book = carrier_book(acceptance_rules=[_rule(min_length_cm=500, max_length_cm=400)])
    result = _evaluate(book, length_cm=450)
    assert result.acceptance_status == AcceptanceStatus.ALLOWED
    assert result.violations == []


def test_rule_scoped_to_other_port_or_group_does_not_apply():
    book = carrier_book(
        acceptance_rules=[
            _rule(port_id=99, max_length_cm=500),
            {"id": 2, "carrier_id": 1, "category_group_id": 8, "max_length_cm": 500},
        ]
    )
    assert _evaluate(book).violations == []


def test_rule_scoped_to_port_group_applies():
    book = carrier_book(acceptance_rules=[_rule(port_group_ids=[50], max_length_cm=500)])
    assert _evaluate(book, pod_port_id=11).violations == ["max_length_exceeded"]


def test_rule_with_port_and_port_group_applies_to_either():
    book = carrier_book(acceptance_rules=[_rule(port_id=12, port_group_ids=[50], max_length_cm=500)])
    assert _evaluate(book, pod_port_id=12).violations == ["max_length_exceeded"]
    assert _evaluate(book, pod_port_id=10).violations == ["max_length_exceeded"]
    assert _evaluate(book, pod_port_id=99).violations == []


def test_inactive_and_future_rules_are_ignored():
    book = carrier_book(
        acceptance_rules=[
            _rule(max_length_cm=500, is_active=False),
            {"id": 2, "carrier_id": 1, "max_length_cm": 500, "effective_from": date(2027, 1, 1)},
            {"id": 3, "carrier_id": 1, "max_length_cm": 500, "effective_to": date(2025, 12, 31)},
        ]
    )
    assert _evaluate(book).violations == []


def test_unclassified_cargo_is_not_allowed(book):
    result = _evaluate(book, category=None, commodity_type="general_cargo", height_cm=200)
    assert result.classified_vehicle_category == UNCLASSIFIED
    assert result.acceptance_status == AcceptanceStatus.NOT_ALLOWED
    assert "classification_failed" in result.violations
