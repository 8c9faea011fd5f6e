import pytest

from conftest import AS_OF, carrier_book
from mercator.rules.measure import ChargeableMeasureEngine, compute_cbm
from mercator.rules.resolver import CarrierRuleResolver, RuleBook
from mercator.rules.schemas import CargoInput


def _engine(book: RuleBook) -> ChargeableMeasureEngine:
    return ChargeableMeasureEngine(CarrierRuleResolver(book, as_of=AS_OF))


def test_iso_lm_for_standard_width_without_transform():
    measure = _engine(RuleBook()).compute_chargeable_lm(500, 250, carrier_id=1)
    assert measure.base_lm == pytest.approx(5.0)
    assert measure.chargeable_lm == pytest.approx(5.0)
    assert measure.applied_transform_rule_id is None


def test_narrow_cargo_still_occupies_a_full_lane():
    measure = _engine(RuleBook()).compute_chargeable_lm(420, 180, carrier_id=1)
    assert measure.base_lm == pytest.approx(4.2)


def test_overwidth_transform_recalculates_on_footprint():
    book = carrier_book(
        transform_rules=[
            {
                "id": 20,
                "carrier_id": 1,
                "transform_code": "OVERWIDTH_LM_RECALC",
                "params": {"trigger_width_gt_cm": 250, "divisor_cm": 200},
            }
        ]
    )
    measure = _engine(book).compute_chargeable_lm(600, 300, carrier_id=1)
    assert measure.base_lm == pytest.approx(7.2)
    assert measure.chargeable_lm == pytest.approx(9.0)
    assert measure.applied_transform_rule_id == 20
    assert measure.meta["trigger_width_gt_cm"] == 250.0
    assert measure.meta["divisor_cm"] == 200.0
    assert "Overwidth" in measure.meta["transform_reason"]


def test_overwidth_transform_does_not_fire_at_or_below_trigger():
    measure = _engine(carrier_book()).compute_chargeable_lm(600, 250, carrier_id=1)
    assert measure.chargeable_lm == pytest.approx(6.0)
    assert measure.applied_transform_rule_id is None


def test_min_lm_floor():
    book = carrier_book(
        transform_rules=[
            {"id": 21, "carrier_id": 1, "transform_code": "MIN_LM", "params": {"min_lm": 3}}
        ]
    )
    engine = _engine(book)
    short = engine.compute_chargeable_lm(250, 200, carrier_id=1)
    assert short.base_lm == pytest.approx(2.5)
    assert short.chargeable_lm == pytest.approx(3.0)
    assert short.applied_transform_rule_id == 21

    long = engine.compute_chargeable_lm(500, 200, carrier_id=1)
    assert long.chargeable_lm == pytest.approx(5.0)
    assert long.applied_transform_rule_id is None


def test_most_specific_transform_wins():
    book = carrier_book(
        transform_rules=[
            {
                "id": 20,
                "carrier_id": 1,
                "transform_code": "OVERWIDTH_LM_RECALC",
                "params": {"trigger_width_gt_cm": 250, "divisor_cm": 250},
            },
            {
                "id": 22,
                "carrier_id": 1,
                "port_id": 10,
                "transform_code": "OVERWIDTH_LM_RECALC",
                "params": {"trigger_width_gt_cm": 250, "divisor_cm": 200},
            },
        ]
    )
    engine = _engine(book)
    at_port = engine.compute_chargeable_lm(600, 300, carrier_id=1, port_id=10)
    elsewhere = engine.compute_chargeable_lm(600, 300, carrier_id=1, port_id=99)
    assert at_port.applied_transform_rule_id == 22
    assert at_port.chargeable_lm == pytest.approx(9.0)
    assert elsewhere.applied_transform_rule_id == 20
    assert elsewhere.chargeable_lm == pytest.approx(7.2)


def test_next_rule_applies_when_most_specific_trigger_does_not_fire():
    book = carrier_book(
        transform_rules=[
            {
                "id": 22,
                "carrier_id": 1,
                "port_id": 10,
                "transform_code": "OVERWIDTH_LM_RECALC",
                "params": {"trigger_width_gt_cm": 250, "divisor_cm": 200},
            },
            {"id": 23, "carrier_id": 1, "transform_code": "MIN_LM", "params": {"min_lm": 3}},
        ]
    )
    measure = _engine(book).compute_chargeable_lm(250, 200, carrier_id=1, port_id=10)
    assert measure.applied_transform_rule_id == 23
    assert measure.chargeable_lm == pytest.approx(3.0)


@pytest.mark.parametrize("length, width", [(None, 250), (500, None), (0, 250), (500, -10)])
def test_missing_or_zero_dimensions_yield_zero(length, width):
    measure = _engine(carrier_book()).compute_chargeable_lm(length, width, carrier_id=1)
    assert measure.base_lm == 0.0
    assert measure.chargeable_lm == 0.0
    assert measure.applied_transform_rule_id is None


def test_carrier_lm_strategy_is_used():
    engine = _engine(RuleBook(lm_strategies={1: "length", 2: "footprint", 3: "bogus"}))
    assert engine.compute_chargeable_lm(600, 300, carrier_id=1).base_lm == pytest.approx(6.0)
    assert engine.compute_chargeable_lm(400, 200, carrier_id=2).base_lm == pytest.approx(3.2)
    assert engine.compute_chargeable_lm(400, 200, carrier_id=3).base_lm == pytest.approx(4.0)


def test_transform_for_another_carrier_is_ignored():
    measure = _engine(carrier_book()).compute_chargeable_lm(600, 300, carrier_id=2)
    assert measure.applied_transform_rule_id is None


def test_measure_includes_volume():
    cargo = CargoInput(carrier_id=1, length_cm=500, width_cm=250, height_cm=200)
    measure = _engine(RuleBook()).measure(cargo, "truck", None)
    assert measure.cbm == pytest.approx(25.0)
    assert compute_cbm(500, 250, None) == 0.0
