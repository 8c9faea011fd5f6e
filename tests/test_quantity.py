import pytest

from mercator.quotation.quantity import (
    CbmQuantityCalculator,
    DefaultQuantityCalculator,
    LmQuantityCalculator,
    quantity_calculator_for,
)
from mercator.quotation.schemas import QuotationRequest, QuotationRequestArticle


def _quotation(*items, carrier_id=None):
    return QuotationRequest(id=1, carrier_id=carrier_id, commodity_items=list(items))


def _article(unit_type="UNIT", quantity=1.0):
    return QuotationRequestArticle(article_id=100, unit_type=unit_type, quantity=quantity)


STACK_BASE = {
    "id": 1,
    "stack_group": 1,
    "length_cm": 600,
    "width_cm": 240,
    "height_cm": 100,
    "stack_length_cm": 600,
    "stack_width_cm": 250,
    "stack_height_cm": 260,
    "stack_cbm": 10,
    "stack_unit_count": 3,
}
STACK_MEMBER = {"id": 2, "stack_group": 1, "cbm": 50, "length_cm": 600, "width_cm": 250, "quantity": 4}
SECOND_STACK_MEMBER = {"id": 3, "stack_group": 1, "cbm": 40, "length_cm": 600, "width_cm": 240}


def test_cbm_uses_stack_measure_times_unit_count_and_skips_members():
    quotation = _quotation(STACK_BASE, STACK_MEMBER, SECOND_STACK_MEMBER)
    assert CbmQuantityCalculator().calculate(_article("CBM"), quotation) == pytest.approx(30.0)


def test_cbm_for_standalone_items():
    quotation = _quotation(
        {"id": 1, "cbm": 2.5, "quantity": 4},
        {"id": 2, "length_cm": 400, "width_cm": 200, "height_cm": 150},
    )
    assert CbmQuantityCalculator().calculate(_article("CBM"), quotation) == pytest.approx(22.0)


def test_lm_without_carrier_uses_iso_lane():
    quotation = _quotation({"id": 1, "length_cm": 500, "width_cm": 250, "quantity": 2})
    assert LmQuantityCalculator().calculate(_article("LM"), quotation) == pytest.approx(10.0)


def test_lm_for_stack_base_uses_stack_dimensions():
    quotation = _quotation(STACK_BASE, STACK_MEMBER, SECOND_STACK_MEMBER)
    assert LmQuantityCalculator().calculate(_article("LM"), quotation) == pytest.approx(18.0)


def test_lm_prefers_engine_measures_over_iso_lane():
    quotation = _quotation(
        {"id": 1, "length_cm": 500, "width_cm": 250, "quantity": 2},
        {"id": 2, "length_cm": 400, "width_cm": 250},
        carrier_id=1,
    )
    calculator = LmQuantityCalculator({1: 8.0})
    # item 2 has no engine measure and is billed on the ISO lane
    assert calculator.calculate(_article("LM"), quotation) == pytest.approx(20.0)


def test_lm_stack_base_measure_is_per_stack():
    quotation = _quotation(STACK_BASE, STACK_MEMBER, SECOND_STACK_MEMBER, carrier_id=1)
    calculator = LmQuantityCalculator({1: 7.5, 2: 99.0, 3: 99.0})
    assert calculator.calculate(_article("LM"), quotation) == pytest.approx(22.5)


def test_unit_count_per_item_and_stack():
    quotation = _quotation({"id": 3, "quantity": 2}, STACK_BASE, STACK_MEMBER)
    assert DefaultQuantityCalculator().calculate(_article(), quotation) == 5


def test_zero_total_keeps_stored_quantity():
    quotation = _quotation({"id": 1, "quantity": 1})
    assert CbmQuantityCalculator().calculate(_article("CBM", quantity=7), quotation) == 7
    assert LmQuantityCalculator().calculate(_article("LM", quantity=3.5), _quotation()) == 3.5


@pytest.mark.parametrize(
    "unit_type, expected",
    [
        ("LM", LmQuantityCalculator),
        ("lm", LmQuantityCalculator),
        ("CBM", CbmQuantityCalculator),
        ("M3", CbmQuantityCalculator),
        ("UNIT", DefaultQuantityCalculator),
        ("SHIPMENT", DefaultQuantityCalculator),
    ],
)
def test_calculator_for_unit_type(unit_type, expected):
    assert isinstance(quantity_calculator_for(_article(unit_type)), expected)
