import pytest

from conftest import AS_OF
from mercator.rules.engine import EVALUATION_FAILED, CarrierRuleEngine
from mercator.rules.schemas import AcceptanceStatus, CargoInput


def _overwidth_truck(**overrides):
    data = {
        "carrier_id": 1,
        "pod_port_id": 10,
        "category": "truck",
        "length_cm": 600,
        "width_cm": 300,
        "height_cm": 280,
        "weight_kg": 20000,
    }
    data.update(overrides)
    return CargoInput(**data)


def test_overwidth_truck_is_allowed_with_surcharges(book):
    result = CarrierRuleEngine(book, as_of=AS_OF).process_cargo(_overwidth_truck())

    assert result.acceptance_status == AcceptanceStatus.ALLOWED_WITH_SURCHARGES
    assert result.classified_vehicle_category == "truck"
    assert result.matched_category_group == "HH"
    assert result.chargeable_measure.chargeable_lm == pytest.approx(7.2)
    assert result.chargeable_measure.applied_transform_rule_id == 20
    assert [e.event_code for e in result.surcharge_events] == ["OVERWIDTH"]
    assert result.quote_line_drafts[0].article_id == 900


def test_standard_width_truck_is_plain_allowed(book):
    result = CarrierRuleEngine(book, as_of=AS_OF).process_cargo(_overwidth_truck(width_cm=250))
    assert result.acceptance_status == AcceptanceStatus.ALLOWED
    assert result.surcharge_events == []


def test_approval_is_not_upgraded_by_surcharges(book):
    result = CarrierRuleEngine(book, as_of=AS_OF).process_cargo(_overwidth_truck(height_cm=320))
    assert result.acceptance_status == AcceptanceStatus.ALLOWED_UPON_REQUEST
    assert result.approvals_required == ["soft_height_approval"]
    assert result.surcharge_events


def test_surcharge_warnings_are_merged(book):
    book.surcharge_rules.append(
        book.surcharge_rules[0].model_copy(
            update={"id": 31, "event_code": "BAF", "calc_mode": "PERCENT_OF_BASIC_FREIGHT", "params": {"percentage": 5}}
        )
    )
    result = CarrierRuleEngine(book, as_of=AS_OF).process_cargo(_overwidth_truck())
    assert "basic_freight_missing:BAF" in result.warnings


def test_evaluation_is_deterministic(book):
    engine = CarrierRuleEngine(book, as_of=AS_OF)
    cargo = _overwidth_truck(flags=["piggy_back", "empty"])
    first = engine.process_cargo(cargo)
    second = CarrierRuleEngine(book, as_of=AS_OF).process_cargo(cargo)
    assert first.model_dump_json() == second.model_dump_json()


def test_unexpected_error_yields_not_allowed(book, monkeypatch):
    engine = CarrierRuleEngine(book, as_of=AS_OF)

    def explode(cargo):
        raise RuntimeError("boom")

    monkeypatch.setattr(engine.acceptance, "evaluate", explode)
    result = engine.process_cargo(_overwidth_truck())
    assert result.acceptance_status == AcceptanceStatus.NOT_ALLOWED
    assert result.violations == [EVALUATION_FAILED]
    assert result.surcharge_events == []
