import asyncio

import pytest

from conftest import AS_OF
from mercator import service, tasks
from mercator.repository import _validate_rows
from mercator.rules.schemas import AcceptanceRule, AcceptanceStatus, CargoInput


def test_evaluate_cargo(fake_repository):
    cargo = CargoInput(carrier_id=1, category="truck", length_cm=500, width_cm=250)
    result = asyncio.run(service.evaluate_cargo(fake_repository, cargo, AS_OF))
    assert result.acceptance_status == AcceptanceStatus.ALLOWED
    assert result.chargeable_measure.chargeable_lm == pytest.approx(5.0)


def test_price_quotation_missing_returns_none(fake_repository):
    assert asyncio.run(service.price_quotation(fake_repository, 999)) is None


def test_price_quotation_persist(fake_repository):
    result = asyncio.run(service.price_quotation(fake_repository, 42, persist=True, as_of=AS_OF))
    assert result.quotation_id == 42
    assert fake_repository.saved == [result]


def test_quote_margin(fake_repository):
    profile_id, margin = asyncio.run(
        service.quote_margin(fake_repository, 1, None, "truck", "LM", 250.0, AS_OF)
    )
    assert profile_id == 1
    assert margin == 25.0

    fake_repository.profiles = []
    assert asyncio.run(service.quote_margin(fake_repository, 1, None, None, None, 250.0)) == (None, 0.0)


def test_reprice_task_persists_and_closes_repository(fake_repository, monkeypatch):
    monkeypatch.setattr(tasks, "RuleRepository", lambda: fake_repository)

    report = asyncio.run(tasks._reprice_quotation_async(42))
    assert report["status"] == "priced"
    assert report["lines"] == 2
    assert report["project_vat_code"] == "0% EX"
    assert len(fake_repository.saved) == 1
    assert fake_repository.closed

    assert asyncio.run(tasks._reprice_quotation_async(7)) == {"quotation_id": 7, "status": "not_found"}


def test_invalid_rule_rows_are_skipped():
    rows = [
        {"id": 1, "carrier_id": 1, "max_length_cm": 1800},
        {"id": 2, "carrier_id": None, "max_length_cm": 1800},
        {"id": 3, "carrier_id": 1, "max_length_cm": "very long"},
    ]
    rules = _validate_rows(AcceptanceRule, rows, "mercator_carrier_acceptance_rules")
    assert [rule.id for rule in rules] == [1]


def test_celery_app_acks_after_completion_and_schedules_health_check():
    from mercator.celery_app import app
    from mercator.config import settings

    assert app.conf.task_acks_late
    assert app.conf.task_max_retries == settings.reprice_max_retries
    entry = app.conf.beat_schedule["rule-tables-health-check"]
    assert entry["task"] == "mercator.tasks.health_check"
    assert "health_check" in {name.rsplit(".", 1)[-1] for name in app.tasks.keys()}
