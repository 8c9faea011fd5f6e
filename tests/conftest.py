from datetime import date

import pytest

from mercator.pricing.schemas import PricingProfile
from mercator.quotation.schemas import Article, QuotationRequest
from mercator.rules.resolver import RuleBook

AS_OF = date(2026, 1, 15)


def carrier_book(**overrides) -> RuleBook:
    """Carrier 1 serving the West Africa port group (ports 10 and 11)."""
    tables = {
        "port_groups": [{"id": 50, "carrier_id": 1, "code": "WAF", "port_ids": [10, 11]}],
        "category_groups": [
            {"id": 7, "carrier_id": 1, "code": "HH", "members": ["truck", "high_and_heavy"], "priority": 1},
            {"id": 8, "carrier_id": 1, "code": "CARS", "members": ["car", "suv"]},
        ],
        "acceptance_rules": [
            {
                "id": 1,
                "carrier_id": 1,
                "max_length_cm": 1800,
                "max_width_cm": 400,
                "max_height_cm": 300,
                "soft_max_height_cm": 350,
                "soft_height_requires_approval": True,
                "max_weight_kg": 60000,
            }
        ],
        "transform_rules": [
            {
                "id": 20,
                "carrier_id": 1,
                "transform_code": "OVERWIDTH_LM_RECALC",
                "params": {"trigger_width_gt_cm": 250, "divisor_cm": 250},
            }
        ],
        "surcharge_rules": [
            {
                "id": 30,
                "carrier_id": 1,
                "event_code": "OVERWIDTH",
                "name": "Overwidth surcharge",
                "calc_mode": "WIDTH_LM_BASIS",
                "params": {"trigger_width_gt_cm": 250, "amount_per_lm": 15},
            }
        ],
        "article_maps": [{"id": 40, "carrier_id": 1, "event_code": "OVERWIDTH", "article_id": 900}],
    }
    tables.update(overrides)
    return RuleBook(**tables)


def overwidth_quotation(**overrides) -> QuotationRequest:
    data = {
        "id": 42,
        "robaws_client_id": "C-100",
        "carrier_id": 1,
        "pod_port_id": 10,
        "pod_country_code": "NG",
        "commodity_items": [
            {
                "id": 1,
                "category": "truck",
                "length_cm": 600,
                "width_cm": 300,
                "height_cm": 280,
                "weight_kg": 20000,
            }
        ],
        "articles": [
            {
                "id": 5,
                "article_id": 100,
                "unit_type": "LM",
                "quantity": 1,
                "unit_price": 50,
                "vehicle_category": "truck",
            }
        ],
    }
    data.update(overrides)
    return QuotationRequest(**data)


def global_profile(margin_type="PERCENT", margin_value=10) -> PricingProfile:
    return PricingProfile(
        id=1,
        name="Default",
        rules=[{"id": 1, "margin_type": margin_type, "margin_value": margin_value}],
    )


class FakeRepository:
    """In-memory stand-in for :class:`mercator.repository.RuleRepository`."""

    def __init__(self, book=None, profiles=(), catalog=None, quotations=()):
        self.book = book or RuleBook()
        self.profiles = list(profiles)
        self.catalog = catalog or {}
        self.quotations = {q.id: q for q in quotations}
        self.saved = []
        self.closed = False
        self.ping_error = None

    async def load_rule_book(self, carrier_ids):
        list(carrier_ids)
        return self.book

    async def load_pricing_profiles(self):
        return self.profiles

    async def load_article_catalog(self, article_ids=None):
        return self.catalog

    async def load_quotation(self, quotation_id):
        return self.quotations.get(quotation_id)

    async def save_pricing_result(self, result):
        self.saved.append(result)

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error
        return True

    async def close(self):
        self.closed = True


@pytest.fixture
def book():
    return carrier_book()


@pytest.fixture
def fake_repository():
    return FakeRepository(
        book=carrier_book(),
        profiles=[global_profile()],
        catalog={900: Article(id=900, unit_type="LM", unit_price=12.0)},
        quotations=[overwidth_quotation()],
    )
