import pytest

from mercator.quotation.vat import VatResolver


def test_eu_destination_gets_default_code():
    assert VatResolver().resolve("NL") == "21% VF"
    assert VatResolver().resolve(" de ") == "21% VF"


def test_non_eu_destination_gets_export_code():
    assert VatResolver().resolve("NG") == "0% EX"
    assert VatResolver().resolve("us") == "0% EX"


def test_missing_country_uses_default():
    assert VatResolver().resolve(None) == "21% VF"
    assert VatResolver().resolve("") == "21% VF"


def test_invalid_country_raises():
    with pytest.raises(ValueError):
        VatResolver().resolve("NLD")


def test_resolve_or_default_reports_fallback():
    resolver = VatResolver(default_code="21% VF", export_code="0% EX")
    assert resolver.resolve_or_default("12") == ("21% VF", True)
    assert resolver.resolve_or_default("CN") == ("0% EX", False)


def test_codes_can_be_overridden():
    resolver = VatResolver(default_code="BE21", export_code="EXPORT")
    assert resolver.resolve("BE") == "BE21"
    assert resolver.resolve("GH") == "EXPORT"
