"""Mercator quotation package — quantities, VAT and priced quote lines."""

from mercator.quotation.builder import QuotationPricer
from mercator.quotation.quantity import (
    CbmQuantityCalculator,
    DefaultQuantityCalculator,
    LmQuantityCalculator,
    quantity_calculator_for,
)
from mercator.quotation.vat import VatResolver

__all__ = [
    "QuotationPricer",
    "LmQuantityCalculator",
    "CbmQuantityCalculator",
    "DefaultQuantityCalculator",
    "quantity_calculator_for",
    "VatResolver",
]
