"""Mercator pricing package — pricing profile resolution and margin rules."""

from mercator.pricing.margin import MarginCalculator
from mercator.pricing.profiles import PricingProfileResolver

__all__ = [
    "MarginCalculator",
    "PricingProfileResolver",
]
