"""Project VAT code assignment."""

from __future__ import annotations

import logging

from mercator.config import settings

logger = logging.getLogger("mercator.quotation.vat")

EU_COUNTRY_CODES = frozenset(
    {
        "AT", "BE", "BG", "CY", "CZ", "DE", "DK", "EE", "ES", "FI", "FR", "GR", "HR", "HU",
        "IE", "IT", "LT", "LU", "LV", "MT", "NL", "PL", "PT", "RO", "SE", "SI", "SK",
    }
)


class VatResolver:
    """Intra-EU destinations get the default code, everything else the export code.

    Parameters
    ----------
    default_code / export_code:
        Override :data:`settings.default_vat_code` / :data:`settings.export_vat_code`.
    """

    def __init__(self, default_code: str | None = None, export_code: str | None = None) -> None:
        self.default_code = default_code or settings.default_vat_code
        self.export_code = export_code or settings.export_vat_code

    def resolve(self, pod_country_code: str | None) -> str:
        """VAT code for a destination country.

        Raises
        ------
        ValueError
            The country code is not a two-letter ISO code.
        """
        if pod_country_code is None or not pod_country_code.strip():
            return self.default_code
        country = pod_country_code.strip().upper()
        if len(country) != 2 or not country.isalpha():
            raise ValueError(f"invalid country code {pod_country_code!r}")
        return self.default_code if country in EU_COUNTRY_CODES else self.export_code

    def resolve_or_default(self, pod_country_code: str | None) -> tuple[str, bool]:
        """Like :meth:`resolve` but never raises.

        Returns the code and whether the default had to be used as a fallback.
        """
        try:
            return self.resolve(pod_country_code), False
        except ValueError as exc:
            logger.warning("VAT code assignment failed (%s); using %s", exc, self.default_code)
            return self.default_code, True
