"""Mercator FastAPI application — carrier rule evaluation and pricing API.

Endpoints
---------
POST  /v1/cargo/evaluate              — evaluate one cargo against carrier rules
POST  /v1/quotations/{id}/price       — price a stored quotation
GET   /v1/pricing/profile             — resolve the pricing profile for carrier/client
POST  /v1/pricing/margin              — margin for an amount under the resolved profile
GET   /v1/health                      — system health check

Authentication is via the ``X-API-Key`` header.  Rate limiting enforces a
maximum of 100 requests per minute per API key using an in-memory sliding
window counter.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from mercator import __version__
from mercator.api.schemas import (
    CargoEvaluationRequest,
    CargoEvaluationResponse,
    HealthResponse,
    MarginRequest,
    MarginResponse,
)
from mercator.config import settings
from mercator.pricing.profiles import PricingProfileResolver
from mercator.pricing.schemas import PricingProfile
from mercator.quotation.schemas import QuotationPricingResult
from mercator.repository import RuleRepository
from mercator.service import evaluate_cargo, price_quotation, quote_margin

logger = logging.getLogger("mercator.api")

# ---------------------------------------------------------------------------
# In-memory rate limiter
# ---------------------------------------------------------------------------

# Maps api_key → list of request timestamps (monotonic seconds)
_rate_limit_windows: dict[str, list[float]] = defaultdict(list)

_RATE_LIMIT_MAX = 100       # requests
_RATE_LIMIT_WINDOW = 60.0   # seconds


def _check_rate_limit(api_key: str) -> None:
    """Enforce 100 requests / 60-second sliding window per API key.

    Raises HTTP 429 when the limit is exceeded.
    """
    now = time.monotonic()
    cutoff = now - _RATE_LIMIT_WINDOW
    _rate_limit_windows[api_key] = [t for t in _rate_limit_windows[api_key] if t > cutoff]
    if len(_rate_limit_windows[api_key]) >= _RATE_LIMIT_MAX:
        logger.warning("Rate limit exceeded for key=%s", api_key[:8])
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded: 100 requests per 60 seconds.",
        )
    _rate_limit_windows[api_key].append(now)


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------

_repository: RuleRepository | None = None


def set_repository(repository: RuleRepository | None) -> None:
    """Inject the repository used by the endpoints (called by lifespan and tests)."""
    global _repository
    _repository = repository


def _get_repository() -> RuleRepository:
    """Return the application-level repository or raise 503."""
    if _repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rule repository not initialised.",
        )
    return _repository


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the database engine and repository; dispose them on shutdown."""
    logger.info("Mercator API starting up (version=%s)", __version__)
    engine = create_async_engine(settings.database_url, pool_size=10, max_overflow=20, echo=False)
    repository = RuleRepository(engine)
    set_repository(repository)

    yield

    logger.info("Mercator API shutting down")
    set_repository(None)
    await repository.close()
    logger.info("Database pool disposed")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Mercator Carrier Rules API",
    description=(
        "Carrier acceptance, chargeable measure, surcharge and margin evaluation "
        "for RoRo freight quotations."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every inbound request with timing."""
    start = time.monotonic()
    response = await call_next(request)
    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "%s %s → %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


async def require_api_key(x_api_key: str = Header(..., alias="X-API-Key")) -> str:
    """Validate the ``X-API-Key`` header and enforce rate limiting.

    Raises
    ------
    HTTPException
        403 if the key is invalid; 429 if rate limit is exceeded.
    """
    if x_api_key != settings.mercator_api_key:
        logger.warning("Invalid API key attempt: %s...", x_api_key[:6])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key.",
        )
    _check_rate_limit(x_api_key)
    return x_api_key


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.post(
    "/v1/cargo/evaluate",
    response_model=CargoEvaluationResponse,
    summary="Evaluate cargo against carrier rules",
    tags=["Rules"],
)
async def evaluate(
    body: CargoEvaluationRequest,
    _key: str = Depends(require_api_key),
) -> CargoEvaluationResponse:
    """Classify the cargo, check carrier acceptance, compute the chargeable
    measure and raise surcharge events."""
    repository = _get_repository()
    t0 = time.monotonic()
    result = await evaluate_cargo(repository, body.cargo, body.as_of)
    return CargoEvaluationResponse(
        carrier_id=body.cargo.carrier_id,
        result=result,
        evaluation_time_ms=round((time.monotonic() - t0) * 1000, 1),
    )


@app.post(
    "/v1/quotations/{quotation_id}/price",
    response_model=QuotationPricingResult,
    summary="Price a stored quotation",
    tags=["Quotations"],
)
async def price(
    quotation_id: int,
    persist: bool = Query(False, description="Write the derived lines back"),
    as_of: date | None = Query(None),
    _key: str = Depends(require_api_key),
) -> QuotationPricingResult:
    repository = _get_repository()
    result = await price_quotation(repository, quotation_id, persist=persist, as_of=as_of)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Quotation {quotation_id} not found.",
        )
    return result


@app.get(
    "/v1/pricing/profile",
    response_model=PricingProfile,
    summary="Resolve the pricing profile for a carrier / client",
    tags=["Pricing"],
)
async def pricing_profile(
    carrier_id: int | None = Query(None),
    client_id: str | None = Query(None),
    as_of: date | None = Query(None),
    _key: str = Depends(require_api_key),
) -> PricingProfile:
    repository = _get_repository()
    profiles = await repository.load_pricing_profiles()
    profile = PricingProfileResolver(profiles).resolve(carrier_id, client_id, as_of)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pricing profile applies.",
        )
    return profile


@app.post(
    "/v1/pricing/margin",
    response_model=MarginResponse,
    summary="Margin for an amount",
    tags=["Pricing"],
)
async def pricing_margin(
    body: MarginRequest,
    _key: str = Depends(require_api_key),
) -> MarginResponse:
    repository = _get_repository()
    profile_id, margin = await quote_margin(
        repository,
        body.carrier_id,
        body.client_id,
        body.vehicle_category,
        body.unit_basis,
        body.base_amount,
        body.as_of,
    )
    return MarginResponse(
        pricing_profile_id=profile_id,
        base_amount=body.base_amount,
        margin=margin,
        selling_amount=round(body.base_amount + margin, 2),
    )


@app.get(
    "/v1/health",
    response_model=HealthResponse,
    summary="System health check",
    tags=["System"],
)
async def health_check(_key: str = Depends(require_api_key)) -> HealthResponse:
    repository = _get_repository()
    try:
        await repository.ping()
    except (SQLAlchemyError, OSError) as exc:
        logger.exception("Health check failed")
        return HealthResponse(status="error", version=__version__, database=str(exc))
    return HealthResponse(status="ok", version=__version__, database="connected")
