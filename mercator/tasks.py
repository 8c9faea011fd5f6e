"""Mercator Celery tasks.

Each task wraps an async function via the shared ``_run_async`` helper.

Task inventory:
    1. reprice_quotation — re-run rules and margins for a quotation and store the lines
    2. health_check      — verify database connectivity and log system health
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Coroutine, TypeVar

from celery import Task
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from mercator.celery_app import app
from mercator.config import settings
from mercator.repository import RuleRepository
from mercator.service import price_quotation

logger = logging.getLogger("mercator.tasks")

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Execute an async coroutine from a synchronous Celery task."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Task 1: reprice_quotation
# ---------------------------------------------------------------------------


@app.task(
    name="mercator.tasks.reprice_quotation",
    bind=True,
    max_retries=settings.reprice_max_retries,
    default_retry_delay=settings.reprice_retry_delay_seconds,
    queue="pricing",
)
def reprice_quotation(self: Task, quotation_id: int) -> dict:
    """Re-price a quotation after its cargo, carrier or schedule changed.

    Database errors are retried; a missing quotation is reported, not retried.

    Returns:
        Dict with ``quotation_id``, ``status`` and, when priced, ``lines``,
        ``pricing_profile_id``, ``project_vat_code`` and ``warnings``.
    """
    logger.info("Task: reprice_quotation started for quotation %s", quotation_id)
    try:
        return _run_async(_reprice_quotation_async(quotation_id))
    except SQLAlchemyError as exc:
        logger.warning("reprice_quotation %s failed, retrying: %s", quotation_id, exc)
        raise self.retry(exc=exc)


async def _reprice_quotation_async(quotation_id: int) -> dict:
    repository = RuleRepository()
    try:
        result = await price_quotation(repository, quotation_id, persist=True)
    finally:
        await repository.close()

    if result is None:
        return {"quotation_id": quotation_id, "status": "not_found"}
    return {
        "quotation_id": quotation_id,
        "status": "priced",
        "lines": len(result.lines),
        "pricing_profile_id": result.pricing_profile_id,
        "project_vat_code": result.project_vat_code,
        "warnings": result.warnings,
    }


# ---------------------------------------------------------------------------
# Task 2: health_check
# ---------------------------------------------------------------------------


@app.task(
    name="mercator.tasks.health_check",
    bind=True,
    max_retries=1,
    default_retry_delay=30,
    queue="default",
)
def health_check(self: Task) -> dict:
    """Verify PostgreSQL connectivity and count active rule rows."""
    return _run_async(_health_check_async())


async def _health_check_async() -> dict:
    """Async implementation of the health_check task."""
    from mercator.db import async_session, engine

    report: dict = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "unknown",
        "active_carriers": 0,
        "active_rules": 0,
        "issues": [],
    }

    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        report["database"] = "ok"
    except (SQLAlchemyError, OSError) as exc:
        report["database"] = f"error: {exc}"
        report["issues"].append(f"Database connection failed: {exc}")
        report["status"] = "unhealthy"
        logger.error("Health check: DB connectivity failed: %s", exc)
        await engine.dispose()
        return report

    try:
        async with async_session() as session:
            carriers = await session.execute(
                text("SELECT COUNT(*) FROM mercator_carriers WHERE is_active = TRUE")
            )
            report["active_carriers"] = int(carriers.scalar() or 0)
            rules = await session.execute(
                text(
                    "SELECT (SELECT COUNT(*) FROM mercator_carrier_acceptance_rules WHERE is_active)"
                    " + (SELECT COUNT(*) FROM mercator_carrier_surcharge_rules WHERE is_active)"
                )
            )
            report["active_rules"] = int(rules.scalar() or 0)
        if report["active_carriers"] and not report["active_rules"]:
            report["issues"].append("Active carriers without any acceptance or surcharge rules")
            report["status"] = "degraded"
    except SQLAlchemyError as exc:
        logger.warning("Health check: could not count rule rows: %s", exc)
    finally:
        await engine.dispose()

    logger.info("Health check: %s (%d issue(s))", report["status"], len(report["issues"]))
    return report
