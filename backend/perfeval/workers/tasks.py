"""Celery tasks for evaluation-line maintenance."""
import asyncio
import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from perfeval.workers.celery_app import celery_app
from perfeval.config import get_settings
from perfeval.models import PeriodStatus
from perfeval.models.base import enable_sqlite_savepoints
from perfeval.services.line_validation import LineMappingValidator
from perfeval.services.stores import DirectoryStore

logger = logging.getLogger(__name__)

settings = get_settings()


async def validate_active_periods(
    session_maker: async_sessionmaker,
    perform_cleanup: bool = True,
    performed_by: str = "",
) -> List[Dict[str, Any]]:
    """Validate every in-progress period; one period failing does not stop the rest."""
    async with session_maker() as db:
        periods = await DirectoryStore(db).list_periods(PeriodStatus.in_progress)
        period_ids = [period.id for period in periods]

    results: List[Dict[str, Any]] = []
    for period_id in period_ids:
        async with session_maker() as db:
            try:
                result = await LineMappingValidator(db).validate_period(
                    period_id,
                    perform_cleanup=perform_cleanup,
                    performed_by=performed_by or settings.system_actor,
                )
                results.append(result.as_dict())
            except Exception:
                await db.rollback()
                logger.exception("Line mapping validation failed", extra={"period_id": period_id})
                results.append({"period_id": period_id, "error": True})
    return results


async def _run_validation(perform_cleanup: bool) -> List[Dict[str, Any]]:
    # Fresh engine per run: the worker's event loop is not the one the app engine was built on.
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    if settings.is_sqlite:
        enable_sqlite_savepoints(engine)
    try:
        session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        return await validate_active_periods(session_maker, perform_cleanup=perform_cleanup)
    finally:
        await engine.dispose()


@celery_app.task(name="perfeval.workers.tasks.validate_evaluation_line_mappings")
def validate_evaluation_line_mappings(perform_cleanup: bool = True):
    """Audit line mappings of all in-progress periods and drop invalid ones."""
    if not settings.line_validation_enabled:
        return {"skipped": True}

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        results = loop.run_until_complete(_run_validation(perform_cleanup))
    finally:
        loop.close()

    invalid = sum(r.get("invalid_count", 0) for r in results)
    cleaned = sum(r.get("cleaned_count", 0) for r in results)
    if invalid:
        logger.info(
            "Line mapping validation found invalid mappings",
            extra={"period_count": len(results), "invalid_count": invalid, "cleaned_count": cleaned},
        )
    return {"periods": results, "invalid_count": invalid, "cleaned_count": cleaned}
