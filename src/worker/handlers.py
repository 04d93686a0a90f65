"""Обработка одной задачи: running-запись, скрапинг, результат, счётчики."""
import traceback

from loguru import logger
from redis.asyncio import Redis

from src.config import Settings
from src.models.job import ResultRecord, RunningRecord
from src.scraper.exceptions import ErrorKind, ScrapeError, sanitize_error
from src.scraper.scraper import Scraper
from src.store import (
    delete_running,
    increment_counters,
    load_job,
    save_result,
    save_running,
    update_progress,
)
from src.worker.state import WorkerState


def _to_error(exc: Exception) -> dict:
    """Исключение → {code, message, details} для result:<id>."""
    error = ScrapeError.from_exception(exc)
    payload = error.to_dict()
    # Неклассифицированный сбой: в details полный traceback
    if error.kind is ErrorKind.INTERNAL and not isinstance(exc, ScrapeError):
        payload["details"] = sanitize_error("".join(traceback.format_exception(exc)))
    return payload


async def handle_job(
    redis: Redis,
    job_id: str,
    scraper: Scraper,
    settings: Settings,
    state: WorkerState,
) -> None:
    """
    Полный цикл задачи.
    1. load_job (нет записи → INTERNAL)
    2. running:<id> с progress=0
    3. progress 0.25 → scrape → progress 0.9
    4. result:<id> (ровно один раз), счётчики, progress 1.0
    5. running:<id> удаляется при любом исходе
    """
    worker_id = settings.worker_id
    result_written = False
    logger.info(f"Processing job {job_id}")

    try:
        job = await load_job(redis, job_id)
        if job is None:
            raise ScrapeError(ErrorKind.INTERNAL, "Job data not found")

        await save_running(redis, job_id, RunningRecord(worker_id=worker_id))
        await update_progress(redis, job_id, 0.25)

        result = await scraper.scrape(job.to_request())

        await update_progress(redis, job_id, 0.9)
        await save_result(redis, job_id, ResultRecord.success(result, worker_id))
        result_written = True
        state.total_completed += 1
        await increment_counters(redis, "completed")
        await update_progress(redis, job_id, 1.0)
        logger.info(f"Job completed: {job_id} ({result.meta.fetch_ms}ms, retries={result.meta.retries})")

    except Exception as e:
        if result_written:
            # Результат уже записан, не перезаписываем его ошибкой
            logger.error(f"Bookkeeping failed after result for job {job_id}: {e}")
            return

        error = _to_error(e)
        logger.warning(f"Job failed: {job_id}: {error['message']}")
        await save_result(redis, job_id, ResultRecord.failure(error, worker_id))
        state.total_failed += 1
        await increment_counters(redis, "failed")

    finally:
        try:
            await delete_running(redis, job_id)
        except Exception as e:
            logger.error(f"Failed to delete running record for {job_id}: {e}")
