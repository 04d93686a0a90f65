"""Основной цикл воркера — dequeue с backpressure и graceful shutdown."""
import asyncio

from loguru import logger
from redis.asyncio import Redis

from src.config import Settings
from src.scraper.browser import BrowserManager
from src.scraper.scraper import Scraper
from src.store import delete_worker_record, pop_next_job
from src.worker.handlers import handle_job
from src.worker.state import WorkerState

BACKPRESSURE_WAIT_SECONDS = 1.0
IDLE_WAIT_SECONDS = 2.0
ERROR_WAIT_SECONDS = 5.0
DRAIN_TIMEOUT_SECONDS = 30.0
DRAIN_POLL_SECONDS = 1.0


async def _wait_or_shutdown(shutdown_event: asyncio.Event, timeout: float) -> None:
    """Подождать timeout секунд или до shutdown — что наступит раньше."""
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=timeout)
    except TimeoutError:
        pass  # Нормальный таймаут, продолжаем цикл


async def process_job(
    redis: Redis,
    job_id: str,
    scraper: Scraper,
    settings: Settings,
    state: WorkerState,
) -> None:
    """Обработать задачу в фоне; ошибка одной задачи не доходит до цикла."""
    try:
        await handle_job(redis, job_id, scraper, settings, state)
    except Exception as e:
        logger.exception(f"Unhandled error in job {job_id}: {e}")
    finally:
        state.active_jobs.discard(job_id)


async def run_worker(
    redis: Redis,
    scraper: Scraper,
    settings: Settings,
    state: WorkerState,
    shutdown_event: asyncio.Event,
) -> None:
    """
    Основной dequeue-цикл воркера.
    Лимит занят → ждём 1с без dequeue. Очереди пусты → ждём 2с.
    Взятая задача запускается через asyncio.create_task, цикл не ждёт её.
    Останавливается по shutdown_event; дренаж — в graceful_shutdown.
    """
    logger.info(
        f"Worker {settings.worker_id} started "
        f"(concurrent={settings.max_concurrent_jobs})"
    )

    def _on_task_done(t: asyncio.Task[None]) -> None:
        state.tasks.discard(t)

    while not shutdown_event.is_set():
        try:
            if len(state.active_jobs) >= settings.max_concurrent_jobs:
                await _wait_or_shutdown(shutdown_event, BACKPRESSURE_WAIT_SECONDS)
                continue

            job_id = await pop_next_job(redis)
            if job_id is None:
                await _wait_or_shutdown(shutdown_event, IDLE_WAIT_SECONDS)
                continue

            # Регистрируем до create_task, чтобы лимит учитывал задачу сразу
            state.active_jobs.add(job_id)
            t = asyncio.create_task(process_job(redis, job_id, scraper, settings, state))
            state.tasks.add(t)
            t.add_done_callback(_on_task_done)

        except Exception as e:
            logger.exception(f"Error in worker loop: {e}")
            await _wait_or_shutdown(shutdown_event, ERROR_WAIT_SECONDS)

    logger.info("Worker loop stopped, no new jobs will be taken")


async def drain_active_jobs(
    state: WorkerState,
    timeout: float = DRAIN_TIMEOUT_SECONDS,
    poll_interval: float = DRAIN_POLL_SECONDS,
) -> bool:
    """Ждать опустения active_jobs до timeout. False → остались брошенные задачи."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while state.active_jobs and loop.time() < deadline:
        logger.info(f"Waiting for {len(state.active_jobs)} active jobs to complete...")
        await asyncio.sleep(poll_interval)

    if state.active_jobs:
        # Браузерные вызовы не отменяются: задачи истекут по TTL running:<id>
        logger.warning(
            f"Shutdown timeout reached, abandoning {len(state.active_jobs)} jobs: "
            f"{sorted(state.active_jobs)}"
        )
        return False
    return True


async def graceful_shutdown(
    redis: Redis,
    browser: BrowserManager,
    settings: Settings,
    state: WorkerState,
    drain_timeout: float = DRAIN_TIMEOUT_SECONDS,
    poll_interval: float = DRAIN_POLL_SECONDS,
) -> None:
    """Дренаж задач → закрытие браузера → удаление worker:<id>."""
    logger.info("Graceful shutdown initiated")
    await drain_active_jobs(state, timeout=drain_timeout, poll_interval=poll_interval)

    try:
        await browser.cleanup()
    except Exception as e:
        logger.warning(f"Browser cleanup failed: {e}")

    try:
        await delete_worker_record(redis, settings.worker_id)
    except Exception as e:
        logger.warning(f"Failed to delete worker record: {e}")

    logger.info("Graceful shutdown complete")
