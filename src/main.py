"""Точка входа воркера — инициализация и запуск dequeue-цикла."""
import asyncio
import signal
import sys

import redis
import redis.asyncio as aioredis
from loguru import logger

from src.config import check_memory_limit, load_settings
from src.log_sink import create_redis_sink
from src.scraper.browser import BrowserManager
from src.scraper.exceptions import ProxyLoadError, sanitize_error
from src.scraper.proxies import ProxyRegistry
from src.scraper.scraper import Scraper
from src.worker.loop import graceful_shutdown, run_worker
from src.worker.scheduler import create_scheduler, register_worker
from src.worker.state import WorkerState


async def main() -> int:
    """Инициализация и запуск воркера. Возвращает код выхода."""
    settings = load_settings()

    # Логирование
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_level == "DEBUG":
        logger.add("logs/worker.log", rotation="100 MB", retention="7 days")

    logger.info(f"Starting scraper worker {settings.worker_id}")
    check_memory_limit(settings)

    # Пустой или битый файл прокси: воркер не должен брать задачи
    try:
        proxies = ProxyRegistry.from_file(
            settings.proxy_file, max_failures=settings.proxy_rotation_threshold,
        )
    except ProxyLoadError as e:
        logger.error(f"Failed to start worker: {e}")
        return 1

    # Redis
    redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
    sink_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)

    # Персистить WARNING+ логи в Redis
    logger.add(
        create_redis_sink(sink_client, settings.worker_id),
        level="WARNING",
        enqueue=True,
        serialize=False,
    )

    browser = BrowserManager(headless=settings.headless)
    scraper = Scraper(
        browser,
        proxies,
        settings.worker_id,
        default_timeout_ms=settings.default_timeout_ms,
        max_attempts=settings.max_retries,
    )
    state = WorkerState()

    # Graceful shutdown по сигналам и необработанным ошибкам
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    def _on_loop_error(_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        logger.error(f"Unhandled error in event loop: {context.get('exception') or context['message']}")
        shutdown_event.set()

    loop.set_exception_handler(_on_loop_error)

    try:
        await redis_client.ping()
        logger.info("Redis connected")
        await browser.start()
        await register_worker(redis_client, settings, proxies)
    except Exception as e:
        logger.error(f"Failed to start worker: {sanitize_error(str(e))}")
        await browser.cleanup()
        await redis_client.aclose()
        sink_client.close()
        return 1

    logger.info(f"Proxy stats: {proxies.stats()}")

    scheduler = create_scheduler(redis_client, settings, state, proxies, browser, shutdown_event)
    scheduler.start()
    logger.info("Scheduler started")

    try:
        await run_worker(redis_client, scraper, settings, state, shutdown_event)
    finally:
        scheduler.shutdown(wait=False)
        await graceful_shutdown(redis_client, browser, settings, state)
        await redis_client.aclose()
        logger.info("Scraper worker stopped gracefully")
        await logger.complete()
        sink_client.close()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
