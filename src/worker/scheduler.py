"""APScheduler-задачи воркера: heartbeat, статистика, контроль памяти."""
import asyncio

import psutil
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from redis.asyncio import Redis

from src.config import Settings
from src.models.job import WorkerHeartbeat, WorkerRegistration
from src.scraper.browser import BrowserManager
from src.scraper.proxies import ProxyRegistry
from src.store import save_worker_record
from src.worker.state import WorkerState

WORKER_VERSION = "2.0.0"
MEMORY_CHECK_INTERVAL_SECONDS = 30
CRITICAL_MEMORY_FACTOR = 1.5


def memory_snapshot() -> dict[str, float]:
    """RSS/VMS текущего процесса в МБ."""
    info = psutil.Process().memory_info()
    return {
        "rss_mb": round(info.rss / 1024 / 1024, 1),
        "vms_mb": round(info.vms / 1024 / 1024, 1),
    }


async def register_worker(
    redis: Redis, settings: Settings, proxies: ProxyRegistry
) -> None:
    """Первая запись worker:<id> при старте."""
    registration = WorkerRegistration(
        worker_id=settings.worker_id,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        proxy_stats=proxies.stats(),
        version=WORKER_VERSION,
    )
    await save_worker_record(
        redis,
        settings.worker_id,
        registration.model_dump(mode="json"),
        settings.heartbeat_ttl_seconds,
    )
    logger.info(f"Worker registered: {settings.worker_id}")


async def send_heartbeat(
    redis: Redis,
    settings: Settings,
    state: WorkerState,
    proxies: ProxyRegistry,
    browser: BrowserManager,
) -> None:
    """Обновить worker:<id> с TTL = 3 интервала heartbeat. Ошибки только логируются."""
    try:
        heartbeat = WorkerHeartbeat(
            worker_id=settings.worker_id,
            active_jobs=len(state.active_jobs),
            total_completed=state.total_completed,
            total_failed=state.total_failed,
            uptime_seconds=state.uptime_seconds,
            memory_usage=memory_snapshot(),
            proxy_stats=proxies.stats(),
            browser_stats=browser.stats(),
        )
        await save_worker_record(
            redis,
            settings.worker_id,
            heartbeat.model_dump(mode="json"),
            settings.heartbeat_ttl_seconds,
        )
    except Exception as e:
        logger.error(f"Failed to send heartbeat: {e}")


async def report_stats(state: WorkerState) -> None:
    """Залогировать success rate и throughput."""
    rate = state.success_rate
    rate_str = f"{rate:.1f}%" if rate is not None else "N/A"
    logger.info(
        f"Stats: {state.total_completed} completed, {state.total_failed} failed, "
        f"{rate_str} success, {len(state.active_jobs)} active, "
        f"{state.throughput_per_minute:.2f} jobs/min, {state.uptime_seconds}s uptime"
    )


async def check_memory(settings: Settings, shutdown_event: asyncio.Event) -> None:
    """Выше лимита — warning; выше 1.5× лимита — считаем утечкой и останавливаемся."""
    try:
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
    except psutil.Error as e:
        logger.warning(f"Could not check memory usage: {e}")
        return

    limit = settings.memory_limit_mb
    if memory_mb <= limit:
        return

    logger.warning(f"High memory usage: {memory_mb:.0f}MB (limit: {limit}MB)")
    if memory_mb > limit * CRITICAL_MEMORY_FACTOR:
        logger.error("Memory usage critical, shutting down worker")
        shutdown_event.set()


async def reset_daily_stats(state: WorkerState) -> None:
    logger.info("Resetting daily stats")
    state.reset_counters()


def create_scheduler(
    redis: Redis,
    settings: Settings,
    state: WorkerState,
    proxies: ProxyRegistry,
    browser: BrowserManager,
    shutdown_event: asyncio.Event,
) -> AsyncIOScheduler:
    """Создать и настроить APScheduler."""
    scheduler = AsyncIOScheduler(
        job_defaults={
            # Дефолтный misfire_grace_time=1с слишком мало для async job'ов —
            # при задержке event loop job'ы будут тихо пропускаться.
            "misfire_grace_time": None,
            "coalesce": True,
        }
    )

    scheduler.add_job(
        send_heartbeat,
        "interval",
        seconds=settings.heartbeat_interval_ms / 1000,
        kwargs={
            "redis": redis,
            "settings": settings,
            "state": state,
            "proxies": proxies,
            "browser": browser,
        },
        id="send_heartbeat",
    )

    scheduler.add_job(
        report_stats,
        "interval",
        seconds=settings.stats_interval_ms / 1000,
        kwargs={"state": state},
        id="report_stats",
    )

    scheduler.add_job(
        check_memory,
        "interval",
        seconds=MEMORY_CHECK_INTERVAL_SECONDS,
        kwargs={"settings": settings, "shutdown_event": shutdown_event},
        id="check_memory",
    )

    # Ежедневно в 00:00: сброс счётчиков процесса
    scheduler.add_job(
        reset_daily_stats,
        "cron",
        hour=0,
        minute=0,
        kwargs={"state": state},
        id="reset_daily_stats",
    )

    return scheduler
