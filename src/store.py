"""Операции с общим хранилищем (Redis): очереди, записи задач, счётчики, heartbeat."""
import json
from datetime import UTC, datetime
from typing import Any, Literal

from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis

from src.models.job import Job, ResultRecord, RunningRecord

# Порядок опроса = строгий приоритет
QUEUE_KEYS = ("jobs:high", "jobs:normal", "jobs:low")

JOB_TTL_SECONDS = 3600
RUNNING_TTL_SECONDS = 300
RESULT_TTL_SECONDS = 3600


def queue_key(priority: str) -> str:
    return f"jobs:{priority}"


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def running_key(job_id: str) -> str:
    return f"running:{job_id}"


def result_key(job_id: str) -> str:
    return f"result:{job_id}"


def worker_key(worker_id: str) -> str:
    return f"worker:{worker_id}"


def today() -> str:
    """Дата для посуточных счётчиков (UTC, YYYY-MM-DD)."""
    return datetime.now(UTC).date().isoformat()


async def pop_next_job(redis: Redis) -> str | None:
    """Неблокирующий pop: high → normal → low, первый найденный id.

    Продюсер делает LPUSH, воркер — RPOP, поэтому внутри очереди FIFO.
    RPOP атомарен: один id достаётся ровно одному воркеру.
    """
    for key in QUEUE_KEYS:
        job_id = await redis.rpop(key)
        if job_id:
            return job_id
    return None


async def load_job(redis: Redis, job_id: str) -> Job | None:
    """Загрузить job:<id>. Нет записи или битый JSON → None."""
    raw = await redis.get(job_key(job_id))
    if raw is None:
        return None
    try:
        return Job.model_validate_json(raw)
    except ValidationError as e:
        logger.error(f"Invalid job record {job_id}: {e}")
        return None


async def enqueue_job(redis: Redis, job: Job) -> None:
    """Сохранить задачу и поставить в очередь её приоритета (одним pipeline)."""
    async with redis.pipeline(transaction=True) as pipe:
        pipe.setex(job_key(job.id), JOB_TTL_SECONDS, job.model_dump_json())
        pipe.lpush(queue_key(job.priority), job.id)
        pipe.incr("stats:jobs_created")
        await pipe.execute()


async def save_running(redis: Redis, job_id: str, record: RunningRecord) -> None:
    await redis.setex(running_key(job_id), RUNNING_TTL_SECONDS, record.model_dump_json())


async def update_progress(redis: Redis, job_id: str, progress: float) -> None:
    """Чекпоинт прогресса; elapsed_ms пересчитывается от started_at записи."""
    raw = await redis.get(running_key(job_id))
    if raw is None:
        logger.debug(f"No running record for {job_id}, skipping progress {progress}")
        return
    record = RunningRecord.model_validate_json(raw)
    record.progress = progress
    record.elapsed_ms = int((datetime.now(UTC) - record.started_at).total_seconds() * 1000)
    await save_running(redis, job_id, record)


async def delete_running(redis: Redis, job_id: str) -> None:
    await redis.delete(running_key(job_id))


async def save_result(redis: Redis, job_id: str, record: ResultRecord) -> None:
    await redis.setex(
        result_key(job_id),
        RESULT_TTL_SECONDS,
        record.model_dump_json(exclude_none=True),
    )


async def increment_counters(redis: Redis, outcome: Literal["completed", "failed"]) -> None:
    """stats:jobs_<outcome> и посуточный stats:jobs_<outcome>:<date>."""
    async with redis.pipeline(transaction=False) as pipe:
        pipe.incr(f"stats:jobs_{outcome}")
        pipe.incr(f"stats:jobs_{outcome}:{today()}")
        await pipe.execute()


async def save_worker_record(
    redis: Redis, worker_id: str, payload: dict[str, Any], ttl_seconds: int
) -> None:
    await redis.setex(worker_key(worker_id), ttl_seconds, json.dumps(payload, default=str))


async def delete_worker_record(redis: Redis, worker_id: str) -> None:
    await redis.delete(worker_key(worker_id))
