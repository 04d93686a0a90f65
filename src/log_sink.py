"""Loguru sink для записи WARNING+ логов в Redis."""
import json

from redis import Redis

LOG_KEY = "logs:worker"
MAX_LOG_ENTRIES = 1000


def create_redis_sink(client: Redis, worker_id: str):
    """Фабрика: вернуть sink-функцию, привязанную к синхронному Redis-клиенту."""

    def sink(message) -> None:
        record = message.record
        entry = json.dumps({
            "level": record["level"].name,
            "module": record["name"],
            "message": str(record["message"]),
            "worker_id": worker_id,
            "time": record["time"].isoformat(),
        })
        try:
            pipe = client.pipeline(transaction=False)
            pipe.lpush(LOG_KEY, entry)
            pipe.ltrim(LOG_KEY, 0, MAX_LOG_ENTRIES - 1)
            pipe.execute()
        except Exception:
            pass  # Ошибка логирования не должна ронять приложение

    return sink
