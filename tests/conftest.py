"""Общие фикстуры и хелперы для тестов воркера."""
from typing import Any
from unittest.mock import MagicMock

import pytest


class _Pipeline:
    """Очередь команд MemoryRedis, выполняемая на execute()."""

    def __init__(self, store: "MemoryRedis") -> None:
        self._store = store
        self._calls: list[tuple[str, tuple[Any, ...]]] = []

    async def __aenter__(self) -> "_Pipeline":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._calls.clear()

    def __getattr__(self, name: str):
        def queue(*args: Any) -> "_Pipeline":
            self._calls.append((name, args))
            return self
        return queue

    async def execute(self) -> list[Any]:
        results = []
        for name, args in self._calls:
            results.append(await getattr(self._store, name)(*args))
        self._calls.clear()
        return results


class MemoryRedis:
    """Минимальный async-двойник redis.asyncio.Redis (decode_responses=True)."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.values[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            self.ttls.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        value = int(self.values.get(key, "0")) + 1
        self.values[key] = str(value)
        return value

    async def lpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def rpop(self, key: str) -> str | None:
        items = self.lists.get(key)
        if not items:
            return None
        return items.pop()

    async def ping(self) -> bool:
        return True

    def pipeline(self, transaction: bool = True) -> _Pipeline:
        return _Pipeline(self)


@pytest.fixture
def memory_redis() -> MemoryRedis:
    return MemoryRedis()


def make_settings(**overrides: Any) -> MagicMock:
    """Создать мок Settings с дефолтами воркера."""
    settings = MagicMock()
    settings.worker_id = "worker_test_1_abc"
    settings.max_concurrent_jobs = 20
    settings.default_timeout_ms = 12000
    settings.heartbeat_interval_ms = 30000
    settings.heartbeat_ttl_seconds = 90
    settings.stats_interval_ms = 60000
    settings.memory_limit_mb = 8000
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings
