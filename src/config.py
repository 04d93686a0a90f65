"""Конфигурация воркера из переменных окружения."""
import os
import socket
import time

import psutil
from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _split_comma(value: str) -> list[str]:
    """Парсит строку 'a,b,c' → ['a', 'b', 'c']."""
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _to_base36(number: int) -> str:
    """Целое неотрицательное число → строка в base36."""
    if number == 0:
        return "0"
    digits: list[str] = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_worker_id() -> str:
    """worker_<host>_<pid>_<base36 ms timestamp> — уникален для каждого процесса."""
    timestamp_ms = int(time.time() * 1000)
    return f"worker_{socket.gethostname()}_{os.getpid()}_{_to_base36(timestamp_ms)}"


class Settings(BaseSettings):
    """Настройки воркера — парсятся из env или .env файла."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Redis (очереди, записи задач, heartbeat)
    redis_url: str

    # Воркер
    worker_id: str = Field(default_factory=generate_worker_id)
    max_concurrent_jobs: int = 20
    proxy_file: str = "proxies.txt"

    # Таймауты и ретраи
    default_timeout_ms: int = 12000
    max_retries: int = 3
    retry_delay_ms: int = 2000  # Не используется: backoff считается в Scraper

    # Надёжность
    heartbeat_interval_ms: int = 30000
    proxy_rotation_threshold: int = 3  # failures, после которых прокси не "healthy"
    memory_limit_mb: int = 8000

    # Мониторинг
    log_level: str = "INFO"
    stats_interval_ms: int = 60000

    # Браузер
    headless: bool = True

    @field_validator(
        "max_concurrent_jobs",
        "default_timeout_ms",
        "max_retries",
        "heartbeat_interval_ms",
        "proxy_rotation_threshold",
        "memory_limit_mb",
        "stats_interval_ms",
    )
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        # Старый формат 'warn' из env → loguru-уровень WARNING
        level = value.strip().upper()
        return "WARNING" if level == "WARN" else level

    @property
    def heartbeat_ttl_seconds(self) -> int:
        """TTL записи worker:<id> — 3 интервала heartbeat."""
        return max(1, self.heartbeat_interval_ms * 3 // 1000)


def check_memory_limit(settings: Settings) -> None:
    """Предупредить, если лимит памяти больше 80% физической RAM."""
    total_mb = psutil.virtual_memory().total / 1024 / 1024
    if settings.memory_limit_mb > total_mb * 0.8:
        logger.warning(
            f"Memory limit {settings.memory_limit_mb}MB is high "
            f"({round(settings.memory_limit_mb / total_mb * 100)}% of total)"
        )


def load_settings() -> Settings:
    """Создать Settings из переменных окружения (.env файла).

    Фабричная функция — обходит ограничение pyright, который не знает,
    что pydantic-settings заполняет обязательные поля из окружения.
    """
    return Settings.model_validate({})
