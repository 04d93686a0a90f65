"""Тесты конфигурации воркера."""
import re
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from src.config import _split_comma, _to_base36, check_memory_limit, generate_worker_id


class TestSplitComma:
    """Тесты парсера строки через запятую."""

    def test_normal_split(self) -> None:
        assert _split_comma("image,font,media") == ["image", "font", "media"]

    def test_strips_whitespace(self) -> None:
        assert _split_comma(" a , b , c ") == ["a", "b", "c"]

    def test_empty_string(self) -> None:
        assert _split_comma("") == []

    def test_whitespace_only(self) -> None:
        assert _split_comma("   ") == []

    def test_empty_items(self) -> None:
        """Пустые элементы фильтруются."""
        assert _split_comma("a,,b") == ["a", "b"]


class TestWorkerId:
    """Тесты генерации worker_id."""

    def test_base36(self) -> None:
        assert _to_base36(0) == "0"
        assert _to_base36(35) == "z"
        assert _to_base36(36) == "10"
        assert _to_base36(1296) == "100"

    def test_format(self) -> None:
        with patch("src.config.socket.gethostname", return_value="host-1"), \
                patch("src.config.os.getpid", return_value=4242):
            worker_id = generate_worker_id()
        assert re.fullmatch(r"worker_host-1_4242_[0-9a-z]+", worker_id)


class TestSettings:
    """Тесты парсинга Settings из env."""

    def test_minimal_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Обязателен только REDIS_URL."""
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379")
        monkeypatch.delenv("WORKER_ID", raising=False)

        from src.config import Settings

        s = Settings(_env_file=None)
        assert s.redis_url == "redis://localhost:6379"
        assert s.worker_id.startswith("worker_")

    def test_default_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379")
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("MAX_CONCURRENT_JOBS", raising=False)

        from src.config import Settings

        s = Settings(_env_file=None)
        assert s.max_concurrent_jobs == 20
        assert s.default_timeout_ms == 12000
        assert s.max_retries == 3
        assert s.retry_delay_ms == 2000
        assert s.heartbeat_interval_ms == 30000
        assert s.proxy_rotation_threshold == 3
        assert s.memory_limit_mb == 8000
        assert s.stats_interval_ms == 60000
        assert s.log_level == "INFO"

    def test_missing_redis_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)

        from src.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://redis:6379/1")
        monkeypatch.setenv("MAX_CONCURRENT_JOBS", "5")
        monkeypatch.setenv("WORKER_ID", "worker_fixed")
        monkeypatch.setenv("LOG_LEVEL", "warn")

        from src.config import Settings

        s = Settings(_env_file=None)
        assert s.max_concurrent_jobs == 5
        assert s.worker_id == "worker_fixed"
        assert s.log_level == "WARNING"

    def test_non_positive_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379")
        monkeypatch.setenv("MAX_CONCURRENT_JOBS", "0")

        from src.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_heartbeat_ttl_is_three_intervals(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379")
        monkeypatch.setenv("HEARTBEAT_INTERVAL_MS", "10000")

        from src.config import Settings

        assert Settings(_env_file=None).heartbeat_ttl_seconds == 30


class TestCheckMemoryLimit:
    """Тесты предупреждения о лимите памяти."""

    def test_warns_when_limit_above_80_percent(self) -> None:
        settings = MagicMock(memory_limit_mb=9000)
        vm = MagicMock(total=10000 * 1024 * 1024)
        with patch("src.config.psutil.virtual_memory", return_value=vm), \
                patch("src.config.logger") as mock_logger:
            check_memory_limit(settings)
        mock_logger.warning.assert_called_once()

    def test_silent_when_limit_reasonable(self) -> None:
        settings = MagicMock(memory_limit_mb=4000)
        vm = MagicMock(total=10000 * 1024 * 1024)
        with patch("src.config.psutil.virtual_memory", return_value=vm), \
                patch("src.config.logger") as mock_logger:
            check_memory_limit(settings)
        mock_logger.warning.assert_not_called()
