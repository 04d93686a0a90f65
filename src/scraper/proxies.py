"""Пул прокси с выбором по здоровью и мягкой деградацией."""
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

from loguru import logger

from src.scraper.exceptions import ProxyLoadError, sanitize_error

MIN_SUCCESS_RATE = 0.1
MAX_SUCCESS_RATE = 1.0
HEALTHY_SUCCESS_RATE = 0.7


@dataclass
class ProxyEndpoint:
    """Один исходящий прокси и его статистика."""

    host: str
    port: int
    username: str
    password: str
    failures: int = 0
    last_used: float = 0
    success_rate: float = 1.0

    @property
    def label(self) -> str:
        """host:port — без креденшалов, для логов и meta.proxy_used."""
        return f"{self.host}:{self.port}"

    @property
    def url(self) -> str:
        user = quote(self.username, safe="")
        password = quote(self.password, safe="")
        return f"http://{user}:{password}@{self.host}:{self.port}"


def parse_proxy_lines(content: str) -> list[ProxyEndpoint]:
    """Парсит строки host:port:username:password.

    Пустые строки и комментарии '#' пропускаются, строки не из 4 полей
    или с нечисловым портом — тоже (с предупреждением).
    """
    proxies: list[ProxyEndpoint] = []
    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(":")
        if len(parts) != 4:
            logger.warning(f"Skipping proxy line {lineno}: expected host:port:username:password")
            continue
        host, port, username, password = parts
        try:
            port_number = int(port)
        except ValueError:
            logger.warning(f"Skipping proxy line {lineno}: invalid port {port!r}")
            continue
        proxies.append(ProxyEndpoint(
            host=host, port=port_number, username=username, password=password,
        ))
    return proxies


def load_proxy_file(path: str | Path) -> list[ProxyEndpoint]:
    """Прочитать файл прокси. Нет файла или ни одной валидной записи → ProxyLoadError."""
    file_path = Path(path)
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ProxyLoadError(f"Failed to load proxy file {file_path}: {e}") from e

    proxies = parse_proxy_lines(content)
    if not proxies:
        raise ProxyLoadError(f"No valid proxies found in {file_path}")
    return proxies


class ProxyRegistry:
    """
    Управляет пулом прокси.
    Первая попытка — round-robin по здоровым прокси, ретраи — по всему пулу.
    Прокси никогда не удаляется из ротации, только теряет приоритет.

    Выбор не содержит await, поэтому атомарен относительно других корутин.
    """

    def __init__(
        self,
        proxies: list[ProxyEndpoint],
        max_failures: int = 3,
        source: str | Path | None = None,
    ) -> None:
        if not proxies:
            raise ProxyLoadError("Proxy registry requires at least one endpoint")
        self.proxies = proxies
        self.max_failures = max_failures
        self.source = source
        self.current_index = 0  # общий курсор по всему пулу
        self.healthy_index = 0  # курсор по подмножеству здоровых

    @classmethod
    def from_file(cls, path: str | Path, max_failures: int = 3) -> "ProxyRegistry":
        proxies = load_proxy_file(path)
        logger.info(f"Loaded {len(proxies)} proxies from {path}")
        return cls(proxies, max_failures=max_failures, source=path)

    def reload(self) -> None:
        """Перечитать файл прокси без рестарта (статистика сбрасывается)."""
        if self.source is None:
            raise ProxyLoadError("Proxy registry was not loaded from a file")
        logger.info("Reloading proxy configuration...")
        self.proxies = load_proxy_file(self.source)
        self.current_index = 0
        self.healthy_index = 0
        logger.info(f"Reloaded {len(self.proxies)} proxies")

    def is_healthy(self, proxy: ProxyEndpoint) -> bool:
        return proxy.success_rate > HEALTHY_SUCCESS_RATE and proxy.failures < self.max_failures

    def select(self, attempt: int = 1) -> ProxyEndpoint:
        """Выбрать прокси для попытки attempt (1-based)."""
        if attempt == 1:
            healthy = [p for p in self.proxies if self.is_healthy(p)]
            if healthy:
                proxy = healthy[self.healthy_index % len(healthy)]
                self.healthy_index = (self.healthy_index + 1) % len(healthy)
                return proxy

        # Ретраи (или нет здоровых): расширяем пул до всех прокси
        proxy = self.proxies[self.current_index % len(self.proxies)]
        self.current_index = (self.current_index + 1) % len(self.proxies)
        return proxy

    def record_success(self, proxy: ProxyEndpoint) -> None:
        """EMA к 1.0; failures убывают на 1, а не обнуляются."""
        proxy.last_used = time.time()
        proxy.success_rate = min(MAX_SUCCESS_RATE, proxy.success_rate * 0.95 + 0.05)
        proxy.failures = max(0, proxy.failures - 1)

    def record_failure(self, proxy: ProxyEndpoint, reason: str) -> None:
        """Понизить success_rate (не ниже 0.1) и увеличить failures."""
        proxy.last_used = time.time()
        proxy.failures += 1
        proxy.success_rate = max(MIN_SUCCESS_RATE, proxy.success_rate * 0.9)
        logger.warning(
            f"Proxy {proxy.label} failed: {sanitize_error(reason)} (failures: {proxy.failures}, "
            f"success_rate: {proxy.success_rate:.2f})"
        )
        if proxy.failures == self.max_failures:
            logger.warning(f"Proxy {proxy.label} left the healthy pool, reducing priority")

    def stats(self) -> dict[str, Any]:
        total = len(self.proxies)
        healthy = sum(1 for p in self.proxies if self.is_healthy(p))
        avg_rate = sum(p.success_rate for p in self.proxies) / total
        return {
            "total_proxies": total,
            "healthy_proxies": healthy,
            "average_success_rate": round(avg_rate, 2),
            "current_index": self.current_index,
        }
