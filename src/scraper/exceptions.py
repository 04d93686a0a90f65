"""Ошибки скрапинга и их классификация."""
import asyncio
import re
from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Тип ошибки, который попадает в result:<id> как error.code."""

    INVALID_URL = "INVALID_URL"
    NETWORK = "NETWORK"
    BLOCKED = "BLOCKED"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {ErrorKind.NETWORK, ErrorKind.BLOCKED, ErrorKind.TIMEOUT}
)

_PREFIX_RE = re.compile(r"^\s*([A-Z_]+):")
_PLAYWRIGHT_TIMEOUT_RE = re.compile(r"\bTimeout \d+ms exceeded", re.IGNORECASE)

# Фрагменты сообщений Playwright, означающие сетевую проблему (прокси, DNS, закрытый браузер)
_NETWORK_MARKERS = ("net::", "has been closed", "disconnected", "ns_error_")


def sanitize_error(error: str) -> str:
    """Убрать креденшалы прокси из сообщения об ошибке."""
    return re.sub(r"://[^@\s/]+@", "://***:***@", error)


def error_kind_from_message(message: str) -> ErrorKind:
    """Восстановить тип ошибки из плоской строки 'KIND: message'.

    Без префикса таймаутом считается только формулировка Playwright
    "Timeout <N>ms exceeded"; прочее → INTERNAL.
    """
    match = _PREFIX_RE.match(message)
    if match:
        try:
            return ErrorKind(match.group(1))
        except ValueError:
            pass
    if _PLAYWRIGHT_TIMEOUT_RE.search(message):
        return ErrorKind.TIMEOUT
    return ErrorKind.INTERNAL


class ProxyLoadError(Exception):
    """Файл прокси отсутствует, пуст или не содержит валидных записей."""


class ScrapeError(Exception):
    """Классифицированная ошибка скрапинга {kind, message, details}."""

    def __init__(self, kind: ErrorKind, message: str, details: str | None = None) -> None:
        self.kind = ErrorKind(kind)
        self.message = message
        self.details = details
        super().__init__(f"{self.kind}: {message}")

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        """Формат error в ResultRecord."""
        return {
            "code": str(self.kind),
            "message": sanitize_error(str(self)),
            "details": sanitize_error(self.details) if self.details else None,
        }

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ScrapeError":
        """Классифицировать произвольное исключение (Playwright, asyncio, прочее)."""
        if isinstance(exc, ScrapeError):
            return exc

        name = type(exc).__name__
        text = str(exc).strip() or name
        first_line = text.splitlines()[0]

        # playwright.async_api.TimeoutError, asyncio.TimeoutError
        if isinstance(exc, (TimeoutError, asyncio.TimeoutError)) or name == "TimeoutError":
            return cls(ErrorKind.TIMEOUT, first_line, details=text)

        lowered = text.lower()
        if any(marker in lowered for marker in _NETWORK_MARKERS):
            return cls(ErrorKind.NETWORK, first_line, details=text)

        kind = error_kind_from_message(first_line)
        if kind is not ErrorKind.INTERNAL:
            prefix = f"{kind}:"
            message = first_line[len(prefix):].strip() if first_line.startswith(prefix) else first_line
            return cls(kind, message, details=text)

        message = first_line if first_line == name else f"{name}: {first_line}"
        return cls(ErrorKind.INTERNAL, message, details=text)
