"""Pydantic-модели записей в общем хранилище (job, running, result, worker)."""
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.models.scrape import ScrapeRequest, ScrapeResult

Priority = Literal["low", "normal", "high"]

DEFAULT_BLOCK_ASSETS = ["image", "font", "media", "stylesheet", "analytics"]


def utc_now() -> datetime:
    return datetime.now(UTC)


class Job(BaseModel):
    """Задача из job:<id>. Создаётся продюсером, воркер только читает."""

    id: str
    url: str
    render_js: bool = False
    max_wait_ms: int = 12000
    block_assets: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCK_ASSETS))
    user_agent: str = "auto"
    priority: Priority = "normal"
    extract_text: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    idempotency_key: str | None = None

    def to_request(self) -> ScrapeRequest:
        """Job → ScrapeRequest для Scraper."""
        return ScrapeRequest(
            url=self.url,
            render_js=self.render_js,
            max_wait_ms=self.max_wait_ms,
            block_assets=self.block_assets,
            user_agent=self.user_agent,
            extract_text=self.extract_text,
        )


class RunningRecord(BaseModel):
    """running:<id> — задача взята воркером и выполняется."""

    worker_id: str
    started_at: datetime = Field(default_factory=utc_now)
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    elapsed_ms: int = 0


class JobError(BaseModel):
    """Ошибка терминального результата."""

    code: str
    message: str
    details: str | None = None


class ResultRecord(BaseModel):
    """result:<id> — пишется ровно один раз на задачу."""

    data: ScrapeResult | None = None
    error: JobError | None = None
    worker_id: str
    completed_at: datetime | None = None
    failed_at: datetime | None = None

    @classmethod
    def success(cls, data: ScrapeResult, worker_id: str) -> "ResultRecord":
        return cls(data=data, worker_id=worker_id, completed_at=utc_now())

    @classmethod
    def failure(cls, error: dict[str, Any], worker_id: str) -> "ResultRecord":
        return cls(error=JobError.model_validate(error), worker_id=worker_id, failed_at=utc_now())


class WorkerRegistration(BaseModel):
    """Первая запись worker:<id> при старте."""

    worker_id: str
    started_at: datetime = Field(default_factory=utc_now)
    max_concurrent_jobs: int
    proxy_stats: dict[str, Any]
    version: str


class WorkerHeartbeat(BaseModel):
    """Периодический heartbeat worker:<id>; отсутствие записи = воркер мёртв."""

    worker_id: str
    last_heartbeat: datetime = Field(default_factory=utc_now)
    active_jobs: int
    total_completed: int
    total_failed: int
    uptime_seconds: int
    memory_usage: dict[str, float]
    proxy_stats: dict[str, Any]
    browser_stats: dict[str, Any] = {}
