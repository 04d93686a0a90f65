"""Состояние процесса воркера: задачи в работе и счётчики."""
import asyncio
import time
from dataclasses import dataclass, field


@dataclass
class WorkerState:
    """
    Общее состояние цикла, хэндлеров и фоновых задач.
    Мутируется только между await, поэтому лок не нужен.
    """

    active_jobs: set[str] = field(default_factory=set)
    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    total_completed: int = 0
    total_failed: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def uptime_seconds(self) -> int:
        return int(time.time() - self.start_time)

    @property
    def success_rate(self) -> float | None:
        """Доля успешных в процентах; None, пока задач не было."""
        total = self.total_completed + self.total_failed
        if total == 0:
            return None
        return self.total_completed / total * 100

    @property
    def throughput_per_minute(self) -> float:
        minutes = max(self.uptime_seconds, 1) / 60
        return (self.total_completed + self.total_failed) / minutes

    def reset_counters(self) -> None:
        """Суточный сброс: счётчики и отсчёт uptime с нуля."""
        self.total_completed = 0
        self.total_failed = 0
        self.start_time = time.time()
