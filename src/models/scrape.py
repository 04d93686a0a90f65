"""Pydantic-модели запроса и результата скрапинга."""
from pydantic import BaseModel


class ScrapeRequest(BaseModel):
    """Параметры одной последовательности попыток скрапинга."""

    url: str
    render_js: bool = False
    max_wait_ms: int | None = None  # None → default_timeout_ms воркера
    block_assets: list[str] = []
    user_agent: str = "auto"  # "auto" → случайный UA из пула
    extract_text: bool = False  # True → html_body содержит извлечённый текст


class ScrapeMeta(BaseModel):
    """Метаданные выполнения: тайминг, ретраи, прокси."""

    fetch_ms: int
    retries: int  # attempts - 1
    proxy_used: str  # host:port
    render_js: bool
    extract_text: bool
    bytes_rx: int
    worker_id: str


class ScrapeResult(BaseModel):
    """Результат успешного скрапинга."""

    url: str
    final_url: str
    status_code: int
    title: str = ""
    headers: dict[str, str] = {}
    html_body: str  # сырой HTML или текст (см. ScrapeRequest.extract_text)
    text_content: str
    pdf_urls: list[str] = []
    meta: ScrapeMeta
