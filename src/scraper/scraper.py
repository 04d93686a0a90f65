"""Скрапинг URL через прокси и браузер с ретраями и backoff."""
import asyncio
import random
import re
import time
from urllib.parse import urlparse

from loguru import logger
from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response

from src.models.scrape import ScrapeMeta, ScrapeRequest, ScrapeResult
from src.scraper.browser import BrowserManager
from src.scraper.exceptions import ErrorKind, ScrapeError
from src.scraper.extraction import extract_pdf_links, extract_text
from src.scraper.proxies import ProxyEndpoint, ProxyRegistry

BLOCKED_STATUSES = frozenset({403, 429, 503})

MAX_JS_SETTLE_MS = 3000

# Буквы (включая IDN), цифры, точки, дефисы; двоеточия и % для IPv6 в скобках
_HOSTNAME_RE = re.compile(r"[^\W_](?:[\w.\-:%]*[^\W_])?|[0-9a-fA-F:.%]+")


def validate_url(url: str) -> None:
    """Синтаксическая проверка URL. Невалидный → ScrapeError(INVALID_URL).

    Нужны схема и хост из допустимых символов; порт, если указан, в 0-65535.
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        parsed.port  # ValueError на нечисловом или вне диапазона
    except (ValueError, TypeError, AttributeError) as e:
        raise ScrapeError(ErrorKind.INVALID_URL, "Malformed URL", details=str(e)) from e
    if not parsed.scheme or not hostname or not _HOSTNAME_RE.fullmatch(hostname):
        raise ScrapeError(ErrorKind.INVALID_URL, "Malformed URL", details=url)


def backoff_delay_ms(attempt: int) -> float:
    """
    Пауза перед следующей попыткой после неудачной попытки attempt.
    attempt 1 → 1000мс, 2 → 2000мс, 3 → 4000мс, далее 5000мс; плюс jitter 0-1000мс.
    """
    base = min(1000 * (2 ** (attempt - 1)), 5000)
    return base + random.uniform(0, 1000)


def classify_response(response: Response | None) -> Response:
    """Нет ответа → NETWORK, 403/429/503 → BLOCKED, прочие ≥400 → NETWORK."""
    if response is None:
        raise ScrapeError(ErrorKind.NETWORK, "No response received")
    status = response.status
    if status in BLOCKED_STATUSES:
        raise ScrapeError(ErrorKind.BLOCKED, f"HTTP {status}")
    if status >= 400:
        raise ScrapeError(ErrorKind.NETWORK, f"HTTP {status}")
    return response


class Scraper:
    """
    Машина состояний одной задачи: Validate → Attempt(1..N) → Success | Exhausted.
    Каждая попытка берёт свой прокси и свою сессию браузера и освобождает их сама.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        browser: BrowserManager,
        proxies: ProxyRegistry,
        worker_id: str,
        default_timeout_ms: int = 12000,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.browser = browser
        self.proxies = proxies
        self.worker_id = worker_id
        self.default_timeout_ms = default_timeout_ms
        self.max_attempts = max_attempts

    async def scrape(self, request: ScrapeRequest) -> ScrapeResult:
        """Выполнить запрос с ретраями. Исчерпание → последняя ScrapeError."""
        validate_url(request.url)

        started = time.monotonic()
        timeout_ms = request.max_wait_ms or self.default_timeout_ms
        user_agent = None if request.user_agent == "auto" else request.user_agent
        last_error: ScrapeError | None = None
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            proxy: ProxyEndpoint | None = None
            context: BrowserContext | None = None
            page: Page | None = None
            logger.debug(f"Attempt {attempt}/{self.max_attempts}: {request.url}")

            try:
                proxy = self.proxies.select(attempt)
                context = await self.browser.new_session(proxy.url, user_agent)
                page = await self.browser.new_page(context, request.block_assets)
                result = await self._attempt(page, request, timeout_ms, proxy, attempt, started)
                self.proxies.record_success(proxy)
                logger.info(
                    f"Scraped {request.url} ({len(result.html_body)} chars, "
                    f"{result.meta.fetch_ms}ms, attempt {attempt})"
                )
                return result

            except Exception as e:
                last_error = ScrapeError.from_exception(e)
                if proxy is not None:
                    self.proxies.record_failure(proxy, str(last_error))
                logger.warning(f"Attempt {attempt} failed for {request.url}: {last_error}")

            finally:
                await self._release(page, context)

            if not last_error.retryable or attempt >= self.max_attempts:
                break

            delay_ms = backoff_delay_ms(attempt)
            logger.debug(f"Retrying {request.url} in {delay_ms:.0f}ms")
            await asyncio.sleep(delay_ms / 1000)

        if last_error is None:
            raise ScrapeError(ErrorKind.INTERNAL, "No scrape attempts were made")
        logger.error(f"Failed {request.url} after {attempt} attempts: {last_error}")
        raise last_error

    async def _attempt(
        self,
        page: Page,
        request: ScrapeRequest,
        timeout_ms: int,
        proxy: ProxyEndpoint,
        attempt: int,
        started: float,
    ) -> ScrapeResult:
        """Одна навигация: goto → классификация → сбор данных."""
        page.set_default_timeout(timeout_ms)
        page.set_default_navigation_timeout(timeout_ms)

        received = 0

        def _count_bytes(response: Response) -> None:
            nonlocal received
            try:
                received += int(response.headers.get("content-length", 0))
            except ValueError:
                pass  # нечисловой content-length не учитываем

        page.on("response", _count_bytes)

        wait_until = "networkidle" if request.render_js else "domcontentloaded"
        response = await page.goto(request.url, wait_until=wait_until, timeout=timeout_ms)
        response = classify_response(response)

        if request.render_js:
            await page.wait_for_timeout(min(MAX_JS_SETTLE_MS, timeout_ms / 4))

        try:
            title = await page.title()
        except PlaywrightError:
            title = ""
        html = await page.content()
        final_url = response.url
        text_content = extract_text(html)

        return ScrapeResult(
            url=request.url,
            final_url=final_url,
            status_code=response.status,
            title=title,
            headers=dict(response.headers),
            html_body=text_content if request.extract_text else html,
            text_content=text_content,
            pdf_urls=extract_pdf_links(html, final_url),
            meta=ScrapeMeta(
                fetch_ms=int((time.monotonic() - started) * 1000),
                retries=attempt - 1,
                proxy_used=proxy.label,
                render_js=request.render_js,
                extract_text=request.extract_text,
                bytes_rx=received or len(html),
                worker_id=self.worker_id,
            ),
        )

    async def _release(self, page: Page | None, context: BrowserContext | None) -> None:
        """Закрыть страницу и сессию попытки (best-effort)."""
        if page is not None:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Failed to close page: {e}")
        if context is not None:
            await self.browser.close_session(context)
