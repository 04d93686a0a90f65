"""Тесты Scraper: ретраи, классификация, освобождение сессий."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.models.scrape import ScrapeRequest
from src.scraper.exceptions import ErrorKind, ScrapeError
from src.scraper.proxies import ProxyEndpoint, ProxyRegistry
from src.scraper.scraper import Scraper, backoff_delay_ms, classify_response, validate_url

PAGE_HTML = (
    "<html><head><title>Example</title></head><body><nav>Home | Docs</nav>"
    "<main><p>Example page body that is long enough to survive the extraction threshold.</p>"
    '<a href="/manual.pdf">Manual</a></main></body></html>'
)


MALFORMED_URLS = [
    "not-a-url",
    "https://example.com:99999/",
    "https://exa mple.com/",
    "http://:80/",
]


def _response(status: int = 200, url: str = "https://example.com/") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.url = url
    response.headers = {"content-type": "text/html"}
    return response


def _page(goto_side_effect) -> MagicMock:
    page = MagicMock()
    page.goto = AsyncMock(side_effect=goto_side_effect)
    page.title = AsyncMock(return_value="Example")
    page.content = AsyncMock(return_value=PAGE_HTML)
    page.wait_for_timeout = AsyncMock()
    page.close = AsyncMock()
    return page


def _make_scraper(page: MagicMock, proxies: ProxyRegistry | MagicMock | None = None) -> Scraper:
    browser = MagicMock()
    browser.new_session = AsyncMock(side_effect=lambda *a, **kw: MagicMock())
    browser.new_page = AsyncMock(return_value=page)
    browser.close_session = AsyncMock()
    if proxies is None:
        proxies = ProxyRegistry([
            ProxyEndpoint(host="10.0.0.1", port=8080, username="u", password="p"),
            ProxyEndpoint(host="10.0.0.2", port=8080, username="u", password="p"),
        ])
    return Scraper(browser, proxies, worker_id="w1")


@pytest.fixture
def no_sleep():
    """Без реальных пауз и jitter."""
    with patch("src.scraper.scraper.asyncio.sleep", new_callable=AsyncMock) as sleep, \
            patch("src.scraper.scraper.random.uniform", return_value=0):
        yield sleep


class TestHelpers:
    def test_validate_url(self) -> None:
        validate_url("https://example.com/path?q=1")
        validate_url("http://localhost:8080/")
        validate_url("http://[::1]:8080/")
        validate_url("https://пример.рф/")
        for url in MALFORMED_URLS:
            with pytest.raises(ScrapeError) as exc_info:
                validate_url(url)
            assert exc_info.value.kind == ErrorKind.INVALID_URL, url

    def test_backoff_growth(self) -> None:
        with patch("src.scraper.scraper.random.uniform", return_value=0):
            assert [backoff_delay_ms(a) for a in (1, 2, 3, 4, 5)] == [1000, 2000, 4000, 5000, 5000]

    def test_backoff_jitter_bounds(self) -> None:
        for _ in range(50):
            assert 1000 <= backoff_delay_ms(1) <= 2000

    def test_classify_response(self) -> None:
        classify_response(_response(200))
        classify_response(_response(304))
        for status, kind in ((403, ErrorKind.BLOCKED), (429, ErrorKind.BLOCKED),
                             (503, ErrorKind.BLOCKED), (404, ErrorKind.NETWORK),
                             (500, ErrorKind.NETWORK)):
            with pytest.raises(ScrapeError) as exc_info:
                classify_response(_response(status))
            assert exc_info.value.kind == kind
        with pytest.raises(ScrapeError) as exc_info:
            classify_response(None)
        assert exc_info.value.kind == ErrorKind.NETWORK


class TestScrape:
    """Тесты полного цикла scrape()."""

    @pytest.mark.parametrize("url", MALFORMED_URLS)
    @pytest.mark.asyncio
    async def test_invalid_url_has_no_side_effects(self, no_sleep, url) -> None:
        proxies = MagicMock()
        page = _page([_response()])
        scraper = _make_scraper(page, proxies)

        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(ScrapeRequest(url=url))

        assert exc_info.value.kind == ErrorKind.INVALID_URL
        proxies.select.assert_not_called()
        proxies.record_failure.assert_not_called()
        scraper.browser.new_session.assert_not_awaited()
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blocked_retried_then_fails(self, no_sleep) -> None:
        """503 → 3 попытки, 2 паузы с растущей базой, итог BLOCKED."""
        page = _page([_response(503)] * 3)
        scraper = _make_scraper(page)

        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert exc_info.value.kind == ErrorKind.BLOCKED
        assert exc_info.value.message == "HTTP 503"
        assert page.goto.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]
        assert sum(p.failures for p in scraper.proxies.proxies) == 3

    @pytest.mark.asyncio
    async def test_session_released_every_attempt(self, no_sleep) -> None:
        page = _page([_response(429), _response(429), _response(200)])
        scraper = _make_scraper(page)

        await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert scraper.browser.new_session.await_count == 3
        assert scraper.browser.close_session.await_count == 3
        assert page.close.await_count == 3

    @pytest.mark.asyncio
    async def test_success(self, no_sleep) -> None:
        page = _page([_response(200, "https://example.com/final")])
        scraper = _make_scraper(page)

        result = await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert result.status_code == 200
        assert result.final_url == "https://example.com/final"
        assert result.title == "Example"
        assert result.html_body == PAGE_HTML
        assert result.text_content.startswith("NAVIGATION: Home | Docs")
        assert result.pdf_urls == ["https://example.com/manual.pdf"]
        assert result.meta.retries == 0
        assert result.meta.proxy_used == "10.0.0.1:8080"
        assert result.meta.bytes_rx == len(PAGE_HTML)
        assert result.meta.worker_id == "w1"
        page.goto.assert_awaited_once_with(
            "https://example.com", wait_until="domcontentloaded", timeout=12000,
        )
        page.wait_for_timeout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extract_text_replaces_body(self, no_sleep) -> None:
        page = _page([_response(200)])
        scraper = _make_scraper(page)

        result = await scraper.scrape(ScrapeRequest(url="https://example.com", extract_text=True))

        assert result.html_body == result.text_content
        assert "<" not in result.html_body
        assert result.meta.extract_text is True

    @pytest.mark.asyncio
    async def test_render_js_waits_for_network_idle(self, no_sleep) -> None:
        page = _page([_response(200)])
        scraper = _make_scraper(page)

        await scraper.scrape(ScrapeRequest(url="https://example.com", render_js=True, max_wait_ms=8000))

        assert page.goto.await_args.kwargs["wait_until"] == "networkidle"
        assert page.goto.await_args.kwargs["timeout"] == 8000
        page.wait_for_timeout.assert_awaited_once_with(2000)

    @pytest.mark.asyncio
    async def test_user_agent_passthrough(self, no_sleep) -> None:
        page = _page([_response(200), _response(200)])
        scraper = _make_scraper(page)

        await scraper.scrape(ScrapeRequest(url="https://example.com"))
        assert scraper.browser.new_session.await_args.args[1] is None

        await scraper.scrape(ScrapeRequest(url="https://example.com", user_agent="Bot/1.0"))
        assert scraper.browser.new_session.await_args.args[1] == "Bot/1.0"

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, no_sleep) -> None:
        page = _page([TimeoutError("Timeout 12000ms exceeded."), _response(200)])
        scraper = _make_scraper(page)

        result = await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert result.meta.retries == 1
        assert result.meta.proxy_used == "10.0.0.1:8080"
        assert no_sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_internal_error_not_retried(self, no_sleep) -> None:
        page = _page([ValueError("boom")])
        scraper = _make_scraper(page)

        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert exc_info.value.kind == ErrorKind.INTERNAL
        assert page.goto.await_count == 1
        no_sleep.assert_not_awaited()
        scraper.browser.close_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_success_updates_proxy_health(self, no_sleep) -> None:
        page = _page([_response(200)])
        scraper = _make_scraper(page)
        proxy = scraper.proxies.proxies[0]
        proxy.success_rate = 0.8
        proxy.failures = 1

        await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert proxy.success_rate == pytest.approx(0.81)
        assert proxy.failures == 0

    @pytest.mark.asyncio
    async def test_zero_attempts_is_internal_error(self, no_sleep) -> None:
        """max_attempts=0 → INTERNAL, а не AssertionError."""
        page = _page([_response(200)])
        scraper = _make_scraper(page)
        scraper.max_attempts = 0

        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(ScrapeRequest(url="https://example.com"))

        assert exc_info.value.kind == ErrorKind.INTERNAL
        page.goto.assert_not_awaited()
