"""
Скрипт для постановки тестовых задач в очередь воркера.

Использование:
    uv run python -m src.cli.enqueue https://example.com
    uv run python -m src.cli.enqueue https://example.com --priority high --render-js
    uv run python -m src.cli.enqueue https://example.com --count 20 --block-assets image,font
"""
import argparse
import asyncio
import secrets
import string
import sys

import redis.asyncio as aioredis
from loguru import logger

from src.config import _split_comma, load_settings
from src.models.job import DEFAULT_BLOCK_ASSETS, Job
from src.store import enqueue_job

_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


def generate_job_id() -> str:
    """scr_ + 12 случайных URL-safe символов."""
    return "scr_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(12))


def build_job(args: argparse.Namespace) -> Job:
    block_assets = _split_comma(args.block_assets) if args.block_assets is not None else list(DEFAULT_BLOCK_ASSETS)
    return Job(
        id=generate_job_id(),
        url=args.url,
        render_js=args.render_js,
        max_wait_ms=args.max_wait_ms,
        block_assets=block_assets,
        user_agent=args.user_agent,
        priority=args.priority,
        extract_text=args.extract_text,
    )


async def enqueue(args: argparse.Namespace) -> list[str]:
    """Создать args.count задач и вернуть их id."""
    settings = load_settings()
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    job_ids: list[str] = []
    try:
        for _ in range(args.count):
            job = build_job(args)
            await enqueue_job(client, job)
            job_ids.append(job.id)
            logger.info(f"Queued {job.id} ({job.priority}): {job.url}")
    finally:
        await client.aclose()
    return job_ids


def main() -> None:
    parser = argparse.ArgumentParser(description="Поставить задачи скрапинга в очередь")
    parser.add_argument("url", help="URL для скрапинга")
    parser.add_argument("--priority", choices=["low", "normal", "high"], default="normal")
    parser.add_argument("--render-js", action="store_true", help="Ждать networkidle")
    parser.add_argument("--extract-text", action="store_true", help="html_body = извлечённый текст")
    parser.add_argument("--max-wait-ms", type=int, default=12000)
    parser.add_argument("--block-assets", default=None, help="Через запятую: image,font,media,...")
    parser.add_argument("--user-agent", default="auto")
    parser.add_argument("--count", type=int, default=1, help="Сколько одинаковых задач создать")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="INFO")

    for job_id in asyncio.run(enqueue(args)):
        print(job_id)


if __name__ == "__main__":
    main()
