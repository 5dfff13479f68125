"""Ingest one link from the command line.

Usage:
    python -m scripts.add_link https://example.com/post
    python -m scripts.add_link https://example.com/post --skip-confirm --category 技术 --tags "python, web"
"""

import argparse
import asyncio
import logging
import sys

from magpie.models.link import AddLinkRequest
from magpie.services.http_client import close_shared_client
from magpie.services.ingestion.orchestrator import InvalidURLError, create_orchestrator
from magpie.services.ingestion.progress import ProgressChannel
from magpie.services.link_storage import StoreError, get_link_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest a single link")
    parser.add_argument("url")
    parser.add_argument("--skip-confirm", action="store_true", help="Publish without confirmation")
    parser.add_argument("--category", default=None, help="Category override")
    parser.add_argument("--tags", default=None, help='Comma-separated tags, e.g. "a, b"')
    return parser.parse_args(argv)


async def _print_events(channel: ProgressChannel) -> None:
    async for event in channel:
        line = f"[{event.stage}] {event.message}"
        if event.error:
            line += f" ({event.error})"
        print(line)
        if event.stage == "completed" and event.data:
            for key, value in event.data.items():
                print(f"  {key}: {value}")


async def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    request = AddLinkRequest(
        url=args.url,
        skip_confirm=args.skip_confirm,
        category=args.category,
        tags=args.tags,
    )

    orchestrator = create_orchestrator(get_link_store())
    channel = ProgressChannel()
    printer = asyncio.create_task(_print_events(channel))
    try:
        await orchestrator.ingest(request, progress=channel)
    except (InvalidURLError, StoreError):
        return 1
    finally:
        await printer
        await close_shared_client()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
