#!/usr/bin/env python3
"""Load the podcast catalog through the fetch resolver and print it.

Usage:
    python scripts/show_catalog.py
    python scripts/show_catalog.py --master-url https://example.com/feed.php --wait
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import settings
from src.catalog import CatalogLoader
from src.exceptions import PlayerError
from src.fetch_resolver import FetchResolver
from src.formatting import episode_count_label, format_date, format_duration

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


async def load_catalog(master_url: str, wait: bool, pause: float) -> CatalogLoader:
    loader = CatalogLoader(FetchResolver(), master_feed_url=master_url, pause_seconds=pause)
    await loader.load()
    if wait and loader.background_task is not None:
        await loader.background_task
    return loader


def print_catalog(loader: CatalogLoader, episodes: int) -> None:
    for podcast in loader.catalog:
        count = len(podcast.episodes) if podcast.is_loaded else (podcast.episode_count or 0)
        print(f"[{podcast.id}] {podcast.title} ({episode_count_label(count)}, {podcast.hydration.value})")
        for episode in podcast.episodes[:episodes]:
            date = format_date(episode.pub_date)
            duration = format_duration(episode.duration)
            print(f"    {episode.id:>3}. {episode.title}  {date}  {duration}")


def main():
    parser = argparse.ArgumentParser(description="Print the podcast catalog.")
    parser.add_argument("--master-url", default=settings.master_feed_url, help="Master feed URL")
    parser.add_argument(
        "--wait", action="store_true", help="Wait for background loading of every podcast"
    )
    parser.add_argument(
        "--episodes", type=int, default=3, help="Episodes to list per podcast (default: 3)"
    )
    parser.add_argument(
        "--pause",
        type=float,
        default=settings.hydration_pause_seconds,
        help="Seconds between background feed requests",
    )
    args = parser.parse_args()

    try:
        loader = asyncio.run(load_catalog(args.master_url, args.wait, args.pause))
    except PlayerError as e:
        logger.error("Failed to load catalog: %s", e)
        sys.exit(1)

    if not len(loader.catalog):
        logger.error("No podcasts found in %s", args.master_url)
        sys.exit(1)
    print_catalog(loader, args.episodes)


if __name__ == "__main__":
    main()
