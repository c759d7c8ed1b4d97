"""Catalog loading: master feed index, eager first podcast, background hydration."""

import asyncio
import logging
from collections.abc import Callable, Iterator

from config import settings
from src.exceptions import PlayerError
from src.feed_parser import parse_master_feed, parse_podcast_feed
from src.fetch_resolver import FetchResolver
from src.models import HydrationState, Podcast

logger = logging.getLogger(__name__)


class Catalog:
    """Ordered podcast list; entries are mutated in place, never replaced.

    A podcast's id is its position, so ``catalog.get(i).id == i``.
    """

    def __init__(self, podcasts: list[Podcast] | None = None):
        self.podcasts: list[Podcast] = podcasts if podcasts is not None else []

    def replace(self, podcasts: list[Podcast]) -> None:
        self.podcasts[:] = podcasts

    def get(self, index: int) -> Podcast | None:
        if 0 <= index < len(self.podcasts):
            return self.podcasts[index]
        return None

    def __len__(self) -> int:
        return len(self.podcasts)

    def __iter__(self) -> Iterator[Podcast]:
        return iter(self.podcasts)


def merge_hydrated(target: Podcast, parsed: Podcast) -> None:
    """Copy a parsed feed into its catalog entry in place and mark it loaded.

    The master feed title is kept; the feed's own cover art wins over the
    master feed's when present.
    """
    target.episodes = parsed.episodes
    if parsed.image:
        target.image = parsed.image
    if not target.link:
        target.link = parsed.link
    if not target.description:
        target.description = parsed.description
    target.hydration = HydrationState.LOADED


class CatalogLoader:
    """Populate a Catalog with a fast-first-paint policy.

    Only the master feed and the first podcast block ``load()``; the
    remaining podcasts are hydrated one at a time by a background task.
    """

    def __init__(
        self,
        resolver: FetchResolver,
        catalog: Catalog | None = None,
        master_feed_url: str | None = None,
        pause_seconds: float | None = None,
        on_hydrated: Callable[[Podcast], None] | None = None,
    ):
        self.resolver = resolver
        self.catalog = catalog if catalog is not None else Catalog()
        self.master_feed_url = master_feed_url or settings.master_feed_url
        self.pause_seconds = (
            settings.hydration_pause_seconds if pause_seconds is None else pause_seconds
        )
        self.on_hydrated = on_hydrated
        self.background_task: asyncio.Task | None = None
        self._inflight: dict[int, asyncio.Task] = {}

    async def load_index(self) -> Catalog:
        """Fetch and parse the master feed into the catalog (episodes empty).

        Raises:
            FeedFetchError: If the master feed cannot be fetched.
            FeedParseError: If the master feed is malformed.
        """
        logger.info("Fetching master feed from %s", self.master_feed_url)
        text = await self.resolver.fetch(self.master_feed_url)
        self.catalog.replace(parse_master_feed(text))
        return self.catalog

    async def load(self) -> Catalog:
        """Load the index, hydrate the first podcast, start background hydration."""
        await self.load_index()
        if not self.catalog.podcasts:
            logger.error("No valid podcast feeds found in master list")
            return self.catalog

        first = self.catalog.podcasts[0]
        logger.info("Loading first podcast: %s", first.title)
        try:
            await self.hydrate(first)
        except PlayerError as e:
            logger.warning("Failed to load %s: %s", first.title, e)

        remaining = self.catalog.podcasts[1:]
        if remaining:
            logger.info("Loading %d more podcasts in background...", len(remaining))
            self.background_task = asyncio.create_task(self.hydrate_remaining(remaining))
        return self.catalog

    async def hydrate(self, podcast: Podcast) -> Podcast:
        """Fetch a podcast's own feed and merge it into the entry in place.

        Concurrent calls for the same podcast share one fetch.

        Raises:
            PlayerError: If fetching or parsing fails; the entry is marked failed.
        """
        task = self._inflight.get(podcast.id)
        if task is None:
            task = asyncio.create_task(self._hydrate(podcast))
            self._inflight[podcast.id] = task
            task.add_done_callback(lambda _: self._inflight.pop(podcast.id, None))
        return await asyncio.shield(task)

    async def _hydrate(self, podcast: Podcast) -> Podcast:
        try:
            text = await self.resolver.fetch(podcast.feed_url)
            parsed = parse_podcast_feed(text, podcast_id=podcast.id, feed_url=podcast.feed_url)
        except PlayerError:
            podcast.hydration = HydrationState.FAILED
            raise

        merge_hydrated(podcast, parsed)
        logger.info("Loaded %d episodes from %s", len(podcast.episodes), podcast.title)
        if self.on_hydrated:
            self.on_hydrated(podcast)
        return podcast

    async def ensure_hydrated(self, podcast: Podcast) -> Podcast:
        """Hydrate on demand unless the podcast is already loaded."""
        if podcast.is_loaded:
            return podcast
        return await self.hydrate(podcast)

    async def hydrate_remaining(self, podcasts: list[Podcast]) -> None:
        """Hydrate podcasts strictly one at a time, pausing between requests.

        Failures are logged and skipped; entries already loaded (or failed)
        are left alone.
        """
        total = len(self.catalog)
        for podcast in podcasts:
            if podcast.hydration is not HydrationState.UNLOADED:
                continue
            await asyncio.sleep(self.pause_seconds)
            # may have been hydrated on demand during the pause
            if podcast.hydration is not HydrationState.UNLOADED:
                continue
            try:
                await self.hydrate(podcast)
            except PlayerError as e:
                logger.warning("Failed to load %s: %s", podcast.title, e)
                continue
            loaded = sum(1 for p in self.catalog if p.is_loaded)
            logger.info("Progress: %d/%d podcasts loaded", loaded, total)

        logger.info("Background loading finished")
