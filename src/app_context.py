"""Application context: owns the catalog, its loader and the single player."""

import logging

from src.catalog import Catalog, CatalogLoader
from src.embed import DeepLink
from src.exceptions import FeedFetchError, FeedParseError, describe_load_error
from src.fetch_resolver import FetchResolver
from src.media import MediaElement, RemoteMediaElement
from src.player import Player

logger = logging.getLogger(__name__)

NO_PODCASTS_MESSAGE = "Failed to load podcasts: No podcasts found in feed"


class AppContext:
    """Wires fetch, catalog and player together for one running player.

    Everything that used to be ambient state lives here and is handed to the
    presentation layer explicitly.
    """

    def __init__(
        self,
        resolver: FetchResolver | None = None,
        element: MediaElement | None = None,
        master_feed_url: str | None = None,
        pause_seconds: float | None = None,
    ):
        self.resolver = resolver or FetchResolver()
        self.catalog = Catalog()
        self.loader = CatalogLoader(
            self.resolver,
            self.catalog,
            master_feed_url=master_feed_url,
            pause_seconds=pause_seconds,
        )
        self.element = element or RemoteMediaElement()
        self.player = Player(self.catalog, self.element, loader=self.loader)
        self.loader.on_hydrated = self.player.podcast_hydrated
        self.started = False
        self._starting = False
        self._pending_link: DeepLink | None = None

    async def start(self, deep_link: DeepLink | None = None) -> None:
        """Load the catalog, then apply a deep link or select the first podcast.

        A selection made while the catalog was loading (e.g. a deep link
        posted by the page) is kept. Load failures end up as a player notice;
        the loading indicator is cleared on every path.
        """
        if deep_link is not None:
            self._pending_link = deep_link
        self._starting = True
        self.player.set_loading(True)
        try:
            await self.loader.load()
        except (FeedFetchError, FeedParseError) as e:
            logger.error("Error fetching master feed: %s", e)
            self.player.show_error(describe_load_error(e))
            return
        finally:
            self._starting = False
            self.player.set_loading(False)

        self.started = True
        link, self._pending_link = self._pending_link, None
        if not self.catalog.podcasts:
            self.player.show_error(NO_PODCASTS_MESSAGE)
            return

        if link is not None and await self.apply_deep_link(link):
            return
        if self.player.current_podcast is None:
            await self.player.select_podcast(0)

    async def apply_deep_link(self, link: DeepLink) -> bool:
        """Select the linked podcast and load the linked episode if it exists.

        A link arriving before the index has loaded is held and applied by
        ``start()``.

        Returns:
            True if the podcast was found (and selected) or the link is held.
        """
        if self._starting and not self.catalog.podcasts:
            logger.info("Holding deep link until the catalog is loaded")
            self._pending_link = link
            return True
        if link.podcast is None or self.catalog.get(link.podcast) is None:
            return False

        await self.player.select_podcast(link.podcast)
        if link.episode is not None:
            podcast = self.player.current_podcast
            if podcast is not None and podcast.episode_at(link.episode) is not None:
                self.player.load_episode_at(link.episode)
            else:
                logger.warning("Deep link episode %s not found", link.episode)
        return True

    async def shutdown(self) -> None:
        task = self.loader.background_task
        if task is not None and not task.done():
            task.cancel()
