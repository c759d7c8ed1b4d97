"""Tests for application startup: catalog load, first selection, deep links."""

import asyncio

from src.app_context import NO_PODCASTS_MESSAGE, AppContext
from src.embed import DeepLink
from src.exceptions import FeedFetchError
from src.media import MediaElement
from src.models import HydrationState

MASTER_URL = "https://master.example.com/feed.php"


class FakeMediaElement(MediaElement):
    def play(self) -> None:
        pass

    def pause(self) -> None:
        pass


class FakeResolver:
    def __init__(self, documents: dict):
        self.documents = documents

    async def fetch(self, url: str) -> str:
        document = self.documents[url]
        if isinstance(document, Exception):
            raise document
        return document


def _master(*names: str) -> str:
    items = "".join(
        f"<item><title>{n}</title><link>https://{n.lower()}.example.com/rss</link></item>"
        for n in names
    )
    return f"<rss><channel>{items}</channel></rss>"


def _feed(title: str, episodes: int) -> str:
    items = "".join(
        f"<item><title>{title} {i}</title><enclosure url='https://cdn.example.com/{title}{i}.mp3'/></item>"
        for i in range(episodes)
    )
    return f"<rss><channel><title>{title}</title>{items}</channel></rss>"


def _documents() -> dict:
    return {
        MASTER_URL: _master("Alpha", "Beta"),
        "https://alpha.example.com/rss": _feed("Alpha", 2),
        "https://beta.example.com/rss": _feed("Beta", 3),
    }


def _context(**documents) -> AppContext:
    docs = _documents()
    docs.update(documents)
    return AppContext(
        resolver=FakeResolver(docs),
        element=FakeMediaElement(),
        master_feed_url=MASTER_URL,
        pause_seconds=0,
    )


def _start(context: AppContext, deep_link: DeepLink | None = None) -> None:
    async def run():
        await context.start(deep_link)
        if context.loader.background_task is not None:
            await context.loader.background_task

    asyncio.run(run())


def test_start_selects_first_podcast_without_loading_an_episode():
    context = _context()
    _start(context)

    snap = context.player.snapshot()
    assert context.started is True
    assert snap.podcast_title == "Alpha"
    assert snap.episode_id is None
    assert snap.loading is False
    assert snap.notice is None


def test_deep_link_selects_podcast_and_episode():
    context = _context()
    _start(context, DeepLink(podcast=1, episode=2))

    assert context.player.current_podcast.id == 1
    assert context.player.current_episode.title == "Beta 2"
    assert context.element.src == "https://cdn.example.com/Beta2.mp3"


def test_deep_link_to_missing_episode_keeps_podcast():
    context = _context()
    _start(context, DeepLink(podcast=1, episode=10))

    assert context.player.current_podcast.id == 1
    assert context.player.current_episode is None


def test_deep_link_to_unknown_podcast_is_ignored():
    context = _context()
    _start(context, DeepLink(podcast=5, episode=0))

    assert context.player.current_podcast.id == 0


def test_network_failure_notice():
    context = _context(**{MASTER_URL: FeedFetchError("All CORS proxies failed. Last error: x")})
    _start(context)

    snap = context.player.snapshot()
    assert snap.notice == (
        "Failed to load podcasts: Network access blocked. Check that the feed relay is reachable."
    )
    assert snap.loading is False
    assert context.started is False


def test_parse_failure_notice():
    context = _context(**{MASTER_URL: "<rss><channel>"})
    _start(context)

    assert context.player.snapshot().notice == "Failed to load podcasts: Unable to read feed format"


def test_empty_catalog_notice():
    context = _context(**{MASTER_URL: _master()})
    _start(context)

    assert context.player.snapshot().notice == NO_PODCASTS_MESSAGE
    assert context.player.current_podcast is None


def test_first_podcast_failure_surfaces_on_selection():
    context = _context(**{"https://alpha.example.com/rss": FeedFetchError("upstream 503")})
    _start(context)

    assert context.catalog.get(0).hydration is HydrationState.FAILED
    assert context.catalog.get(1).is_loaded
    assert context.player.snapshot().notice.startswith("Failed to load Alpha:")


def test_shutdown_cancels_background_loading():
    context = _context()

    async def run():
        await context.start()
        task = context.loader.background_task
        await context.shutdown()
        await asyncio.sleep(0)
        return task

    task = asyncio.run(run())
    assert task.cancelled() or task.done()


# --- Selections made while the catalog is loading ---

class GatedResolver(FakeResolver):
    """Holds one URL's fetch until the test opens the gate."""

    def __init__(self, documents: dict, gated_url: str):
        super().__init__(documents)
        self.gated_url = gated_url
        self.waiting = asyncio.Event()
        self.gate = asyncio.Event()

    async def fetch(self, url: str) -> str:
        if url == self.gated_url:
            self.waiting.set()
            await self.gate.wait()
        return await super().fetch(url)


async def _start_with_gate(gated_url: str, during_load) -> AppContext:
    resolver = GatedResolver(_documents(), gated_url)
    context = AppContext(
        resolver=resolver,
        element=FakeMediaElement(),
        master_feed_url=MASTER_URL,
        pause_seconds=0,
    )
    start = asyncio.create_task(context.start())
    await resolver.waiting.wait()
    await during_load(context)
    resolver.gate.set()
    await start
    if context.loader.background_task is not None:
        await context.loader.background_task
    return context


def test_deep_link_while_first_podcast_loads_is_kept():
    async def follow_link(context):
        assert await context.apply_deep_link(DeepLink(podcast=1, episode=2))
        assert context.player.current_episode.title == "Beta 2"

    context = asyncio.run(_start_with_gate("https://alpha.example.com/rss", follow_link))

    assert context.player.current_podcast.id == 1
    assert context.player.current_episode.title == "Beta 2"


def test_deep_link_before_index_loads_is_applied_after():
    async def follow_link(context):
        assert await context.apply_deep_link(DeepLink(podcast=1, episode=1))
        assert context.player.current_podcast is None

    context = asyncio.run(_start_with_gate(MASTER_URL, follow_link))

    assert context.player.current_podcast.id == 1
    assert context.player.current_episode.title == "Beta 1"


def test_user_selection_while_loading_is_kept():
    async def select_beta(context):
        await context.player.select_podcast(1)

    context = asyncio.run(_start_with_gate("https://alpha.example.com/rss", select_beta))

    assert context.player.current_podcast.id == 1
    assert context.player.current_episode is None


def test_deep_link_after_failed_start_is_not_held():
    context = _context(**{MASTER_URL: FeedFetchError("All CORS proxies failed. Last error: x")})
    _start(context)

    assert asyncio.run(context.apply_deep_link(DeepLink(podcast=0))) is False


# --- Hydration progress ---

def test_hydration_progress_is_published():
    context = _context()
    seen = []
    context.player.subscribe(seen.append)

    _start(context)

    loaded = [s.podcasts_loaded for s in seen]
    assert 1 in loaded
    assert loaded[-1] == 2
    assert seen[-1].podcasts_total == 2
