"""Tests for the player state machine."""

import asyncio

import pytest

from src.catalog import Catalog
from src.exceptions import FeedFetchError
from src.media import MediaElement
from src.models import Episode, HydrationState, Podcast
from src.player import PlaybackStatus, Player


class FakeMediaElement(MediaElement):
    """Records play/pause requests; events are emitted by the test."""

    def __init__(self):
        super().__init__()
        self.requests: list[str] = []

    def play(self) -> None:
        self.requests.append("play")

    def pause(self) -> None:
        self.requests.append("pause")


class FakeLoader:
    """Hydrates on demand with canned episodes, or fails."""

    def __init__(self, episodes: list[Episode] | None = None, error: Exception | None = None):
        self.episodes = episodes or []
        self.error = error
        self.calls: list[int] = []

    async def ensure_hydrated(self, podcast: Podcast) -> Podcast:
        self.calls.append(podcast.id)
        await asyncio.sleep(0)
        if self.error is not None:
            podcast.hydration = HydrationState.FAILED
            raise self.error
        podcast.episodes = self.episodes
        podcast.hydration = HydrationState.LOADED
        return podcast


def _episodes(prefix: str, count: int) -> list[Episode]:
    return [
        Episode(id=i, title=f"{prefix} {i}", audio_url=f"https://cdn.example.com/{prefix}{i}.mp3")
        for i in range(count)
    ]


def _catalog() -> Catalog:
    return Catalog([
        Podcast(
            id=0,
            feed_url="https://a.example.com/rss",
            title="Alpha",
            image="alpha.jpg",
            episodes=_episodes("a", 2),
            hydration=HydrationState.LOADED,
        ),
        Podcast(
            id=1,
            feed_url="https://b.example.com/rss",
            title="Beta",
            episodes=_episodes("b", 3),
            hydration=HydrationState.LOADED,
        ),
        Podcast(id=2, feed_url="https://c.example.com/rss", title="Gamma", episode_count=7),
    ])


def _player(loader=None) -> tuple[Player, FakeMediaElement]:
    element = FakeMediaElement()
    player = Player(_catalog(), element, loader=loader, base_url="https://player.example.com/")
    return player, element


def _selected(index: int = 0, loader=None) -> tuple[Player, FakeMediaElement]:
    player, element = _player(loader)
    asyncio.run(player.select_podcast(index))
    return player, element


# --- Selection and loading ---

def test_initial_state():
    player, _ = _player()
    snap = player.snapshot()
    assert snap.status is PlaybackStatus.IDLE
    assert snap.podcast_id is None
    assert snap.current_time_label == "0:00"
    assert snap.can_download is False


def test_select_podcast_does_not_load_an_episode():
    player, element = _selected(1)

    assert player.current_podcast.title == "Beta"
    assert player.current_episode is None
    assert player.status is PlaybackStatus.IDLE
    assert element.src == ""
    assert player.snapshot().episode_count_label == "3 episodes"


def test_select_unknown_podcast_is_ignored():
    player, _ = _selected(0)
    asyncio.run(player.select_podcast(9))
    assert player.current_podcast.id == 0


def test_load_episode():
    player, element = _selected(0)
    episode = player.current_podcast.episodes[1]

    player.load_episode(episode)

    assert player.current_episode is episode
    assert element.src == episode.audio_url
    assert player.status is PlaybackStatus.LOADED
    assert player.is_playing is False
    assert element.requests == []


def test_load_same_episode_twice_gives_same_state():
    player, _ = _selected(0)
    episode = player.current_podcast.episodes[0]

    player.load_episode(episode)
    first = player.snapshot()
    player.load_episode(episode)

    assert player.snapshot() == first


def test_load_episode_from_other_podcast_rejected():
    player, _ = _selected(0)
    foreign = player.catalog.get(1).episodes[0]

    with pytest.raises(ValueError, match="current podcast"):
        player.load_episode(foreign)


def test_load_episode_at():
    player, _ = _selected(1)
    player.load_episode_at(2)
    assert player.current_episode.title == "b 2"
    with pytest.raises(IndexError):
        player.load_episode_at(3)


def test_load_episode_at_without_podcast():
    player, _ = _player()
    with pytest.raises(ValueError, match="No podcast selected"):
        player.load_episode_at(0)


def test_selecting_while_playing_pauses():
    player, element = _selected(0)
    player.load_episode_at(0)
    player.toggle_play_pause()
    element.emit("play")

    asyncio.run(player.select_podcast(1))

    assert element.requests == ["play", "pause"]
    assert player.current_episode is None


# --- Play / pause ---

def test_toggle_requests_play_but_does_not_claim_playback():
    player, element = _selected(0)
    player.load_episode_at(0)

    player.toggle_play_pause()

    assert element.requests == ["play"]
    assert player.is_playing is False
    snap = player.snapshot()
    assert snap.play_requested is True
    assert snap.status is PlaybackStatus.LOADED


def test_play_event_confirms_playback_and_toggle_pauses():
    player, element = _selected(0)
    player.load_episode_at(0)
    player.toggle_play_pause()

    element.emit("play")
    assert player.is_playing is True
    assert player.status is PlaybackStatus.PLAYING

    player.toggle_play_pause()
    assert element.requests == ["play", "pause"]
    element.emit("pause")
    assert player.is_playing is False
    assert player.status is PlaybackStatus.PAUSED


def test_toggle_without_episode_is_noop():
    player, element = _selected(0)
    player.toggle_play_pause()
    assert element.requests == []


# --- Auto-advance ---

def test_ended_advances_to_next_episode_and_requests_play():
    player, element = _selected(0)
    first, second = player.current_podcast.episodes
    player.load_episode(first)
    player.toggle_play_pause()
    element.emit("play")

    element.emit("ended")

    assert player.current_episode is second
    assert element.src == second.audio_url
    assert element.requests[-1] == "play"
    assert player.snapshot().play_requested is True


def test_last_episode_ending_stops():
    player, element = _selected(0)
    last = player.current_podcast.episodes[-1]
    player.load_episode(last)
    element.emit("play")

    element.emit("ended")

    assert player.current_episode is last
    assert player.status is PlaybackStatus.ENDED
    assert player.is_playing is False


# --- Seeking ---

def test_seek_needs_known_duration():
    player, element = _selected(0)
    player.load_episode_at(0)

    player.seek(50)
    assert element.current_time == 0.0

    element.duration = 200.0
    player.seek(50)
    assert element.current_time == 100.0
    assert player.snapshot().progress_percent == 50.0

    player.seek(150)
    assert element.current_time == 200.0


def test_skip_backward_and_forward_are_bounded():
    player, element = _selected(0)
    player.load_episode_at(0)
    element.duration = 100.0
    element.current_time = 10.0

    player.skip_backward()
    assert element.current_time == 0.0

    element.current_time = 50.0
    player.skip_forward()
    assert element.current_time == 80.0
    player.skip_forward()
    assert element.current_time == 100.0


def test_time_update_and_progress_events():
    player, element = _selected(0)
    player.load_episode_at(0)
    element.duration = 200.0
    element.current_time = 50.0
    element.buffered_end = 100.0

    element.emit("loadedmetadata")
    element.emit("timeupdate")
    element.emit("progress")

    snap = player.snapshot()
    assert snap.progress_percent == 25.0
    assert snap.buffered_percent == 50.0
    assert snap.current_time_label == "0:50"
    assert snap.duration_label == "3:20"


# --- Speed and volume ---

def test_speed_is_reapplied_on_load():
    player, element = _selected(0)
    player.set_speed(1.5)
    player.load_episode_at(0)

    assert element.playback_rate == 1.5
    assert player.snapshot().speed_label == "1.5x"


def test_invalid_speed_rejected():
    player, _ = _player()
    with pytest.raises(ValueError):
        player.set_speed(0)


def test_mute_restores_previous_volume():
    player, element = _player()
    player.set_volume(0.4)

    player.toggle_mute()
    assert element.volume == 0.0
    assert player.snapshot().volume_icon == "volume_off"

    player.toggle_mute()
    assert element.volume == 0.4
    assert player.snapshot().volume_icon == "volume_down"


def test_unmute_without_previous_volume_goes_full():
    player, element = _player()
    player.set_volume(0)
    player.toggle_mute()
    assert element.volume == 1.0


def test_volume_clamped():
    player, element = _player()
    player.set_volume(3)
    assert element.volume == 1.0


# --- Observers ---

def test_surfaces_receive_the_same_snapshot_once_per_transition():
    player, element = _selected(0)
    bar, modal = [], []
    player.subscribe(bar.append)
    unsubscribe = player.subscribe(modal.append)

    player.load_episode_at(1)

    assert len(bar) == 1 and len(modal) == 1
    assert bar[0] is modal[0]
    assert bar[0].episode_title == "a 1"

    unsubscribe()
    player.open_modal()
    assert len(bar) == 2 and len(modal) == 1
    assert bar[-1].modal_open is True


def test_snapshot_embed_and_cover():
    player, _ = _selected(0)
    player.load_episode_at(1)
    snap = player.snapshot()

    assert "https://player.example.com/?podcast=0&episode=1" in snap.embed_code
    assert snap.cover_image == "alpha.jpg"
    assert snap.can_download is True
    assert player.download_link() == ("https://cdn.example.com/a1.mp3", "a 1.mp3")


# --- On-demand hydration ---

def test_select_unloaded_podcast_hydrates_with_loading_indicator():
    loader = FakeLoader(episodes=_episodes("c", 4))
    player, _ = _player(loader)
    seen = []
    player.subscribe(seen.append)

    asyncio.run(player.select_podcast(2))

    assert loader.calls == [2]
    assert any(s.loading and s.loading_message == "Loading Gamma..." for s in seen)
    final = player.snapshot()
    assert final.loading is False
    assert final.episode_count_label == "4 episodes"
    assert final.list_version == 2


def test_select_loaded_podcast_does_not_hydrate():
    loader = FakeLoader()
    _selected(0, loader)
    assert loader.calls == []


def test_hydration_failure_shows_notice():
    loader = FakeLoader(error=FeedFetchError("All CORS proxies failed. Last error: 503"))
    player, _ = _player(loader)

    asyncio.run(player.select_podcast(2))

    snap = player.snapshot()
    assert snap.loading is False
    assert snap.notice.startswith("Failed to load Gamma:")
    player.dismiss_notice()
    assert player.snapshot().notice is None


def test_unloaded_podcast_shows_advisory_count():
    player, _ = _player()
    asyncio.run(player.select_podcast(2))
    assert player.snapshot().episode_count_label == "7 episodes"


def test_hydration_notice_from_loader_publishes_progress():
    player, _ = _player()
    seen = []
    player.subscribe(seen.append)
    gamma = player.catalog.get(2)
    gamma.hydration = HydrationState.LOADED

    player.podcast_hydrated(gamma)

    assert len(seen) == 1
    assert seen[0].podcasts_loaded == 3
    assert seen[0].podcasts_total == 3
