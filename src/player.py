"""Player state machine: the single source of truth for every playback surface.

Surfaces (the inline control bar, the modal player) never keep their own
playback state. They subscribe to the player and re-render from the
``PlayerSnapshot`` published after each transition, and they change state only
through the player's methods.

``is_playing`` is confirmed state: it only follows the media element's own
``play``/``pause`` events. What the user asked for is tracked separately as
``play_requested`` so a rejected play request cannot leave the UI claiming
playback.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from config import settings
from src.catalog import Catalog, CatalogLoader
from src.embed import episode_embed_code
from src.exceptions import PlayerError
from src.formatting import (
    episode_count_label,
    format_date,
    format_time,
    speed_label,
    volume_icon,
)
from src.media import MediaElement
from src.models import Episode, Podcast

logger = logging.getLogger(__name__)

SKIP_BACKWARD_SECONDS = 15
SKIP_FORWARD_SECONDS = 30
DEFAULT_LOADING_MESSAGE = "Loading podcasts..."


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


@dataclass(frozen=True)
class PlayerSnapshot:
    """Everything a surface needs to render, read at one point in time."""

    status: PlaybackStatus
    podcast_id: int | None
    podcast_title: str
    episode_id: int | None
    episode_title: str
    episode_date: str
    cover_image: str
    episode_count_label: str
    is_playing: bool
    play_requested: bool
    speed: float
    speed_label: str
    volume: float
    muted: bool
    volume_icon: str
    progress_percent: float
    buffered_percent: float
    current_time_label: str
    duration_label: str
    modal_open: bool
    loading: bool
    loading_message: str
    notice: str | None
    list_version: int
    podcasts_loaded: int
    podcasts_total: int
    embed_code: str
    can_download: bool


def _known(duration: float) -> bool:
    return not math.isnan(duration) and not math.isinf(duration) and duration > 0


class Player:
    """Drives one media element for the podcasts of one catalog."""

    def __init__(
        self,
        catalog: Catalog,
        element: MediaElement,
        loader: CatalogLoader | None = None,
        base_url: str | None = None,
        embed_width: str | None = None,
        embed_height: str | None = None,
    ):
        self.catalog = catalog
        self.element = element
        self.loader = loader
        self.base_url = base_url or settings.base_url
        self.embed_width = embed_width or settings.embed_width
        self.embed_height = embed_height or settings.embed_height

        self._podcast: Podcast | None = None
        self._episode: Episode | None = None
        self._status = PlaybackStatus.IDLE
        self._is_playing = False
        self._play_requested = False
        self._speed = 1.0
        self._previous_volume: float | None = None
        self._modal_open = False

        self._progress = 0.0
        self._buffered = 0.0
        self._current_label = format_time(0)
        self._duration_label = format_time(0)

        self._pending_loads = 0
        self._loading_message = ""
        self._notice: str | None = None
        self._list_version = 0

        self._subscribers: list[Callable[[PlayerSnapshot], None]] = []
        self._handlers = {
            "play": self._on_play,
            "pause": self._on_pause,
            "timeupdate": self._on_time_update,
            "progress": self._on_progress,
            "loadedmetadata": self._on_loaded_metadata,
            "ended": self._on_ended,
        }
        element.add_listener(self._on_media_event)

    # --- Read access ---

    @property
    def current_podcast(self) -> Podcast | None:
        return self._podcast

    @property
    def current_episode(self) -> Episode | None:
        return self._episode

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def status(self) -> PlaybackStatus:
        return self._status

    # --- Observers ---

    def subscribe(self, callback: Callable[[PlayerSnapshot], None]) -> Callable[[], None]:
        """Register a surface; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)

    def snapshot(self) -> PlayerSnapshot:
        podcast, episode = self._podcast, self._episode
        volume = self.element.volume

        cover = ""
        count = 0
        embed = ""
        if podcast is not None:
            cover = (episode.image if episode else "") or podcast.image
            count = len(podcast.episodes) if podcast.is_loaded else (podcast.episode_count or 0)
            embed = episode_embed_code(
                self.base_url,
                podcast.id,
                episode.id if episode else 0,
                self.embed_width,
                self.embed_height,
            )

        return PlayerSnapshot(
            status=self._status,
            podcast_id=podcast.id if podcast else None,
            podcast_title=podcast.title if podcast else "",
            episode_id=episode.id if episode else None,
            episode_title=episode.title if episode else "",
            episode_date=format_date(episode.pub_date) if episode else "",
            cover_image=cover,
            episode_count_label=episode_count_label(count) if podcast else "",
            is_playing=self._is_playing,
            play_requested=self._play_requested,
            speed=self._speed,
            speed_label=speed_label(self._speed),
            volume=volume,
            muted=volume <= 0,
            volume_icon=volume_icon(volume),
            progress_percent=self._progress,
            buffered_percent=self._buffered,
            current_time_label=self._current_label,
            duration_label=self._duration_label,
            modal_open=self._modal_open,
            loading=self._pending_loads > 0,
            loading_message=self._loading_message,
            notice=self._notice,
            list_version=self._list_version,
            podcasts_loaded=sum(1 for p in self.catalog if p.is_loaded),
            podcasts_total=len(self.catalog),
            embed_code=embed,
            can_download=episode is not None,
        )

    # --- Loading indicator and notices ---

    def set_loading(self, loading: bool, message: str = DEFAULT_LOADING_MESSAGE) -> None:
        if loading:
            self._pending_loads += 1
            self._loading_message = message
        else:
            self._pending_loads = max(self._pending_loads - 1, 0)
            if not self._pending_loads:
                self._loading_message = ""
        self._publish()

    def show_error(self, message: str) -> None:
        logger.error("Player error: %s", message)
        self._notice = message
        self._publish()

    def dismiss_notice(self) -> None:
        self._notice = None
        self._publish()

    def podcast_hydrated(self, podcast: Podcast) -> None:
        """Catalog loader callback: a podcast's episodes have been merged."""
        logger.debug("Podcast %d hydrated", podcast.id)
        self._publish()

    # --- Transitions ---

    async def select_podcast(self, index: int) -> None:
        """Make a podcast current, hydrating its feed first if needed.

        The current episode is cleared and nothing is loaded: playback needs
        an explicit episode selection.
        """
        podcast = self.catalog.get(index)
        if podcast is None:
            logger.warning("Ignoring selection of unknown podcast %d", index)
            return

        if self._is_playing or self._play_requested:
            self.element.pause()
        self._podcast = podcast
        self._episode = None
        self._status = PlaybackStatus.IDLE
        self._play_requested = False
        self._reset_progress()
        self._list_version += 1
        self._publish()

        if not podcast.needs_hydration or self.loader is None:
            return

        self.set_loading(True, f"Loading {podcast.title}...")
        try:
            await self.loader.ensure_hydrated(podcast)
        except PlayerError as e:
            logger.warning("On-demand load of %s failed: %s", podcast.title, e)
            if self._podcast is podcast:
                self._notice = f"Failed to load {podcast.title}: {e}"
        finally:
            if self._podcast is podcast:
                self._list_version += 1
            self.set_loading(False)

    def load_episode(self, episode: Episode) -> None:
        """Load an episode of the current podcast, paused at position 0.

        Raises:
            ValueError: If the episode is not in the current podcast's list.
        """
        self._load(episode)
        self._publish()

    def load_episode_at(self, index: int) -> None:
        """Load the current podcast's episode at a list position.

        Raises:
            ValueError: If no podcast is selected.
            IndexError: If the position is out of range.
        """
        if self._podcast is None:
            raise ValueError("No podcast selected")
        episode = self._podcast.episode_at(index)
        if episode is None:
            raise IndexError(f"Podcast {self._podcast.id} has no episode {index}")
        self.load_episode(episode)

    def _load(self, episode: Episode) -> None:
        podcast = self._podcast
        if podcast is None or not any(ep is episode for ep in podcast.episodes):
            raise ValueError("Episode does not belong to the current podcast")

        if self._is_playing or self._play_requested:
            self.element.pause()
        self._episode = episode
        self._is_playing = False
        self._play_requested = False
        self.element.load(episode.audio_url)
        if self._speed != 1.0:
            self.element.set_rate(self._speed)
        self._reset_progress()
        self._status = PlaybackStatus.LOADED
        logger.info("Loaded episode %d of %s: %s", episode.id, podcast.title, episode.title)

    def _reset_progress(self) -> None:
        self._progress = 0.0
        self._buffered = 0.0
        self._current_label = format_time(0)
        self._duration_label = format_time(0)

    def toggle_play_pause(self) -> None:
        """Ask the element to play or pause; the outcome arrives as an event."""
        if self._episode is None:
            return
        if self._is_playing:
            self.element.pause()
            self._play_requested = False
        else:
            self.element.play()
            self._play_requested = True
        self._publish()

    def _request_play(self) -> None:
        self.element.play()
        self._play_requested = True

    def seek(self, percent: float) -> None:
        if self._episode is None or not _known(self.element.duration):
            return
        percent = min(max(percent, 0.0), 100.0)
        self.element.seek(percent / 100 * self.element.duration)
        self._update_progress()
        self._publish()

    def skip_backward(self) -> None:
        if self._episode is None:
            return
        self.element.seek(max(0.0, self.element.current_time - SKIP_BACKWARD_SECONDS))
        self._update_progress()
        self._publish()

    def skip_forward(self) -> None:
        if self._episode is None:
            return
        position = self.element.current_time + SKIP_FORWARD_SECONDS
        if _known(self.element.duration):
            position = min(self.element.duration, position)
        self.element.seek(position)
        self._update_progress()
        self._publish()

    def set_speed(self, speed: float) -> None:
        if speed <= 0:
            raise ValueError(f"Playback speed must be positive, got {speed}")
        self._speed = speed
        self.element.set_rate(speed)
        self._publish()

    def set_volume(self, volume: float) -> None:
        self.element.set_volume(min(max(volume, 0.0), 1.0))
        self._publish()

    def toggle_mute(self) -> None:
        """Mute, remembering the volume, or restore it (full volume if unknown)."""
        if self.element.volume > 0:
            self._previous_volume = self.element.volume
            self.element.set_volume(0.0)
        else:
            self.element.set_volume(self._previous_volume or 1.0)
        self._publish()

    def open_modal(self) -> None:
        self._modal_open = True
        self._publish()

    def close_modal(self) -> None:
        self._modal_open = False
        self._publish()

    def toggle_modal(self) -> None:
        self._modal_open = not self._modal_open
        self._publish()

    def download_link(self) -> tuple[str, str] | None:
        """Audio URL and suggested file name of the current episode."""
        if self._episode is None:
            return None
        return self._episode.audio_url, f"{self._episode.title}.mp3"

    # --- Media element events ---

    def _on_media_event(self, event: str) -> None:
        self._handlers[event]()
        self._publish()

    def _on_play(self) -> None:
        self._is_playing = True
        self._play_requested = False
        if self._episode is not None:
            self._status = PlaybackStatus.PLAYING

    def _on_pause(self) -> None:
        self._is_playing = False
        self._play_requested = False
        if self._episode is not None and self._status is not PlaybackStatus.ENDED:
            self._status = PlaybackStatus.PAUSED

    def _on_time_update(self) -> None:
        self._update_progress()

    def _update_progress(self) -> None:
        current, duration = self.element.current_time, self.element.duration
        if _known(duration):
            self._progress = current / duration * 100
            self._current_label = format_time(current)
            self._duration_label = format_time(duration)

    def _on_progress(self) -> None:
        buffered_end, duration = self.element.buffered_end, self.element.duration
        if buffered_end is not None and _known(duration):
            self._buffered = buffered_end / duration * 100

    def _on_loaded_metadata(self) -> None:
        self._duration_label = format_time(self.element.duration)

    def _on_ended(self) -> None:
        self._is_playing = False
        self._play_requested = False
        self._status = PlaybackStatus.ENDED
        self._advance()

    def _advance(self) -> None:
        """Load and play the next episode of the current podcast, if any."""
        podcast, current = self._podcast, self._episode
        if podcast is None or current is None:
            return
        position = next((i for i, ep in enumerate(podcast.episodes) if ep is current), None)
        if position is None or position + 1 >= len(podcast.episodes):
            logger.info("Reached the last episode of %s", podcast.title)
            return
        self._load(podcast.episodes[position + 1])
        self._request_play()
