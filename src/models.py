"""Data models for the podcast catalog."""

from dataclasses import dataclass, field
from enum import Enum


class HydrationState(str, Enum):
    """Whether a podcast's own feed has been fetched into its episode list."""

    UNLOADED = "unloaded"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class Episode:
    """A single playable item of a podcast feed."""

    id: int  # position within the podcast's episode list
    title: str
    audio_url: str
    description: str = ""
    pub_date: str = ""  # raw RSS value, formatted at render time
    duration: str = ""  # raw: seconds or HH:MM:SS
    type: str = "audio/mpeg"
    image: str = ""


@dataclass
class Podcast:
    """A podcast entry of the catalog, hydrated in place once its feed loads."""

    id: int  # position within the master feed index
    feed_url: str
    title: str
    description: str = ""
    link: str = ""
    image: str = ""
    episodes: list[Episode] = field(default_factory=list)
    hydration: HydrationState = HydrationState.UNLOADED

    # Advisory fields from the master feed, shown before hydration
    episode_count: int | None = None
    latest_episode_date: str = ""

    @property
    def is_loaded(self) -> bool:
        return self.hydration is HydrationState.LOADED

    @property
    def needs_hydration(self) -> bool:
        return self.hydration is not HydrationState.LOADED

    def episode_at(self, index: int) -> Episode | None:
        """Return the episode at a list position, or None when out of range."""
        if 0 <= index < len(self.episodes):
            return self.episodes[index]
        return None
