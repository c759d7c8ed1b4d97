"""Media element abstraction driven by the player state machine."""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

MEDIA_EVENTS = ("play", "pause", "timeupdate", "progress", "loadedmetadata", "ended")


class MediaElement(ABC):
    """A native audio element.

    The player only issues commands (``play``, ``pause``, ``load`` and
    attribute writes) and learns about their effect from the events the
    element emits afterwards. A ``play()`` request may never produce a
    ``play`` event, e.g. when autoplay is blocked.
    """

    def __init__(self) -> None:
        self.src = ""
        self.current_time = 0.0
        self.duration = math.nan
        self.volume = 1.0
        self.playback_rate = 1.0
        self.buffered_end: float | None = None
        self._listeners: list[Callable[[str], None]] = []

    def add_listener(self, callback: Callable[[str], None]) -> None:
        self._listeners.append(callback)

    def emit(self, event: str) -> None:
        """Deliver an element event to every listener."""
        if event not in MEDIA_EVENTS:
            raise ValueError(f"Unknown media event: {event}")
        for callback in list(self._listeners):
            callback(event)

    def load(self, src: str) -> None:
        """Assign a new source; position resets and metadata is unknown again."""
        self.src = src
        self.current_time = 0.0
        self.duration = math.nan
        self.buffered_end = None

    def seek(self, position: float) -> None:
        self.current_time = position

    def set_rate(self, rate: float) -> None:
        self.playback_rate = rate

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...


class RemoteMediaElement(MediaElement):
    """Media element living in a browser client.

    Commands are queued for the client to pick up; the client reports the
    events its real audio element fires through ``report``.
    """

    def __init__(self) -> None:
        super().__init__()
        self._commands: list[dict] = []

    def _queue(self, command: str, **fields) -> None:
        self._commands.append({"command": command, **fields})

    def drain_commands(self) -> list[dict]:
        commands, self._commands = self._commands, []
        return commands

    def play(self) -> None:
        self._queue("play")

    def pause(self) -> None:
        self._queue("pause")

    def load(self, src: str) -> None:
        super().load(src)
        self._queue("load", src=src)

    def seek(self, position: float) -> None:
        super().seek(position)
        self._queue("seek", position=position)

    def set_rate(self, rate: float) -> None:
        super().set_rate(rate)
        self._queue("rate", value=rate)

    def set_volume(self, volume: float) -> None:
        super().set_volume(volume)
        self._queue("volume", value=volume)

    def report(
        self,
        event: str,
        src: str,
        current_time: float | None = None,
        duration: float | None = None,
        buffered_end: float | None = None,
    ) -> bool:
        """Record what the client's element observed, then emit the event.

        Events describing another source than the one currently loaded (sent
        before the client picked up a ``load`` command) are dropped.

        Returns:
            False if the event was stale and ignored.
        """
        if src != self.src:
            logger.debug("Dropping %s event for stale source %s", event, src)
            return False
        if current_time is not None:
            self.current_time = current_time
        if duration is not None:
            self.duration = duration
        if buffered_end is not None:
            self.buffered_end = buffered_end
        logger.debug("Media event from client: %s (t=%.1f)", event, self.current_time)
        self.emit(event)
        return True
