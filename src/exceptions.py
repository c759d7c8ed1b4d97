"""Custom exception hierarchy for the podcast player."""


class PlayerError(Exception):
    """Base exception for all podcast player errors."""


class ProxyAttemptError(PlayerError):
    """Raised when a single fetch strategy fails (recovered by the resolver)."""


class FeedFetchError(PlayerError):
    """Raised when every fetch strategy has failed for a URL."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


class FeedParseError(PlayerError):
    """Raised when a feed document is malformed or has no channel."""


class RelayError(PlayerError):
    """Raised when the CORS relay rejects a request or the upstream fetch fails."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def describe_load_error(error: Exception) -> str:
    """Turn a catalog loading error into the text shown in the error toast."""
    text = str(error)
    message = "Failed to load podcasts: "
    if "CORS" in text or "fetch" in text:
        return message + "Network access blocked. Check that the feed relay is reachable."
    if "parsing" in text.lower():
        return message + "Unable to read feed format"
    return message + text
