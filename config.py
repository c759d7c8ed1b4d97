"""Centralized configuration using pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Master feed: each item points at one podcast's own RSS feed
    master_feed_url: str = "https://podcast.supersoul.top/feed.php"

    # Serving (page URL for deep links/embeds, origin of the local relay)
    base_url: str = "http://localhost:8000"
    relay_path: str = "/proxy"

    # Public CORS proxies, tried after the local relay (in this order)
    corsproxy_url: str = "https://corsproxy.io/?"
    allorigins_url: str = "https://api.allorigins.win/get?url="
    codetabs_url: str = "https://api.codetabs.com/v1/proxy?quest="

    # Fetching
    fetch_timeout: int = 30
    hydration_pause_seconds: float = 0.5

    # Relay (comma-separated, substring match against the target host)
    relay_allowed_domains: str = (
        "podcast.supersoul.top,democracynow.org,wpfwfm.org,podbean.com,"
        "archive.org,libsyn.com,simplecast.com"
    )
    relay_user_agent: str = "Podcast Player/1.0 (RSS Feed Aggregator)"
    relay_timeout: int = 30
    relay_max_redirects: int = 5

    # Default player embed size
    embed_width: str = "100%"
    embed_height: str = "600"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()


def allowed_domains() -> list[str]:
    """Return the relay allow-list as lower-cased domain fragments."""
    return [d.strip().lower() for d in settings.relay_allowed_domains.split(",") if d.strip()]
