"""Fetch remote feed documents through an ordered list of CORS proxies."""

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

import requests

from config import settings
from src.exceptions import FeedFetchError, ProxyAttemptError

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:"
BASE64_PAYLOAD = re.compile(r"base64,(.+)", re.DOTALL)


@dataclass(frozen=True)
class ProxyStrategy:
    """One way of reaching a remote document, plus how to unwrap the response."""

    name: str
    prefix: str
    wraps_json: bool = False

    def build_url(self, target: str) -> str:
        return f"{self.prefix}{quote(target, safe='')}"

    def unwrap(self, response: requests.Response) -> str:
        """Extract the document text from a successful response."""
        if not self.wraps_json:
            return response.text
        return unwrap_json_envelope(response.json())


def unwrap_json_envelope(payload: object) -> str:
    """Return the `contents` field of a wrapper-proxy envelope.

    The field may itself be a ``data:`` URI carrying the document as base64,
    in which case the payload is decoded.

    Raises:
        ProxyAttemptError: If the envelope has no contents, or its data URI
            has no base64 payload or one that cannot be decoded.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("contents"), str):
        raise ProxyAttemptError("Proxy envelope has no contents")

    contents = payload["contents"]
    if not contents.startswith(DATA_URI_PREFIX):
        return contents

    match = BASE64_PAYLOAD.search(contents)
    if not match:
        raise ProxyAttemptError("Proxy returned a data URI without a base64 payload")
    try:
        return base64.b64decode(match.group(1).strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ProxyAttemptError(f"Failed to decode base64 contents: {e}") from e


def default_strategies() -> list[ProxyStrategy]:
    """Build the strategy list from settings: local relay first, then public proxies."""
    relay = f"{settings.base_url.rstrip('/')}{settings.relay_path}?url="
    return [
        ProxyStrategy("Local Proxy", relay),
        ProxyStrategy("CorsProxy.io", settings.corsproxy_url),
        ProxyStrategy("AllOrigins", settings.allorigins_url, wraps_json=True),
        ProxyStrategy("CodeTabs", settings.codetabs_url),
    ]


class FetchResolver:
    """Try each strategy in order and return the first successful document."""

    def __init__(self, strategies: list[ProxyStrategy] | None = None, timeout: int | None = None):
        self.strategies = strategies if strategies is not None else default_strategies()
        self.timeout = timeout or settings.fetch_timeout

    def fetch_sync(self, url: str) -> str:
        """Fetch a document, blocking the calling thread.

        Args:
            url: The remote document URL.

        Returns:
            The raw document text from the first strategy that succeeds.

        Raises:
            FeedFetchError: If every strategy fails.
        """
        last_error: Exception | None = None
        for strategy in self.strategies:
            try:
                logger.info("Attempting to fetch %s via %s", url, strategy.name)
                resp = requests.get(strategy.build_url(url), timeout=self.timeout)
                if not resp.ok:
                    raise ProxyAttemptError(f"{strategy.name} returned status {resp.status_code}")
                contents = strategy.unwrap(resp)
                logger.info("Fetched %s via %s", url, strategy.name)
                return contents
            except (requests.exceptions.RequestException, ValueError, ProxyAttemptError) as e:
                logger.warning("%s failed for %s: %s", strategy.name, url, e)
                last_error = e

        raise FeedFetchError(
            f"All CORS proxies failed. Last error: {last_error}", last_error=last_error
        )

    async def fetch(self, url: str) -> str:
        """Fetch a document without blocking the event loop."""
        return await asyncio.to_thread(self.fetch_sync, url)
