"""Server-side feed relay that lets browser clients read feeds despite CORS."""

import html
import logging
from urllib.parse import urlparse

import requests

from config import allowed_domains, settings
from src.exceptions import RelayError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
XML_CONTENT_TYPE = "application/xml; charset=UTF-8"
ACCEPT_FEEDS = "application/rss+xml, application/xml, text/xml, */*"


def validate_target(url: str) -> str:
    """Check that a relay target is an absolute URL on an allowed domain.

    Raises:
        RelayError: 400 for a missing or invalid URL, 403 for a disallowed domain.
    """
    if not url:
        raise RelayError(400, "Missing url parameter")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise RelayError(400, "Invalid URL")

    host = parsed.hostname.lower()
    if not any(domain in host for domain in allowed_domains()):
        logger.warning("Relay refused domain %s", host)
        raise RelayError(403, "Domain not allowed")
    return url


def fetch_upstream(url: str) -> bytes:
    """Fetch the target with the relay's fixed user agent.

    Raises:
        RelayError: With the upstream status for non-200 answers, or 500
            when the request itself fails.
    """
    session = requests.Session()
    session.max_redirects = settings.relay_max_redirects
    headers = {"User-Agent": settings.relay_user_agent, "Accept": ACCEPT_FEEDS}
    try:
        resp = session.get(url, headers=headers, timeout=settings.relay_timeout)
    except requests.exceptions.RequestException as e:
        logger.warning("Relay fetch of %s failed: %s", url, e)
        raise RelayError(500, str(e) or "Failed to fetch feed") from e
    finally:
        session.close()

    if resp.status_code != 200:
        logger.warning("Relay fetch of %s returned %d", url, resp.status_code)
        raise RelayError(resp.status_code or 500, "Failed to fetch feed")
    return resp.content


def error_body(message: str) -> str:
    return f'<?xml version="1.0"?><error>{html.escape(message)}</error>'
