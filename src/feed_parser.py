"""RSS / iTunes feed parsing into normalized Podcast and Episode models."""

import html
import logging
import re

from bs4 import BeautifulSoup
from lxml import etree

from src.exceptions import FeedParseError
from src.models import Episode, HydrationState, Podcast

logger = logging.getLogger(__name__)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"

DEFAULT_EPISODE_TITLE = "Untitled Episode"
DEFAULT_PODCAST_TITLE = "Untitled Podcast"
DEFAULT_AUDIO_TYPE = "audio/mpeg"

# lxml rejects str input that still carries an encoding declaration
XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")
WHITESPACE = re.compile(r"\s+")


def _parse_document(text: str) -> etree._Element:
    """Parse XML text strictly.

    Raises:
        FeedParseError: If the document is not well-formed XML.
    """
    cleaned = XML_DECLARATION.sub("", text.lstrip("\ufeff"), count=1).strip()
    parser = etree.XMLParser(recover=False, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(cleaned, parser)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise FeedParseError(f"Error parsing feed: {e}") from e
    if root is None:
        raise FeedParseError("Error parsing feed: empty document")
    return root


def _text(element: etree._Element | None) -> str:
    """Return the text content of an element (descendant text nodes only)."""
    if element is None:
        return ""
    return str(element.xpath("string()")).strip()


def _child(parent: etree._Element, tag: str) -> etree._Element | None:
    """Find a child by plain tag name, falling back to any namespace."""
    found = parent.find(tag)
    if found is None and not tag.startswith("{"):
        found = parent.find(f"{{*}}{tag}")
    return found


def _first_text(parent: etree._Element, *tags: str) -> str:
    """Return the first non-empty text among the given child tags."""
    for tag in tags:
        value = _text(_child(parent, tag))
        if value:
            return value
    return ""


def clean_text(value: str) -> str:
    """Strip HTML markup, decode entities and collapse whitespace."""
    if not value:
        return ""
    if "<" in value:
        # get_text() already decodes entities
        value = BeautifulSoup(value, "lxml").get_text(separator=" ")
    else:
        value = html.unescape(value)
    return WHITESPACE.sub(" ", value).strip()


def _decode(value: str) -> str:
    return html.unescape(value).strip()


def _channel_image(channel: etree._Element) -> str:
    """Resolve cover art: image/url, then itunes:image, then any image with href."""
    image_url = _text(channel.find("image/url"))
    if image_url:
        return image_url

    itunes_image = channel.find(f"{{{ITUNES_NS}}}image")
    if itunes_image is not None:
        value = itunes_image.get("href") or _text(itunes_image)
        if value:
            return value.strip()

    for image in channel.iterfind("{*}image"):
        if image.get("href"):
            return image.get("href").strip()

    return ""


def _parse_episode(item: etree._Element, episode_id: int) -> Episode | None:
    """Parse one <item>; returns None when no audio URL can be resolved."""
    enclosure = _child(item, "enclosure")
    audio_url = ""
    media_type = ""
    if enclosure is not None:
        audio_url = (enclosure.get("url") or "").strip()
        media_type = (enclosure.get("type") or "").strip()
    if not audio_url:
        audio_url = _text(_child(item, "link"))
    if not audio_url:
        return None

    description = _first_text(item, "description", f"{{{CONTENT_NS}}}encoded", "summary")
    duration = _text(item.find(f"{{{ITUNES_NS}}}duration")) or _text(_child(item, "duration"))

    image = ""
    itunes_image = item.find(f"{{{ITUNES_NS}}}image")
    if itunes_image is not None:
        image = (itunes_image.get("href") or "").strip()

    return Episode(
        id=episode_id,
        title=_decode(_first_text(item, "title") or DEFAULT_EPISODE_TITLE),
        audio_url=audio_url,
        description=clean_text(description),
        pub_date=_first_text(item, "pubDate"),
        duration=duration,
        type=media_type or DEFAULT_AUDIO_TYPE,
        image=image,
    )


def _find_channel(root: etree._Element) -> etree._Element:
    if etree.QName(root).localname == "channel":
        return root
    channel = root.find(".//{*}channel")
    if channel is None:
        raise FeedParseError("No channel found in feed")
    return channel


def parse_podcast_feed(text: str, podcast_id: int = 0, feed_url: str = "") -> Podcast:
    """Parse a podcast's own RSS feed.

    Items without a resolvable audio URL are dropped, so every returned
    episode is playable. A feed with no playable items yields a podcast with
    an empty episode list rather than an error.

    Args:
        text: Raw XML text of the feed.
        podcast_id: Catalog position to assign to the podcast.
        feed_url: URL the feed was fetched from.

    Returns:
        A loaded Podcast with its episodes in document order.

    Raises:
        FeedParseError: If the XML is malformed or has no channel.
    """
    channel = _find_channel(_parse_document(text))

    episodes: list[Episode] = []
    for item in channel.iterfind("{*}item"):
        episode = _parse_episode(item, len(episodes))
        if episode is not None:
            episodes.append(episode)

    podcast = Podcast(
        id=podcast_id,
        feed_url=feed_url,
        title=_decode(_first_text(channel, "title") or DEFAULT_PODCAST_TITLE),
        description=clean_text(_first_text(channel, "description")),
        link=_first_text(channel, "link"),
        image=_channel_image(channel),
        episodes=episodes,
        hydration=HydrationState.LOADED,
    )
    logger.debug("Parsed %d episodes from %s", len(episodes), feed_url or podcast.title)
    return podcast


def parse_master_feed(text: str) -> list[Podcast]:
    """Parse the master feed into an index of unloaded podcasts.

    Each <item> points at one podcast feed through its <link>. Items without a
    link are skipped; ids are positions in the returned list.

    Raises:
        FeedParseError: If the XML is malformed.
    """
    root = _parse_document(text)

    podcasts: list[Podcast] = []
    for i, item in enumerate(root.iter("{*}item")):
        feed_url = _text(_child(item, "link"))
        if not feed_url:
            logger.warning("Skipping master feed item %d: no feed link", i)
            continue

        cover = ""
        enclosure = _child(item, "enclosure")
        if enclosure is not None and (enclosure.get("type") or "").startswith("image/"):
            cover = (enclosure.get("url") or "").strip()

        count_text = _first_text(item, "episodeCount")
        try:
            episode_count = int(count_text) if count_text else None
        except ValueError:
            episode_count = None

        podcasts.append(Podcast(
            id=len(podcasts),
            feed_url=feed_url,
            title=clean_text(_first_text(item, "title")) or f"Podcast {i + 1}",
            description=clean_text(_first_text(item, "description")),
            image=cover,
            episode_count=episode_count,
            latest_episode_date=_first_text(item, "latestEpisodeDate"),
        ))

    logger.info("Found %d podcast feeds in master list", len(podcasts))
    return podcasts
