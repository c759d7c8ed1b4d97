"""Deep links and iframe embed code generation."""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode

DIMENSION_UNITS = ("px", "%")
EPISODE_SORTS = ("newest", "oldest")
PODCAST_ORDERS = ("feed", "alphabetical")
THEMES = ("dark", "light")

LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class DeepLink:
    """Podcast / episode positions requested through ?podcast=&episode=."""

    podcast: int | None = None
    episode: int | None = None


def _parse_index(value: str | None) -> int | None:
    if value is None:
        return None
    match = LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def parse_deep_link(params: str | Mapping[str, str]) -> DeepLink:
    """Read podcast/episode positions from a query string or a mapping.

    Values are parsed by their integer prefix; anything else is ignored.
    """
    if isinstance(params, str):
        parsed = parse_qs(params.lstrip("?"))
        params = {key: values[0] for key, values in parsed.items() if values}
    return DeepLink(
        podcast=_parse_index(params.get("podcast")),
        episode=_parse_index(params.get("episode")),
    )


def format_dimension(value: int | float | str, unit: str) -> str:
    """Join a size value and unit, e.g. (100, "%") -> "100%"."""
    if unit not in DIMENSION_UNITS:
        raise ValueError(f"Unsupported unit '{unit}', expected one of {DIMENSION_UNITS}")
    return f"{value}{unit}"


def iframe_code(src: str, width: str, height: str) -> str:
    return (
        f'<iframe src="{src}" width="{width}" height="{height}" '
        f'frameborder="0" allowfullscreen></iframe>'
    )


def episode_embed_url(base_url: str, podcast_id: int, episode_id: int) -> str:
    page = base_url.split("?")[0]
    return f"{page}?podcast={podcast_id}&episode={episode_id}"


def episode_embed_code(
    base_url: str, podcast_id: int, episode_id: int, width: str = "100%", height: str = "600"
) -> str:
    """Embed code that opens the player on one podcast episode."""
    return iframe_code(episode_embed_url(base_url, podcast_id, episode_id), width, height)


@dataclass
class EmbedOptions:
    """Options of the embed generator; defaults produce a bare player URL."""

    width_value: int = 100
    width_unit: str = "%"
    height_value: int = 600
    height_unit: str = "px"
    default_podcast: int | None = None
    episode_sort: str = "newest"
    episode_limit: int | None = None
    podcast_order: str = "feed"
    theme: str = "dark"
    hide_theme_toggle: bool = False
    show_header: bool = True
    show_podcast_selector: bool = True
    show_cover_art: bool = True
    show_download_buttons: bool = True

    def __post_init__(self) -> None:
        if self.episode_sort not in EPISODE_SORTS:
            raise ValueError(f"Unsupported episode sort '{self.episode_sort}'")
        if self.podcast_order not in PODCAST_ORDERS:
            raise ValueError(f"Unsupported podcast order '{self.podcast_order}'")
        if self.theme not in THEMES:
            raise ValueError(f"Unsupported theme '{self.theme}'")
        if self.episode_limit is not None and self.episode_limit < 1:
            raise ValueError("Episode limit must be positive")

    @property
    def width(self) -> str:
        return format_dimension(self.width_value, self.width_unit)

    @property
    def height(self) -> str:
        return format_dimension(self.height_value, self.height_unit)


def generator_query(options: EmbedOptions) -> str:
    """Build the player query string, emitting only non-default options."""
    params: list[tuple[str, str]] = []
    if options.default_podcast is not None:
        params.append(("podcast", str(options.default_podcast)))
    if options.episode_sort != "newest":
        params.append(("sort", options.episode_sort))
    if options.episode_limit:
        params.append(("limit", str(options.episode_limit)))
    if options.podcast_order != "feed":
        params.append(("podcast_order", options.podcast_order))
    if options.theme != "dark":
        params.append(("theme", options.theme))
    if options.hide_theme_toggle:
        params.append(("theme_toggle", "false"))
    if not options.show_header:
        params.append(("header", "false"))
    if not options.show_podcast_selector:
        params.append(("selector", "false"))
    if not options.show_cover_art:
        params.append(("cover", "false"))
    if not options.show_download_buttons:
        params.append(("download", "false"))
    return urlencode(params)


def generator_embed_code(base_url: str, options: EmbedOptions) -> str:
    query = generator_query(options)
    page = base_url.split("?")[0]
    src = f"{page}?{query}" if query else page
    return iframe_code(src, options.width, options.height)
