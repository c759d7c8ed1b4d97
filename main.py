"""FastAPI app: feed relay, podcast catalog and player state API."""

import asyncio
import dataclasses
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import settings
from src import relay
from src.app_context import AppContext
from src.embed import EmbedOptions, episode_embed_code, generator_embed_code, generator_query
from src.embed import format_dimension, parse_deep_link
from src.exceptions import PlayerError, RelayError
from src.media import MEDIA_EVENTS, RemoteMediaElement
from src.models import Podcast

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

_context: AppContext | None = None
_start_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the application context and start loading the catalog."""
    global _context, _start_task
    _context = AppContext()
    _start_task = asyncio.create_task(_context.start())
    logger.info("Catalog loading started from %s", settings.master_feed_url)
    yield
    await _context.shutdown()
    if not _start_task.done():
        _start_task.cancel()
        try:
            await _start_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Podcast Player", description="Podcast feed relay and player", lifespan=lifespan)


def _get_context() -> AppContext:
    if _context is None:
        raise RuntimeError("Application context not initialized")
    return _context


def _podcast_summary(podcast: Podcast) -> dict:
    return {
        "id": podcast.id,
        "title": podcast.title,
        "description": podcast.description,
        "image": podcast.image,
        "hydration": podcast.hydration.value,
        "episode_count": len(podcast.episodes) if podcast.is_loaded else podcast.episode_count,
        "latest_episode_date": podcast.latest_episode_date,
    }


def _player_state() -> JSONResponse:
    return JSONResponse(dataclasses.asdict(_get_context().player.snapshot()))


# --- Relay ---

@app.api_route(settings.relay_path, methods=["GET", "OPTIONS"])
async def proxy(request: Request, url: str = Query(default="")) -> Response:
    """Relay a feed from an allowed domain with permissive CORS headers."""
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=relay.CORS_HEADERS)

    try:
        target = relay.validate_target(url)
        body = await asyncio.to_thread(relay.fetch_upstream, target)
    except RelayError as e:
        return Response(
            content=relay.error_body(e.message),
            status_code=e.status_code,
            media_type=relay.XML_CONTENT_TYPE,
            headers=relay.CORS_HEADERS,
        )
    return Response(content=body, media_type=relay.XML_CONTENT_TYPE, headers=relay.CORS_HEADERS)


# --- Catalog ---

@app.get("/api/podcasts")
async def api_podcasts():
    """List the podcast index (episodes may still be loading)."""
    return JSONResponse([_podcast_summary(p) for p in _get_context().catalog])


@app.get("/api/podcasts/{podcast_id}")
async def api_podcast(podcast_id: int):
    """Return one podcast with its episodes, loading its feed on demand."""
    context = _get_context()
    podcast = context.catalog.get(podcast_id)
    if podcast is None:
        return JSONResponse({"error": "Podcast not found."}, status_code=404)

    try:
        await context.loader.ensure_hydrated(podcast)
    except PlayerError as e:
        return JSONResponse({"error": f"Failed to load {podcast.title}: {e}"}, status_code=502)

    data = _podcast_summary(podcast)
    data["link"] = podcast.link
    data["episodes"] = [dataclasses.asdict(ep) for ep in podcast.episodes]
    return JSONResponse(data)


# --- Player ---

class MediaEventReport(BaseModel):
    """An event observed by the client's audio element."""

    event: str
    src: str  # source the client element had loaded when the event fired
    current_time: float | None = None
    duration: float | None = None
    buffered_end: float | None = None


@app.get("/api/player")
async def api_player():
    return _player_state()


@app.post("/api/player/podcast/{index}")
async def api_select_podcast(index: int):
    context = _get_context()
    if context.catalog.get(index) is None:
        return JSONResponse({"error": "Podcast not found."}, status_code=404)
    await context.player.select_podcast(index)
    return _player_state()


@app.post("/api/player/episode/{index}")
async def api_load_episode(index: int):
    try:
        _get_context().player.load_episode_at(index)
    except (ValueError, IndexError) as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    return _player_state()


@app.post("/api/player/toggle")
async def api_toggle():
    _get_context().player.toggle_play_pause()
    return _player_state()


@app.post("/api/player/seek")
async def api_seek(percent: float = Query(...)):
    _get_context().player.seek(percent)
    return _player_state()


@app.post("/api/player/skip-forward")
async def api_skip_forward():
    _get_context().player.skip_forward()
    return _player_state()


@app.post("/api/player/skip-backward")
async def api_skip_backward():
    _get_context().player.skip_backward()
    return _player_state()


@app.post("/api/player/speed")
async def api_speed(value: float = Query(...)):
    try:
        _get_context().player.set_speed(value)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return _player_state()


@app.post("/api/player/volume")
async def api_volume(value: float = Query(...)):
    _get_context().player.set_volume(value)
    return _player_state()


@app.post("/api/player/mute")
async def api_mute():
    _get_context().player.toggle_mute()
    return _player_state()


@app.post("/api/player/modal")
async def api_modal(open: bool = Query(...)):
    player = _get_context().player
    if open:
        player.open_modal()
    else:
        player.close_modal()
    return _player_state()


@app.post("/api/player/notice/dismiss")
async def api_dismiss_notice():
    _get_context().player.dismiss_notice()
    return _player_state()


@app.post("/api/player/deep-link")
async def api_deep_link(request: Request):
    """Apply ?podcast=&episode= from the page URL."""
    link = parse_deep_link(dict(request.query_params))
    found = await _get_context().apply_deep_link(link)
    if not found:
        return JSONResponse({"error": "Podcast not found."}, status_code=404)
    return _player_state()


@app.get("/api/player/download")
async def api_download():
    target = _get_context().player.download_link()
    if target is None:
        return JSONResponse({"error": "No episode loaded."}, status_code=404)
    url, filename = target
    return JSONResponse({"url": url, "filename": filename})


@app.get("/api/player/commands")
async def api_commands():
    """Media commands queued for the client's audio element."""
    element = _get_context().element
    if not isinstance(element, RemoteMediaElement):
        return JSONResponse([])
    return JSONResponse(element.drain_commands())


@app.post("/api/player/media-event")
async def api_media_event(report: MediaEventReport):
    element = _get_context().element
    if report.event not in MEDIA_EVENTS or not isinstance(element, RemoteMediaElement):
        return JSONResponse({"error": f"Unknown media event '{report.event}'."}, status_code=400)
    element.report(
        report.event, report.src, report.current_time, report.duration, report.buffered_end
    )
    return _player_state()


# --- Embed ---

@app.get("/api/embed")
async def api_embed(
    podcast: int | None = Query(default=None),
    episode: int | None = Query(default=None),
    width: int = Query(default=100),
    width_unit: str = Query(default="%"),
    height: int = Query(default=600),
    height_unit: str = Query(default="px"),
):
    """Embed code for a podcast episode (defaults to what the player shows)."""
    snapshot = _get_context().player.snapshot()
    podcast_id = podcast if podcast is not None else snapshot.podcast_id
    episode_id = episode if episode is not None else (snapshot.episode_id or 0)
    if podcast_id is None:
        return JSONResponse({"error": "No podcast selected."}, status_code=404)
    try:
        code = episode_embed_code(
            settings.base_url,
            podcast_id,
            episode_id,
            format_dimension(width, width_unit),
            format_dimension(height, height_unit),
        )
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse({"embed_code": code})


@app.get("/api/embed/generator")
async def api_embed_generator(
    width: int = Query(default=100),
    width_unit: str = Query(default="%"),
    height: int = Query(default=600),
    height_unit: str = Query(default="px"),
    podcast: int | None = Query(default=None),
    sort: str = Query(default="newest"),
    limit: int | None = Query(default=None),
    podcast_order: str = Query(default="feed"),
    theme: str = Query(default="dark"),
    hide_theme_toggle: bool = Query(default=False),
    header: bool = Query(default=True),
    selector: bool = Query(default=True),
    cover: bool = Query(default=True),
    download: bool = Query(default=True),
):
    """Build a customized player embed from the generator options."""
    try:
        options = EmbedOptions(
            width_value=width,
            width_unit=width_unit,
            height_value=height,
            height_unit=height_unit,
            default_podcast=podcast,
            episode_sort=sort,
            episode_limit=limit,
            podcast_order=podcast_order,
            theme=theme,
            hide_theme_toggle=hide_theme_toggle,
            show_header=header,
            show_podcast_selector=selector,
            show_cover_art=cover,
            show_download_buttons=download,
        )
        code = generator_embed_code(settings.base_url, options)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse({"query": generator_query(options), "embed_code": code})


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    context = _get_context()
    return {
        "status": "ok",
        "catalog_started": context.started,
        "podcasts": len(context.catalog),
        "loaded": sum(1 for p in context.catalog if p.is_loaded),
        "background_loading": bool(
            context.loader.background_task and not context.loader.background_task.done()
        ),
    }
