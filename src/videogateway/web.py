import asyncio
import html
import json
import logging
from aiohttp import web
from pathlib import Path
from typing import Mapping, Optional

from .errors import GatewayError, InvalidArgumentError
from .health import HealthAggregator
from .mapping_store import MappingStore
from .video_service import VideoService

LOGGER = logging.getLogger(__name__)

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def _safe(value: Optional[str]) -> Optional[str]:
    """HTML-escape a query value before it ends up inside a URL we hand back."""
    if value is None:
        return None
    return html.escape(value)


def _flag(query: Mapping[str, str], name: str, default: bool) -> bool:
    raw = query.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise InvalidArgumentError(f"Query parameter {name} must be true or false, got {raw!r}")


def _json(text: str, status: int = 200) -> web.Response:
    return web.Response(text=text, status=status, content_type="application/json")


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except GatewayError as exc:
        LOGGER.warning("%s %s failed with %d: %s", request.method, request.path, exc.status, exc.message)
        return web.Response(status=exc.status, text=exc.message)


class WebServer:
    def __init__(
        self,
        store: MappingStore,
        videos: VideoService,
        health: HealthAggregator,
        logs_root: Path,
        host: str = "0.0.0.0",
        port: int = 8080,
    ):
        self.store = store
        self.videos = videos
        self.health = health
        self.logs_root = logs_root
        self.host = host
        self.port = port
        self.app = web.Application(middlewares=[error_middleware])
        # Slot mapping CRUD
        self.app.router.add_get('/mappings/v1/', self.handle_get_mappings)
        self.app.router.add_post('/mappings/v1/', self.handle_set_mappings)
        self.app.router.add_put('/mappings/v1/', self.handle_update_mappings)
        self.app.router.add_delete('/mappings/v1/', self.handle_clear_mappings)
        self.app.router.add_get('/mappings/v1/{slot}', self.handle_get_mapping)
        self.app.router.add_put('/mappings/v1/{slot}', self.handle_update_mapping)
        self.app.router.add_delete('/mappings/v1/{slot}', self.handle_remove_mapping)
        # URL generation
        self.app.router.add_get(r'/v1/slot/{slot:\d+}/url', self.handle_video_url)
        self.app.router.add_get(r'/v1/slot/{slot:\d+}/url/snapshot', self.handle_snapshot_url)
        self.app.router.add_get(r'/v1/slot/{slot:\d+}/resolutions', self.handle_resolutions)
        # Health
        self.app.router.add_get('/health', self.handle_health)
        self.app.router.add_get(r'/{slot:\d+}/status', self.handle_screen_status)
        self.app.router.add_get(r'/{slot:\d+}/screenshot', self.handle_screenshot)

    async def handle_get_mappings(self, request):
        loop = asyncio.get_running_loop()
        document = await loop.run_in_executor(None, self.store.load)
        return _json(document.to_json())

    async def handle_set_mappings(self, request):
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            return web.Response(status=400, text="Invalid JSON body")
        if not isinstance(payload, dict) or not isinstance(payload.get("slots", {}), dict):
            return web.Response(status=400, text="Body must be a mapping document with a slots object")
        slots = {str(slot): str(value) for slot, value in (payload.get("slots") or {}).items()}
        loop = asyncio.get_running_loop()
        document = await loop.run_in_executor(None, self.store.set_mapping, slots)
        return _json(document.to_json())

    async def handle_update_mappings(self, request):
        entries = dict(request.query)
        if not entries:
            return web.Response(status=400, text="No mappings provided")
        loop = asyncio.get_running_loop()
        document = await loop.run_in_executor(None, self.store.update_mappings, entries)
        return _json(document.to_json())

    async def handle_clear_mappings(self, request):
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.remove_all_mappings)
        return web.Response(text="OK")

    async def handle_get_mapping(self, request):
        slot = request.match_info['slot']
        loop = asyncio.get_running_loop()
        value = await loop.run_in_executor(None, self.store.get_mapping, slot)
        return web.json_response({slot: value})

    async def handle_update_mapping(self, request):
        slot = request.match_info['slot']
        value = (await request.text()).strip()
        if not value:
            return web.Response(status=400, text="Mapping cannot be null.")
        loop = asyncio.get_running_loop()
        document = await loop.run_in_executor(None, self.store.update_mapping, slot, value)
        return web.json_response({slot: document.slots[slot]})

    async def handle_remove_mapping(self, request):
        slot = request.match_info['slot']
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.remove_mapping, slot)
        return web.Response(text="OK")

    async def handle_video_url(self, request):
        slot = int(request.match_info['slot'])
        query = request.query
        url = self.videos.video_url(
            slot,
            resolution=_safe(query.get('resolution', '')),
            codec=_safe(query.get('videoCodec', '')),
            square_pixel=_safe(query.get('squarePixel', '')),
            fps=_safe(query.get('fps', '15')),
            use_ssl=_flag(query, 'useSSL', True),
            is_local=_flag(query, 'isLocal', False),
            is_rtsp=_flag(query, 'isRtsp', False),
        )
        return web.Response(text=url)

    async def handle_snapshot_url(self, request):
        slot = int(request.match_info['slot'])
        query = request.query
        url = self.videos.snapshot_url(
            slot,
            resolution=_safe(query.get('resolution', '704x480')),
            codec=_safe(query.get('videoCodec', '')),
            square_pixel=_safe(query.get('squarePixel', '')),
            use_ssl=_flag(query, 'useSSL', True),
            is_local=_flag(query, 'isLocal', False),
        )
        return web.Response(text=url)

    async def handle_resolutions(self, request):
        slot = int(request.match_info['slot'])
        return web.json_response(self.videos.supported_resolutions(slot))

    async def handle_health(self, request):
        bean = await self.health.video_health()
        return _json(bean.model_dump_json(by_alias=True))

    async def handle_screen_status(self, request):
        slot = int(request.match_info['slot'])
        report = await self.health.screen_status(slot)
        return _json(report.model_dump_json(by_alias=True))

    async def handle_screenshot(self, request):
        slot = int(request.match_info['slot'])
        data = await self.health.rack.fetch_screenshot(slot)
        return web.Response(body=data, content_type='image/jpeg')

    async def start(self):
        # Setup access logger
        access_logger = logging.getLogger('web_access')
        access_logger.setLevel(logging.INFO)
        access_logger.propagate = False

        self.logs_root.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(self.logs_root / 'web_access.log')
        handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
        access_logger.addHandler(handler)

        runner = web.AppRunner(self.app, access_log=access_logger)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        LOGGER.info("Web server started on http://%s:%d", self.host, self.port)

        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            LOGGER.info("Web server shutting down")
            raise
        finally:
            await runner.cleanup()
            access_logger.removeHandler(handler)
            handler.close()
