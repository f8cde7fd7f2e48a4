"""Command-line entrypoints."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .classifier import FrameClassifier, decode_frame
from .config import RuntimeConfig, load_runtime_config
from .device_registry import DeviceRegistry
from .errors import GatewayError
from .health import HealthAggregator
from .mapping_store import MappingStore
from .rack_client import RackClient
from .video_service import VideoService
from .web import WebServer

logging.basicConfig(level=logging.INFO,
                    format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
LOGGER = logging.getLogger(__name__)


def _load_secrets(config_path: str) -> None:
    """Load environment overrides from gateway.env in the same directory as config."""
    env_path = Path(config_path).parent / "gateway.env"
    if env_path.exists():
        LOGGER.info("Loading environment from %s", env_path)
        load_dotenv(env_path)
    else:
        LOGGER.debug("No gateway.env found at %s", env_path)


@dataclass
class Gateway:
    runtime: RuntimeConfig
    store: MappingStore
    registry: DeviceRegistry
    videos: VideoService
    health: HealthAggregator


def build_gateway(runtime: RuntimeConfig) -> Gateway:
    store = MappingStore(Path(runtime.mapping.file))
    registry = DeviceRegistry.from_document(store.load(), probe_timeout=runtime.health.probe_timeout)
    if runtime.registry.rebuild_on_mapping_change:
        LOGGER.info("Video device registry follows mapping changes")
        store.add_listener(registry.rebuild)
    rack = RackClient(
        rack_url=runtime.rack.url,
        capability_url=runtime.rack.capability_url,
        request_timeout=runtime.rack.request_timeout,
        screenshot_timeout=runtime.rack.screenshot_timeout,
    )
    health = HealthAggregator(
        store=store,
        registry=registry,
        rack=rack,
        classifier=FrameClassifier(settle_seconds=runtime.health.settle_seconds),
        max_concurrent_probes=runtime.health.max_concurrent_probes,
        lease_groups=runtime.health.lease_groups,
        build_version=runtime.general.build_version(),
    )
    return Gateway(
        runtime=runtime,
        store=store,
        registry=registry,
        videos=VideoService(store, registry),
        health=health,
    )


def _gateway(args: argparse.Namespace) -> Gateway:
    _load_secrets(args.config)
    return build_gateway(load_runtime_config(args.config))


def cmd_serve(args: argparse.Namespace) -> None:
    gateway = _gateway(args)
    server = WebServer(
        store=gateway.store,
        videos=gateway.videos,
        health=gateway.health,
        logs_root=Path(gateway.runtime.general.logs_root),
        host=gateway.runtime.server.host,
        port=args.port or gateway.runtime.server.port,
    )
    LOGGER.info("Serving %d video devices", len(gateway.registry.list_ids()))
    asyncio.run(server.start())


def cmd_mappings(args: argparse.Namespace) -> None:
    store = _gateway(args).store
    if args.action == "show":
        print(store.load().to_json())
    elif args.action == "get":
        print(store.get_mapping(args.slot))
    elif args.action == "set":
        store.update_mapping(args.slot, args.value)
        LOGGER.info("Slot %s mapped to %s", args.slot, args.value)
    elif args.action == "remove":
        store.remove_mapping(args.slot)
    elif args.action == "clear":
        store.remove_all_mappings()


def cmd_url(args: argparse.Namespace) -> None:
    videos = _gateway(args).videos
    if args.snapshot:
        url = videos.snapshot_url(
            args.slot,
            resolution=args.resolution or "704x480",
            codec=args.codec,
            square_pixel=args.square_pixel,
            use_ssl=args.ssl,
            is_local=args.local,
        )
    else:
        url = videos.video_url(
            args.slot,
            resolution=args.resolution,
            codec=args.codec,
            square_pixel=args.square_pixel,
            fps=args.fps,
            use_ssl=args.ssl,
            is_local=args.local,
            is_rtsp=args.rtsp,
        )
    print(url)


def cmd_classify(args: argparse.Namespace) -> None:
    first = Path(args.file).read_bytes()
    second = Path(args.second or args.file).read_bytes()

    async def fetch_second():
        return decode_frame(second)

    classifier = FrameClassifier(settle_seconds=args.settle)
    verdict = asyncio.run(classifier.classify_bytes(first, fetch_second))
    print(verdict.value)


def cmd_health(args: argparse.Namespace) -> None:
    health = _gateway(args).health
    bean = asyncio.run(health.video_health())
    print(bean.model_dump_json(by_alias=True, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rack video gateway")
    parser.add_argument("--config", default="config/gateway.yml", help="Config file path")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_cmd = sub.add_parser("serve", help="Run the HTTP gateway")
    serve_cmd.add_argument("--port", type=int, help="Override the configured port")
    serve_cmd.set_defaults(func=cmd_serve)

    mappings_cmd = sub.add_parser("mappings", help="Inspect or edit slot mappings")
    actions = mappings_cmd.add_subparsers(dest="action", required=True)
    actions.add_parser("show", help="Print the mapping document")
    get_cmd = actions.add_parser("get", help="Print one slot mapping")
    get_cmd.add_argument("slot")
    set_cmd = actions.add_parser("set", help="Map a slot to device:outlet (or N/A)")
    set_cmd.add_argument("slot")
    set_cmd.add_argument("value")
    remove_cmd = actions.add_parser("remove", help="Clear a slot mapping")
    remove_cmd.add_argument("slot")
    actions.add_parser("clear", help="Remove every slot mapping")
    mappings_cmd.set_defaults(func=cmd_mappings)

    url_cmd = sub.add_parser("url", help="Print the video or snapshot url for a slot")
    url_cmd.add_argument("slot", type=int)
    url_cmd.add_argument("--snapshot", action="store_true", help="Snapshot url instead of a stream")
    url_cmd.add_argument("--resolution")
    url_cmd.add_argument("--codec")
    url_cmd.add_argument("--square-pixel")
    url_cmd.add_argument("--fps", default="15")
    url_cmd.add_argument("--ssl", action=argparse.BooleanOptionalAction, default=True)
    url_cmd.add_argument("--local", action="store_true", help="Use the device's internal address")
    url_cmd.add_argument("--rtsp", action="store_true", help="RTSP stream url")
    url_cmd.set_defaults(func=cmd_url)

    classify_cmd = sub.add_parser("classify", help="Classify a screenshot file")
    classify_cmd.add_argument("file")
    classify_cmd.add_argument("second", nargs="?", help="Second sample for the frozen-frame check")
    classify_cmd.add_argument("--settle", type=float, default=0.0, help="Delay before the second sample")
    classify_cmd.set_defaults(func=cmd_classify)

    health_cmd = sub.add_parser("health", help="Print the consolidated video health report")
    health_cmd.set_defaults(func=cmd_health)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    try:
        args.func(args)
    except GatewayError as exc:
        LOGGER.error("%s", exc.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
