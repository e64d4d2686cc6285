"""Command-line entrypoint for the Cast chunk bridge."""

from __future__ import annotations

import argparse
import base64
import json
import logging
import os
import sys
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from .config import BridgeConfig
from .dispatch import MessageRouter
from .metrics import get_metrics_registry
from .modes import list_modes
from .reassembly import ChunkReassembler, HostState
from .sink import DEFAULT_CHANNEL_ROUTES, RecordingHostBridge, build_host_registry
from .transport import CastReceiver, CastSender, MessageBus

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cast chunk reassembly bridge")
    parser.add_argument("--mode", choices=["replay", "simulate"], required=True)
    parser.add_argument("--input", help="JSONL capture of sender messages (replay mode)")
    parser.add_argument("--file", help="File to send as a base64 payload (simulate mode)")
    parser.add_argument(
        "--channel",
        default="image",
        choices=sorted(DEFAULT_CHANNEL_ROUTES),
        help="Channel used for the simulated payload",
    )
    parser.add_argument(
        "--profile",
        default=os.getenv("CAST_BRIDGE_PROFILE", "default"),
        help="Mode profile providing thresholds and segment size (%s)" % ", ".join(list_modes()),
    )
    parser.add_argument("--small-threshold", type=int)
    parser.add_argument("--flush-threshold", type=int)
    parser.add_argument("--segment-size", type=int)
    parser.add_argument(
        "--waiting",
        action="store_true",
        help="Start with the host waiting (sink calls suppressed)",
    )
    parser.add_argument("--log-level", default=os.getenv("CAST_BRIDGE_LOG_LEVEL", "INFO"))
    parser.add_argument(
        "--print-metrics",
        action="store_true",
        help="Print Prometheus-format metrics to stderr when done",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BridgeConfig:
    return BridgeConfig.from_profile(
        args.profile,
        small_threshold=args.small_threshold,
        flush_threshold=args.flush_threshold,
        segment_size=args.segment_size,
        start_waiting=args.waiting or None,
        log_level=args.log_level,
    )


def build_router(config: BridgeConfig, bridge: RecordingHostBridge) -> MessageRouter:
    reassembler = ChunkReassembler(
        build_host_registry(bridge),
        small_threshold=config.small_threshold,
        flush_threshold=config.flush_threshold,
        state=HostState.WAITING if config.start_waiting else HostState.READY,
    )
    return MessageRouter(reassembler, bridge)


def summarize(router: MessageRouter, bridge: RecordingHostBridge) -> Dict[str, Any]:
    payloads: Dict[str, int] = {}
    for channel, route in DEFAULT_CHANNEL_ROUTES.items():
        payloads[channel] = len(bridge.payload_for([route.partial_method]))
    return {
        "host_calls": dict(Counter(call.method for call in bridge.calls)),
        "payload_chars": payloads,
        "channels": router.reassembler.stats(),
        "tasks": len(router.tasks),
    }


def read_capture(path: str) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError as exc:
                LOGGER.warning("Skipping line %d of %s: %s", line_no, path, exc)
                continue
            if isinstance(message, dict):
                messages.append(message)
            else:
                LOGGER.warning("Skipping line %d of %s: not a JSON object", line_no, path)
    return messages


def run_replay(config: BridgeConfig, path: str) -> int:
    bridge = RecordingHostBridge()
    router = build_router(config, bridge)
    messages = read_capture(path)
    LOGGER.info("Replaying %d messages from %s", len(messages), path)
    for message in messages:
        router.handle(message)
    print(json.dumps(summarize(router, bridge), indent=2))
    return 0


def run_simulate(config: BridgeConfig, path: str, channel: str) -> int:
    with open(path, "rb") as handle:
        payload = base64.b64encode(handle.read()).decode("ascii")

    bridge = RecordingHostBridge()
    router = build_router(config, bridge)
    bus = MessageBus()
    receiver = CastReceiver(bus, router, namespace=config.namespace)
    sender = CastSender(
        bus,
        namespace=config.namespace,
        segment_size=config.segment_size,
        small_threshold=config.small_threshold,
    )
    try:
        frames = sender.send_payload(channel, payload)
    finally:
        receiver.close()

    route = DEFAULT_CHANNEL_ROUTES[channel]
    received = bridge.payload_for([route.partial_method])
    finals = [call.payload for call in bridge.calls_to(route.final_method)]
    summary = summarize(router, bridge)
    summary["frames"] = frames
    summary["finals"] = len(finals)
    # one completion, carrying the payload only for a single-chunk send
    summary["match"] = received == payload and finals in ([""], [payload])
    print(json.dumps(summary, indent=2))
    if not summary["match"]:
        LOGGER.error(
            "Reassembled payload differs: sent %d chars, received %d in %d completion(s)",
            len(payload),
            len(received),
            len(finals),
        )
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        config = build_config(args)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if args.mode == "replay":
        if not args.input:
            raise SystemExit("replay mode requires --input")
        status = run_replay(config, args.input)
    else:
        if not args.file:
            raise SystemExit("simulate mode requires --file")
        status = run_simulate(config, args.file, args.channel)

    if args.print_metrics:
        sys.stderr.write(get_metrics_registry().render_prometheus())
    return status


if __name__ == "__main__":
    sys.exit(main())
