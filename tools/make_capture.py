#!/usr/bin/env python3
"""CLI helper to write a JSONL capture of the chunk messages for a file."""

from __future__ import annotations

import argparse
import base64
import json
import os
import sys
from typing import Any, Dict, List


def _ensure_package_imports() -> None:
    if __package__:
        return
    tools_dir = os.path.dirname(os.path.abspath(__file__))
    bridge_root = os.path.abspath(os.path.join(tools_dir, ".."))
    src_path = os.path.join(bridge_root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


def capture_messages(channel: str, payload: str, segment_size: int) -> List[Dict[str, Any]]:
    _ensure_package_imports()
    from cast_chunk_bridge.message import chunk_payload

    return [chunk.to_dict() for chunk in chunk_payload(channel, payload, segment_size=segment_size)]


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Split a file into cast_chunk_bridge sender messages (one JSON object per line)."
    )
    parser.add_argument("path", help="File to encode as a base64 payload")
    parser.add_argument("--channel", default="image")
    parser.add_argument("--segment-size", type=int, default=4000)
    parser.add_argument(
        "--control",
        action="append",
        default=[],
        metavar="DESCRIPTION=MESSAGE",
        help="Control message to emit before the payload (repeatable)",
    )
    parser.add_argument("-o", "--output", help="Output path (stdout if omitted)")
    args = parser.parse_args()

    with open(args.path, "rb") as f:
        payload = base64.b64encode(f.read()).decode("ascii")

    messages: List[Dict[str, Any]] = []
    for entry in args.control:
        description, _, message = entry.partition("=")
        messages.append({"description": description, "message": message})
    messages.extend(capture_messages(args.channel, payload, args.segment_size))

    lines = "".join(json.dumps(message) + "\n" for message in messages)
    if args.output is None:
        sys.stdout.write(lines)
    else:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(lines)


if __name__ == "__main__":
    main()
