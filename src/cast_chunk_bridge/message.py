"""Chunk messages and binary frames for the Cast custom-message channel.

A sender splits a large base64 payload into labeled chunks. Each chunk carries
the channel it belongs to, an integer sequence marker (0 = start, -1 = end,
anything else = continuation) and a string fragment.

Frames:
- Fixed 3 byte header (magic + version)
- MessagePack body with short keys + Zstandard compression
"""

from __future__ import annotations

import enum
import logging
import math
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import msgpack  # type: ignore[import-untyped]
import zstandard as zstd

MAGIC = b"CB"
VERSION = 1
HEADER_STRUCT = struct.Struct("!2sB")
HEADER_SIZE = HEADER_STRUCT.size

# Fragments well under the Cast custom message limit (64 KiB) keep the sender responsive.
SEGMENT_SIZE = 4000
SMALL_PAYLOAD_THRESHOLD = 1000
_COMPRESSOR = zstd.ZstdCompressor(level=4)
_DECOMPRESSOR = zstd.ZstdDecompressor()

# Keys used by the Cast sender app, mapped to the descriptive names.
MESSAGE_KEY_ALIASES: Dict[str, str] = {
    "description": "channel",
    "num": "sequenceMarker",
    "message": "payloadFragment",
}
FRAME_ALIAS_MAP: Dict[str, str] = {
    "description": "d",
    "num": "n",
    "message": "m",
}
REVERSE_FRAME_MAP: Dict[str, str] = {v: k for k, v in FRAME_ALIAS_MAP.items()}

LOGGER = logging.getLogger(__name__)


class SequenceMarker(enum.IntEnum):
    START = 0
    MIDDLE = 1
    END = -1

    @classmethod
    def classify(cls, raw: Any) -> "SequenceMarker":
        """Map a raw marker value to START, END or MIDDLE.

        Values that cannot be read as an integer (including a missing marker)
        count as continuation chunks.
        """
        value = _coerce_marker(raw)
        if value is None:
            return cls.MIDDLE
        if value == cls.START:
            return cls.START
        if value == cls.END:
            return cls.END
        return cls.MIDDLE


@dataclass(frozen=True)
class Chunk:
    channel: str
    marker: int
    fragment: str = ""

    @property
    def marker_kind(self) -> SequenceMarker:
        return SequenceMarker.classify(self.marker)

    def to_dict(self) -> Dict[str, Any]:
        return {"description": self.channel, "num": int(self.marker), "message": self.fragment}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Chunk":
        return parse_message(payload)


def _lookup(data: Mapping[str, Any], short: str) -> Any:
    if short in data:
        return data[short]
    return data.get(MESSAGE_KEY_ALIASES[short])


def parse_message(data: Mapping[str, Any]) -> Chunk:
    """Build a :class:`Chunk` from a sender message.

    Accepts both the sender's keys (``description``/``num``/``message``) and
    the long names (``channel``/``sequenceMarker``/``payloadFragment``). A
    missing fragment is read as the empty string.
    """
    channel = _lookup(data, "description")
    if channel is None or channel == "":
        raise ValueError("Chunk message has no channel")

    raw_marker = _coerce_marker(_lookup(data, "num"))
    marker = int(SequenceMarker.MIDDLE) if raw_marker is None else raw_marker

    fragment = _lookup(data, "message")
    if fragment is None:
        LOGGER.debug("[MESSAGE] Chunk for %s has no fragment; treating as empty", channel)
        fragment = ""
    elif not isinstance(fragment, str):
        fragment = str(fragment)
    return Chunk(channel=str(channel), marker=marker, fragment=fragment)


def _coerce_marker(raw: Any) -> Optional[int]:
    if isinstance(raw, bool) or raw is None:
        return None
    # 0.5 is a continuation, not a START
    if isinstance(raw, float) and not raw.is_integer():
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def chunk_payload(
    channel: str,
    payload: str,
    segment_size: int = SEGMENT_SIZE,
    small_threshold: int = SMALL_PAYLOAD_THRESHOLD,
) -> List[Chunk]:
    """Split a payload into a START, MIDDLE..., END chunk sequence.

    A payload below ``small_threshold`` goes out as a lone START chunk; the
    receiver completes those without waiting for END. Otherwise the START
    fragment is at least ``small_threshold`` long so the receiver keeps it
    buffered until the rest arrives.
    """
    if segment_size <= 0:
        raise ValueError("segment_size must be positive")
    if len(payload) < small_threshold:
        return [Chunk(channel, int(SequenceMarker.START), payload)]

    first = max(segment_size, small_threshold)
    chunks: List[Chunk] = [Chunk(channel, int(SequenceMarker.START), payload[:first])]
    rest = payload[first:]
    for index in range(math.ceil(len(rest) / segment_size)):
        segment = rest[index * segment_size : (index + 1) * segment_size]
        chunks.append(Chunk(channel, index + 1, segment))
    chunks.append(Chunk(channel, int(SequenceMarker.END), ""))
    return chunks


def has_fragment(data: Mapping[str, Any]) -> bool:
    return _lookup(data, "message") is not None


def encode_frame(message: Mapping[str, Any] | Chunk) -> bytes:
    """Encode a sender message (or chunk) as a compressed binary frame."""
    raw = message.to_dict() if isinstance(message, Chunk) else dict(message)
    aliased = {FRAME_ALIAS_MAP.get(k, k): v for k, v in raw.items()}
    body = _COMPRESSOR.compress(msgpack.packb(aliased, use_bin_type=True))
    return HEADER_STRUCT.pack(MAGIC, VERSION) + body


def decode_frame(frame: bytes) -> Dict[str, Any]:
    """Decode a binary frame back to the sender's message dict."""
    if len(frame) < HEADER_SIZE:
        raise ValueError("Frame too small to parse header")
    magic, version = HEADER_STRUCT.unpack(frame[:HEADER_SIZE])
    if magic != MAGIC or version != VERSION:
        raise ValueError("Unsupported frame header")
    try:
        unpacked = msgpack.unpackb(_DECOMPRESSOR.decompress(frame[HEADER_SIZE:]), raw=False)
    except (zstd.ZstdError, msgpack.exceptions.UnpackException, ValueError) as exc:
        raise ValueError(f"Undecodable frame body: {exc}") from exc
    if not isinstance(unpacked, dict):
        raise ValueError("Frame body is not a message object")
    return {REVERSE_FRAME_MAP.get(k, k): v for k, v in unpacked.items()}
