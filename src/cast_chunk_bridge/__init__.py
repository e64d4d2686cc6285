from .dispatch import DEFAULT_CONTROL_ROUTES, ControlRoute, MessageRouter
from .message import (
    Chunk,
    SequenceMarker,
    chunk_payload,
    decode_frame,
    encode_frame,
    parse_message,
)
from .reassembly import ChannelAccumulator, ChunkReassembler, DropReason, HostState
from .sink import (
    DEFAULT_CHANNEL_ROUTES,
    ChannelRoute,
    HostBridge,
    RecordingHostBridge,
    SinkPair,
    SinkRegistry,
    build_host_registry,
    host_sink_pair,
)
from .transport import CastReceiver, CastSender, MessageBus

__all__ = [
    "CastReceiver",
    "CastSender",
    "ChannelAccumulator",
    "ChannelRoute",
    "Chunk",
    "ChunkReassembler",
    "ControlRoute",
    "DEFAULT_CHANNEL_ROUTES",
    "DEFAULT_CONTROL_ROUTES",
    "DropReason",
    "HostBridge",
    "HostState",
    "MessageBus",
    "MessageRouter",
    "RecordingHostBridge",
    "SequenceMarker",
    "SinkPair",
    "SinkRegistry",
    "build_host_registry",
    "chunk_payload",
    "decode_frame",
    "encode_frame",
    "host_sink_pair",
    "parse_message",
]
