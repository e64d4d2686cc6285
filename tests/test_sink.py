"""Unit tests for sink registries and the host bridge."""

from typing import List

from cast_chunk_bridge.sink import (
    DEFAULT_CHANNEL_ROUTES,
    ChannelRoute,
    HostCall,
    RecordingHostBridge,
    SinkRegistry,
    build_host_registry,
    host_sink_pair,
)


def test_registry_register_and_lookup() -> None:
    """Test registering, replacing and removing sink pairs."""
    seen: List[str] = []
    registry = SinkRegistry()
    registry.register("image", seen.append, seen.append)

    assert "image" in registry
    assert "audio" not in registry
    assert registry.channels() == ["image"]
    pair = registry.get("image")
    assert pair is not None
    pair.partial("a")
    pair.final("b")
    assert seen == ["a", "b"]

    registry.unregister("image")
    assert registry.get("image") is None
    assert len(registry) == 0


def test_host_sink_pair_routes_to_methods() -> None:
    """Test a route maps partial and final calls to the host methods."""
    bridge = RecordingHostBridge()
    pair = host_sink_pair(bridge, ChannelRoute("Handler", "Part", "Done"))

    pair.partial("chunk")
    pair.final("")

    assert bridge.calls == [HostCall("Handler", "Part", "chunk"), HostCall("Handler", "Done", "")]


def test_default_host_registry_channels() -> None:
    """Test the default registry covers image and audio with their host methods."""
    bridge = RecordingHostBridge()
    registry = build_host_registry(bridge)

    assert registry.channels() == ["audio", "image"]
    registry.get("audio").partial("snd")
    registry.get("image").final("img")

    assert [call.method for call in bridge.calls] == ["HandleSoundDataPart", "HandleImageData"]
    assert DEFAULT_CHANNEL_ROUTES["image"].game_object == "ImageHandler"


def test_recording_bridge_helpers() -> None:
    """Test filtering and concatenating recorded payloads."""
    bridge = RecordingHostBridge()
    bridge.send_message("ImageHandler", "HandleImageDataPart", "ab")
    bridge.send_message("ImageHandler", "HandleSoundDataPart", "zz")
    bridge.send_message("ImageHandler", "HandleImageDataPart", "cd")

    assert len(bridge.calls_to("HandleImageDataPart")) == 2
    assert bridge.payload_for(["HandleImageDataPart"]) == "abcd"

    bridge.clear()
    assert bridge.calls == []
