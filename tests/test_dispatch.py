"""Unit tests for MessageRouter."""

import json
import logging
from typing import List

from cast_chunk_bridge.dispatch import DEFAULT_CONTROL_ROUTES, ControlRoute, MessageRouter
from cast_chunk_bridge.metrics import MetricsRegistry, get_metrics_registry, set_metrics_registry
from cast_chunk_bridge.reassembly import ChunkReassembler, HostState
from cast_chunk_bridge.sink import HostCall, RecordingHostBridge, build_host_registry


def _router() -> MessageRouter:
    bridge = RecordingHostBridge()
    return MessageRouter(ChunkReassembler(build_host_registry(bridge)), bridge)


def test_chunks_reach_host_methods() -> None:
    """Test chunk messages are reassembled and delivered through the image route."""
    router = _router()
    bridge = router.bridge

    router.handle({"description": "image", "num": 0, "message": "x"})

    assert bridge.calls == [
        HostCall("ImageHandler", "HandleImageDataPart", "x"),
        HostCall("ImageHandler", "HandleImageData", "x"),
    ]


def test_control_message_forwards_and_resets_channel() -> None:
    """Test a control description calls its host method and resets its channel."""
    router = _router()
    router.handle({"description": "audio", "num": 0, "message": "a" * 1500})
    router.handle({"description": "image", "num": 0, "message": "i" * 1500})

    router.handle({"description": "SoundURL", "message": "https://example.test/a.mp3"})

    assert router.bridge.calls == [
        HostCall("ImageHandler", "SetAudioURL", "https://example.test/a.mp3")
    ]
    assert router.reassembler.buffered("audio") == ""
    assert router.reassembler.buffered("image") == "i" * 1500


def test_game_manager_routes_do_not_reset() -> None:
    """Test game-flow messages go to GameManager without touching buffers."""
    router = _router()
    router.handle({"description": "image", "num": 0, "message": "i" * 1500})

    router.handle({"description": "SetName", "message": "Ada"})
    router.handle({"description": "startIntro", "message": ""})

    assert [(c.game_object, c.method) for c in router.bridge.calls] == [
        ("GameManager", "SetName"),
        ("GameManager", "StartIntro"),
    ]
    assert router.reassembler.buffered("image") == "i" * 1500


def test_every_default_route_is_dispatched() -> None:
    """Test each default control description reaches its host method."""
    router = _router()
    for description in DEFAULT_CONTROL_ROUTES:
        router.handle({"description": description, "message": description.lower()})

    methods = [call.method for call in router.bridge.calls]
    assert methods == [route.method for route in DEFAULT_CONTROL_ROUTES.values()]


def test_tasks_message_loads_task_list() -> None:
    """Test the tasks description parses its JSON body."""
    router = _router()
    body = json.dumps({"tasks": [{"name": "wash"}, {"name": "dry"}]})

    router.handle({"description": "tasks", "message": body})

    assert router.task_started is True
    assert router.tasks == [{"name": "wash"}, {"name": "dry"}]
    assert router.bridge.calls == []


def test_malformed_tasks_are_ignored(caplog) -> None:
    """Test bad task bodies are logged and leave state untouched."""
    router = _router()
    with caplog.at_level(logging.WARNING):
        router.handle({"description": "tasks", "message": "{not json"})
        router.handle({"description": "tasks", "message": json.dumps({"other": 1})})
        router.handle({"description": "tasks", "message": json.dumps({"tasks": "one"})})

    assert router.task_started is False
    assert router.tasks == []
    assert "malformed task list" in caplog.text


def test_unknown_channel_and_missing_description() -> None:
    """Test unknown channels and messages without a description are dropped quietly."""
    router = _router()

    router.handle({"description": "video", "num": 0, "message": "x"})
    router.handle({"num": 0, "message": "x"})

    assert router.bridge.calls == []
    assert router.last_message == {"num": 0, "message": "x"}


def test_register_custom_control() -> None:
    """Test adding a handler for a new description."""
    router = _router()
    received: List[str] = []
    router.register_control("Score", received.append)

    router.handle({"description": "Score", "message": 42})

    assert received == ["42"]
    assert "Score" in router.control_descriptions()


def test_custom_route_table_replaces_defaults() -> None:
    """Test a router built with its own table ignores the default descriptions."""
    bridge = RecordingHostBridge()
    router = MessageRouter(
        ChunkReassembler(build_host_registry(bridge)),
        bridge,
        control_routes={"Ping": ControlRoute("Echo", "Pong")},
    )

    router.handle({"description": "Ping", "message": "1"})
    router.handle({"description": "SetName", "message": "Ada"})

    assert bridge.calls == [HostCall("Echo", "Pong", "1")]


def test_host_waiting_suppresses_control_calls() -> None:
    """Test control routes still reset buffers but skip the host while it waits."""
    router = _router()
    router.handle({"description": "image", "num": 0, "message": "i" * 1500})
    router.host_waiting()

    router.handle({"description": "ImageIndex", "message": "3"})
    router.handle({"description": "image", "num": 0, "message": "x"})

    assert router.reassembler.state is HostState.WAITING
    assert router.bridge.calls == []
    assert router.reassembler.buffered("image") == ""

    router.host_ready()
    router.handle({"description": "ImageIndex", "message": "4"})
    assert router.bridge.calls == [HostCall("ImageHandler", "SetPageIndex", "4")]


def test_drop_reasons_for_missing_channel_and_fragment() -> None:
    """Test a message without a channel and a chunk without a fragment are counted apart."""
    previous = get_metrics_registry()
    registry = MetricsRegistry()
    set_metrics_registry(registry)
    try:
        router = _router()
        router.handle({"num": 0, "message": "x"})
        router.handle({"description": "image", "num": 0, "message": "i" * 1500})
        router.handle({"description": "image", "num": 2})
        router.handle({"description": "image", "num": -1, "message": "j"})

        dropped = registry.counter("reassembly_dropped_total")
        assert dropped.value({"reason": "missing_channel"}) == 1.0
        assert dropped.value({"reason": "malformed_chunk"}) == 1.0
        assert router.bridge.payload_for(["HandleImageDataPart"]) == "i" * 1500 + "j"
    finally:
        set_metrics_registry(previous)


def test_failing_control_handler_is_contained(caplog) -> None:
    """Test a raising custom handler is logged and counted without stopping dispatch."""
    previous = get_metrics_registry()
    registry = MetricsRegistry()
    set_metrics_registry(registry)
    try:
        router = _router()

        def explode(message: str) -> None:
            raise RuntimeError("scoreboard offline")

        router.register_control("Score", explode)
        with caplog.at_level(logging.ERROR):
            router.handle({"description": "Score", "message": "7"})
        router.handle({"description": "SetName", "message": "Ada"})

        assert "Control handler for Score failed" in caplog.text
        assert "scoreboard offline" in caplog.text
        errors = registry.counter("router_control_errors_total")
        assert errors.value({"description": "Score"}) == 1.0
        assert router.bridge.calls == [HostCall("GameManager", "SetName", "Ada")]
    finally:
        set_metrics_registry(previous)
