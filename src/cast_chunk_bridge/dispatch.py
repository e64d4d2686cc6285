"""Route incoming Cast messages to control handlers or the chunk reassembler."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .message import has_fragment, parse_message
from .metrics import get_metrics_registry
from .reassembly import ChunkReassembler, DropReason, HostState
from .sink import HostBridge

LOGGER = logging.getLogger(__name__)

ControlHandler = Callable[[str], None]

TASKS_DESCRIPTION = "tasks"


@dataclass(frozen=True)
class ControlRoute:
    game_object: str
    method: str
    resets_channel: Optional[str] = None


# Supported control messages - maps sender descriptions to host methods
DEFAULT_CONTROL_ROUTES: Dict[str, ControlRoute] = {
    # === Image page state ===
    "Profile": ControlRoute("ImageHandler", "SetProfileData", resets_channel="image"),
    "ImageIndex": ControlRoute("ImageHandler", "SetPageIndex", resets_channel="image"),
    # === Sound and task text ===
    "SoundIndex": ControlRoute("ImageHandler", "SetSoundIndex", resets_channel="audio"),
    "SoundURL": ControlRoute("ImageHandler", "SetAudioURL", resets_channel="audio"),
    "TaskSoundIndex": ControlRoute("ImageHandler", "SetTaskSoundIndex", resets_channel="audio"),
    "TaskSoundURL": ControlRoute("ImageHandler", "SetTaskAudioURL", resets_channel="audio"),
    "TaskStringIndex": ControlRoute("ImageHandler", "SetTaskStringIndex", resets_channel="audio"),
    "Task": ControlRoute("ImageHandler", "SetTaskString", resets_channel="audio"),
    # === Game flow ===
    "startTask": ControlRoute("GameManager", "StartTask"),
    "startIntro": ControlRoute("GameManager", "StartIntro"),
    "SetName": ControlRoute("GameManager", "SetName"),
}


class MessageRouter:
    def __init__(
        self,
        reassembler: ChunkReassembler,
        bridge: HostBridge,
        control_routes: Mapping[str, ControlRoute] | None = None,
    ) -> None:
        self.reassembler = reassembler
        self.bridge = bridge
        self.tasks: List[Any] = []
        self.task_started = False
        self.last_message: Optional[Mapping[str, Any]] = None
        self._handlers: Dict[str, ControlHandler] = {}
        self._metrics = get_metrics_registry()
        routes = DEFAULT_CONTROL_ROUTES if control_routes is None else control_routes
        for description, route in routes.items():
            self._handlers[description] = self._route_handler(route)
        self._handlers[TASKS_DESCRIPTION] = self._handle_tasks

    def register_control(self, description: str, handler: ControlHandler) -> None:
        """Add or replace the handler for a control ``description``."""
        self._handlers[description] = handler

    def control_descriptions(self) -> List[str]:
        return sorted(self._handlers)

    def host_ready(self) -> None:
        self.reassembler.set_state(HostState.READY)

    def host_waiting(self) -> None:
        self.reassembler.set_state(HostState.WAITING)

    def handle(self, data: Mapping[str, Any]) -> None:
        """Dispatch one sender message. Never raises for malformed input."""
        self.last_message = data
        description = data.get("description", data.get("channel"))
        handler = self._handlers.get(description) if isinstance(description, str) else None
        if handler is not None:
            self._metrics.inc(
                "router_control_messages_total",
                labels={"description": description},
                description="Control messages dispatched",
            )
            message = data.get("message")
            try:
                handler("" if message is None else str(message))
            except Exception:
                LOGGER.exception("[ROUTER] Control handler for %s failed", description)
                self._metrics.inc(
                    "router_control_errors_total",
                    labels={"description": description},
                    description="Control handlers that raised",
                )
            return

        try:
            chunk = parse_message(data)
        except ValueError as exc:
            LOGGER.warning("[ROUTER] Dropping malformed message: %s", exc)
            self._metrics.inc(
                "reassembly_dropped_total",
                labels={"reason": DropReason.MISSING_CHANNEL.value},
            )
            return
        if not has_fragment(data):
            # still ingested as an empty append
            self._metrics.inc(
                "reassembly_dropped_total",
                labels={"reason": DropReason.MALFORMED_CHUNK.value},
            )
        self.reassembler.ingest(chunk)

    def _route_handler(self, route: ControlRoute) -> ControlHandler:
        def handler(message: str) -> None:
            if self.reassembler.state is HostState.WAITING:
                LOGGER.debug("[ROUTER] Host waiting; skipping %s.%s", route.game_object, route.method)
            else:
                self.bridge.send_message(route.game_object, route.method, message)
            if route.resets_channel:
                self.reassembler.reset(route.resets_channel)

        return handler

    def _handle_tasks(self, message: str) -> None:
        try:
            parsed = json.loads(message)
            tasks = parsed["tasks"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            LOGGER.warning("[ROUTER] Ignoring malformed task list: %s", exc)
            self._metrics.inc(
                "reassembly_dropped_total",
                labels={"reason": DropReason.BAD_TASKS.value},
            )
            return
        if not isinstance(tasks, list):
            LOGGER.warning("[ROUTER] Ignoring task list of type %s", type(tasks).__name__)
            return
        self.tasks = list(tasks)
        self.task_started = True
        LOGGER.info("[ROUTER] Loaded %d tasks", len(self.tasks))
