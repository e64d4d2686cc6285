"""Sinks that receive reassembled payload content.

Every channel maps to a pair of callables: ``partial`` receives incremental
content as it is flushed, ``final`` marks the end of a payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Protocol

LOGGER = logging.getLogger(__name__)

SinkCallable = Callable[[str], None]


class SinkPair(NamedTuple):
    partial: SinkCallable
    final: SinkCallable


class SinkRegistry:
    """Dispatch table from channel name to its sink pair."""

    def __init__(self, pairs: Optional[Mapping[str, SinkPair]] = None) -> None:
        self._pairs: Dict[str, SinkPair] = dict(pairs or {})

    def register(self, channel: str, partial: SinkCallable, final: SinkCallable) -> None:
        if channel in self._pairs:
            LOGGER.debug("[SINK] Replacing sink pair for channel %s", channel)
        self._pairs[channel] = SinkPair(partial, final)

    def unregister(self, channel: str) -> None:
        self._pairs.pop(channel, None)

    def get(self, channel: str) -> Optional[SinkPair]:
        return self._pairs.get(channel)

    def channels(self) -> List[str]:
        return sorted(self._pairs)

    def __contains__(self, channel: object) -> bool:
        return channel in self._pairs

    def __len__(self) -> int:
        return len(self._pairs)


class HostBridge(Protocol):
    def send_message(self, game_object: str, method: str, payload: str) -> None: ...


@dataclass(frozen=True)
class ChannelRoute:
    game_object: str
    partial_method: str
    final_method: str


DEFAULT_CHANNEL_ROUTES: Dict[str, ChannelRoute] = {
    "image": ChannelRoute("ImageHandler", "HandleImageDataPart", "HandleImageData"),
    "audio": ChannelRoute("ImageHandler", "HandleSoundDataPart", "HandleSoundData"),
}


def host_sink_pair(bridge: HostBridge, route: ChannelRoute) -> SinkPair:
    """Bind a channel route to the host's ``send_message`` entry point."""

    def partial(content: str) -> None:
        bridge.send_message(route.game_object, route.partial_method, content)

    def final(content: str) -> None:
        bridge.send_message(route.game_object, route.final_method, content)

    return SinkPair(partial, final)


def build_host_registry(
    bridge: HostBridge, routes: Optional[Mapping[str, ChannelRoute]] = None
) -> SinkRegistry:
    routes = DEFAULT_CHANNEL_ROUTES if routes is None else routes
    return SinkRegistry({channel: host_sink_pair(bridge, route) for channel, route in routes.items()})


@dataclass(frozen=True)
class HostCall:
    game_object: str
    method: str
    payload: str


@dataclass
class RecordingHostBridge:
    """In-memory host used for tests and the CLI; records every call in order."""

    calls: List[HostCall] = field(default_factory=list)

    def send_message(self, game_object: str, method: str, payload: str) -> None:
        self.calls.append(HostCall(game_object, method, payload))

    def calls_to(self, method: str) -> List[HostCall]:
        return [call for call in self.calls if call.method == method]

    def payload_for(self, methods: Iterable[str]) -> str:
        """Concatenate the payloads delivered to any of ``methods``."""
        wanted = set(methods)
        return "".join(call.payload for call in self.calls if call.method in wanted)

    def clear(self) -> None:
        self.calls.clear()
