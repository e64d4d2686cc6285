from __future__ import annotations

import itertools
import logging
import re
from typing import Any, Callable, Dict, Mapping, Optional

from pubsub import pub

from .dispatch import MessageRouter
from .message import SEGMENT_SIZE, SMALL_PAYLOAD_THRESHOLD, chunk_payload, decode_frame, encode_frame
from .metrics import get_metrics_registry
from .reassembly import DropReason

DEFAULT_NAMESPACE = "urn:x-cast:cast.unity.demo"
FrameListener = Callable[[str, bytes], None]

_BUS_IDS = itertools.count(1)
_TOPIC_UNSAFE = re.compile(r"[^0-9A-Za-z]+")
logger = logging.getLogger(__name__)


class MessageBus:
    """In-memory named-namespace bus; delivery is synchronous and in publish order.

    Each instance publishes under its own topic prefix so separate buses never
    see each other's traffic.
    """

    def __init__(self) -> None:
        self._prefix = f"castbus{next(_BUS_IDS)}"
        self._topics: Dict[str, str] = {}

    def topic_for(self, namespace: str) -> str:
        topic = self._topics.get(namespace)
        if topic is None:
            topic = f"{self._prefix}_{_TOPIC_UNSAFE.sub('_', namespace).strip('_')}"
            self._topics[namespace] = topic
        return topic

    def subscribe(self, namespace: str, listener: FrameListener) -> None:
        # pubsub keeps weak references; callers hold on to their listener
        pub.subscribe(listener, self.topic_for(namespace))

    def unsubscribe(self, namespace: str, listener: FrameListener) -> None:
        pub.unsubscribe(listener, self.topic_for(namespace))

    def send(self, namespace: str, sender_id: str, frame: bytes) -> None:
        pub.sendMessage(self.topic_for(namespace), sender_id=sender_id, frame=frame)


class CastSender:
    """Sender side: encodes messages as frames and splits large payloads."""

    def __init__(
        self,
        bus: MessageBus,
        sender_id: str = "sender",
        namespace: str = DEFAULT_NAMESPACE,
        segment_size: int = SEGMENT_SIZE,
        small_threshold: int = SMALL_PAYLOAD_THRESHOLD,
    ) -> None:
        self.bus = bus
        self.sender_id = sender_id
        self.namespace = namespace
        self.segment_size = segment_size
        self.small_threshold = small_threshold
        self._metrics = get_metrics_registry()

    def send_message(self, data: Mapping[str, Any]) -> None:
        self.bus.send(self.namespace, self.sender_id, encode_frame(data))
        self._metrics.inc(
            "transport_frames_total",
            labels={"direction": "outbound"},
            description="Frames sent or received on the bus",
        )

    def send_control(self, description: str, message: str) -> None:
        self.send_message({"description": description, "message": message})

    def send_payload(self, channel: str, payload: str) -> int:
        """Send ``payload`` on ``channel`` as a chunk sequence; returns the frame count."""
        chunks = chunk_payload(
            channel,
            payload,
            segment_size=self.segment_size,
            small_threshold=self.small_threshold,
        )
        for chunk in chunks:
            self.send_message(chunk.to_dict())
        logger.info(
            "[TRANSPORT] Sent %d chars on %s in %d chunks", len(payload), channel, len(chunks)
        )
        return len(chunks)


class CastReceiver:
    """Receiver side: decodes frames from one namespace and hands them to a router."""

    def __init__(
        self,
        bus: MessageBus,
        router: MessageRouter,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self.bus = bus
        self.router = router
        self.namespace = namespace
        self.last_sender: Optional[str] = None
        self._metrics = get_metrics_registry()
        self._subscribed = False
        bus.subscribe(namespace, self._on_frame)
        self._subscribed = True

    def _on_frame(self, sender_id: str, frame: bytes) -> None:
        self._metrics.inc(
            "transport_frames_total",
            labels={"direction": "inbound"},
            description="Frames sent or received on the bus",
        )
        try:
            data = decode_frame(frame)
        except ValueError as exc:
            logger.warning("[TRANSPORT] Dropping undecodable frame from %s: %s", sender_id, exc)
            self._metrics.inc(
                "transport_frames_dropped_total",
                labels={"reason": DropReason.BAD_FRAME.value},
                description="Frames that could not be decoded",
            )
            return
        self.last_sender = sender_id
        self.router.handle(data)

    def close(self) -> None:
        if self._subscribed:
            self.bus.unsubscribe(self.namespace, self._on_frame)
            self._subscribed = False
