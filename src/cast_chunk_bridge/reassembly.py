"""Per-channel reassembly of chunked Cast payloads."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .message import SMALL_PAYLOAD_THRESHOLD, Chunk, SequenceMarker
from .metrics import get_metrics_registry
from .sink import SinkCallable, SinkRegistry

LOGGER = logging.getLogger(__name__)

FLUSH_THRESHOLD = 5000


class HostState(str, enum.Enum):
    READY = "ready"
    WAITING = "waiting"


class DropReason(str, enum.Enum):
    UNKNOWN_CHANNEL = "unknown_channel"
    MALFORMED_CHUNK = "malformed_chunk"
    MISSING_CHANNEL = "missing_channel"
    HOST_WAITING = "host_waiting"
    BAD_FRAME = "bad_frame"
    BAD_TASKS = "bad_tasks"


@dataclass
class ChannelAccumulator:
    """Buffered content for one channel since its last flush."""

    buffer: str = ""
    total_emitted: int = 0
    flushes: int = 0
    payloads_completed: int = 0


class ChunkReassembler:
    def __init__(
        self,
        sinks: SinkRegistry,
        small_threshold: int = SMALL_PAYLOAD_THRESHOLD,
        flush_threshold: int = FLUSH_THRESHOLD,
        state: HostState = HostState.READY,
    ) -> None:
        """Configure thresholds and the channel sinks.

        Parameters
        ----------
        sinks:
            Registry mapping each accepted channel to its ``partial``/``final``
            sink pair. Chunks for any other channel are dropped.
        small_threshold:
            A START chunk shorter than this is treated as a complete payload
            and delivered through both sink calls immediately.
        flush_threshold:
            Once a channel buffer grows past this many characters it is
            flushed through the ``partial`` sink, bounding memory for large
            payloads.
        state:
            Initial host readiness. While ``WAITING``, flush points still
            clear the buffer but no sink calls are made.
        """
        if small_threshold < 0 or flush_threshold <= 0:
            raise ValueError("thresholds must be positive")
        self._sinks = sinks
        self._small_threshold = small_threshold
        self._flush_threshold = flush_threshold
        self._state = state
        self._accumulators: Dict[str, ChannelAccumulator] = {}
        self._metrics = get_metrics_registry()

    @property
    def state(self) -> HostState:
        return self._state

    def set_state(self, state: HostState) -> None:
        if state is not self._state:
            LOGGER.info("[REASSEMBLY] Host state %s -> %s", self._state.value, state.value)
        self._state = state

    @property
    def small_threshold(self) -> int:
        return self._small_threshold

    @property
    def flush_threshold(self) -> int:
        return self._flush_threshold

    def ingest(self, chunk: Chunk) -> None:
        """Apply one chunk to its channel buffer and flush as the marker dictates.

        Never raises for protocol problems: unknown channels are logged and
        dropped, a repeated START silently restarts the channel.
        """
        pair = self._sinks.get(chunk.channel)
        if pair is None:
            LOGGER.warning("[REASSEMBLY] Dropping chunk for unknown channel %r", chunk.channel)
            self._count_drop(DropReason.UNKNOWN_CHANNEL)
            return

        kind = chunk.marker_kind
        self._metrics.inc(
            "reassembly_chunks_total",
            labels={"channel": chunk.channel, "marker": kind.name.lower()},
            description="Chunks ingested per channel and marker",
        )
        acc = self._accumulators.setdefault(chunk.channel, ChannelAccumulator())

        if kind is SequenceMarker.START:
            if acc.buffer:
                LOGGER.debug(
                    "[REASSEMBLY] START on %s discards %d unflushed chars",
                    chunk.channel,
                    len(acc.buffer),
                )
            acc.buffer = chunk.fragment
            if len(acc.buffer) < self._small_threshold:
                content = acc.buffer
                self._flush(chunk.channel, acc, pair.partial, "single")
                self._finish(chunk.channel, acc, pair.final, content)
        elif kind is SequenceMarker.END:
            acc.buffer += chunk.fragment
            if acc.buffer:
                self._flush(chunk.channel, acc, pair.partial, "end")
            self._finish(chunk.channel, acc, pair.final, "")
            LOGGER.info(
                "[REASSEMBLY] Complete: %s (%d chars emitted in total)",
                chunk.channel,
                acc.total_emitted,
            )
        else:
            acc.buffer += chunk.fragment
            if len(acc.buffer) > self._flush_threshold:
                self._flush(chunk.channel, acc, pair.partial, "stream")

        self._metrics.set_gauge(
            "reassembly_buffer_chars",
            len(acc.buffer),
            labels={"channel": chunk.channel},
            description="Characters buffered but not yet flushed",
        )

    def _flush(
        self, channel: str, acc: ChannelAccumulator, sink: SinkCallable, kind: str
    ) -> None:
        content = acc.buffer
        acc.buffer = ""
        acc.flushes += 1
        if self._state is HostState.WAITING:
            LOGGER.debug("[REASSEMBLY] Host waiting; dropping %d chars on %s", len(content), channel)
            self._count_drop(DropReason.HOST_WAITING, amount=len(content))
            return
        acc.total_emitted += len(content)
        self._metrics.inc(
            "reassembly_flushes_total",
            labels={"channel": channel, "kind": kind},
            description="Partial sink flushes per channel",
        )
        self._metrics.inc(
            "reassembly_emitted_chars_total",
            amount=len(content),
            labels={"channel": channel},
            description="Characters delivered through partial sinks",
        )
        LOGGER.debug(
            "[REASSEMBLY] Flush %s (%s): %d chars, %d total",
            channel,
            kind,
            len(content),
            acc.total_emitted,
        )
        self._call_sink(channel, sink, content)

    def _finish(
        self, channel: str, acc: ChannelAccumulator, sink: SinkCallable, content: str
    ) -> None:
        acc.payloads_completed += 1
        if self._state is HostState.WAITING:
            return
        self._call_sink(channel, sink, content)

    def _call_sink(self, channel: str, sink: SinkCallable, content: str) -> None:
        try:
            sink(content)
        except Exception:
            LOGGER.exception("[REASSEMBLY] Sink for %s failed", channel)
            self._metrics.inc(
                "reassembly_sink_errors_total",
                labels={"channel": channel},
                description="Sink calls that raised",
            )

    def _count_drop(self, reason: DropReason, amount: float = 1.0) -> None:
        self._metrics.inc(
            "reassembly_dropped_total",
            amount=amount,
            labels={"reason": reason.value},
            description="Chunks or characters dropped, by reason",
        )

    def reset(self, channel: str) -> None:
        """Discard any unflushed content for ``channel``."""
        acc = self._accumulators.get(channel)
        if acc is not None and acc.buffer:
            LOGGER.debug("[REASSEMBLY] Reset %s (%d chars discarded)", channel, len(acc.buffer))
            acc.buffer = ""

    def buffered(self, channel: str) -> str:
        acc = self._accumulators.get(channel)
        return acc.buffer if acc else ""

    def accumulator(self, channel: str) -> Optional[ChannelAccumulator]:
        return self._accumulators.get(channel)

    def channels(self) -> List[str]:
        return sorted(self._accumulators)

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {
            channel: {
                "buffered": len(acc.buffer),
                "total_emitted": acc.total_emitted,
                "flushes": acc.flushes,
                "payloads_completed": acc.payloads_completed,
            }
            for channel, acc in self._accumulators.items()
        }
