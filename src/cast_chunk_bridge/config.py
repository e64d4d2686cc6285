from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from .message import SEGMENT_SIZE, SMALL_PAYLOAD_THRESHOLD
from .modes import load_mode_profile
from .reassembly import FLUSH_THRESHOLD
from .transport import DEFAULT_NAMESPACE


@dataclass
class BridgeConfig:
    namespace: str = DEFAULT_NAMESPACE
    small_threshold: int = SMALL_PAYLOAD_THRESHOLD
    flush_threshold: int = FLUSH_THRESHOLD
    segment_size: int = SEGMENT_SIZE
    start_waiting: bool = False
    log_level: str = "INFO"
    profile: str | None = None

    def __post_init__(self) -> None:
        if self.small_threshold <= 0 or self.flush_threshold <= 0:
            raise ValueError("small_threshold and flush_threshold must be positive")
        if self.flush_threshold < self.small_threshold:
            raise ValueError("flush_threshold must not be smaller than small_threshold")
        if self.segment_size <= 0:
            raise ValueError("segment_size must be positive")

    @classmethod
    def from_profile(cls, name: str, **overrides: Any) -> "BridgeConfig":
        """Build a config from a named mode profile; ``None`` overrides are ignored."""
        profile = load_mode_profile(name)
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {k: v for k, v in profile.get("settings", {}).items() if k in known}
        values.update({k: v for k, v in overrides.items() if v is not None})
        values["profile"] = name
        return cls(**values)
