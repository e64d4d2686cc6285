"""
Named reassembly profiles.

A profile fixes the three numbers that decide how a payload moves through the
bridge: ``small_threshold`` (a START shorter than this is a whole payload),
``flush_threshold`` (buffered characters before a streaming partial flush) and
``segment_size`` (characters per chunk on the sending side). Each profile is a
``<name>.json`` file shipped next to this module.
"""

from __future__ import annotations

import json
from importlib import resources
from typing import Any, List

from typing_extensions import TypedDict

SETTING_KEYS = ("small_threshold", "flush_threshold", "segment_size")


class ModeSettings(TypedDict, total=False):
    small_threshold: int
    flush_threshold: int
    segment_size: int


class ModeProfile(TypedDict, total=False):
    name: str
    description: str
    settings: ModeSettings


def parse_mode_profile(name: str, data: Any) -> ModeProfile:
    """Check a decoded profile and return it typed.

    Every setting present must be a positive integer, and a profile that
    names both thresholds must not flush below its small threshold. Missing
    settings fall back to the ``BridgeConfig`` defaults.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Mode profile {name} is not a JSON object")
    settings = data.get("settings", {})
    if not isinstance(settings, dict):
        raise ValueError(f"Mode profile {name} has non-object settings")
    for key in SETTING_KEYS:
        if key not in settings:
            continue
        value = settings[key]
        # JSON true would otherwise pass as 1
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"Mode profile {name}: {key} must be a positive integer, got {value!r}")
    if settings.get("flush_threshold", 0) and settings.get("small_threshold", 0):
        if settings["flush_threshold"] < settings["small_threshold"]:
            raise ValueError(f"Mode profile {name}: flush_threshold is below small_threshold")
    profile: ModeProfile = {
        "name": str(data.get("name", name)),
        "description": str(data.get("description", "")),
        "settings": {key: settings[key] for key in SETTING_KEYS if key in settings},  # type: ignore[misc]
    }
    return profile


def load_mode_profile(name: str) -> ModeProfile:
    """Read and validate ``<name>.json``; unknown names raise ``ValueError``."""
    entry = resources.files(__package__).joinpath(f"{name}.json")
    if not entry.is_file():
        raise ValueError(f"Unknown mode profile: {name}")
    with entry.open("r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Mode profile {name} is not valid JSON: {exc}") from exc
    return parse_mode_profile(name, data)


def list_modes() -> List[str]:
    return sorted(
        entry.name[: -len(".json")]
        for entry in resources.files(__package__).iterdir()
        if entry.name.endswith(".json")
    )


__all__ = [
    "ModeProfile",
    "ModeSettings",
    "SETTING_KEYS",
    "list_modes",
    "load_mode_profile",
    "parse_mode_profile",
]
