"""
User-configurable gesture -> action mapping.

A GestureMapping is total: every GestureLabel maps to exactly one
LogicalAction, NONE always maps to NONE, and anything missing or unparseable
in a persisted mapping falls back to NONE. Loading never raises; a corrupted
stored value yields the default mapping.
"""

import json
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from ...core.types import GestureLabel, LogicalAction

logger = logging.getLogger(__name__)

MAPPING_STORE_KEY = "gesture_mapping"

DEFAULT_GESTURE_MAP: Dict[GestureLabel, LogicalAction] = {
    GestureLabel.THUMB_UP: LogicalAction.NEXT,
    GestureLabel.THUMB_DOWN: LogicalAction.PREV,
    GestureLabel.OPEN_PALM: LogicalAction.PAUSE,
    GestureLabel.VICTORY: LogicalAction.VOL_UP,
    GestureLabel.CLOSED_FIST: LogicalAction.VOL_DOWN,
    GestureLabel.POINTING_UP: LogicalAction.ZOOM_IN,
    GestureLabel.I_LOVE_YOU: LogicalAction.ZOOM_OUT,
    GestureLabel.NONE: LogicalAction.NONE,
}


class GestureMapping:
    """Immutable, total GestureLabel -> LogicalAction function."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Optional[Mapping[GestureLabel, LogicalAction]] = None):
        entries = entries or {}
        full = {}
        for label in GestureLabel:
            action = entries.get(label, LogicalAction.NONE)
            full[label] = action if isinstance(action, LogicalAction) else LogicalAction.NONE
        full[GestureLabel.NONE] = LogicalAction.NONE
        self._entries = MappingProxyType(full)

    @classmethod
    def default(cls) -> 'GestureMapping':
        return cls(DEFAULT_GESTURE_MAP)

    def lookup(self, label: GestureLabel) -> LogicalAction:
        """Action for a label; unknown labels map to NONE."""
        return self._entries.get(label, LogicalAction.NONE)

    __getitem__ = lookup

    def with_entry(self, label: GestureLabel, action: LogicalAction) -> 'GestureMapping':
        """Copy of this mapping with one entry replaced."""
        entries = dict(self._entries)
        entries[label] = action
        return GestureMapping(entries)

    def labels_for(self, action: LogicalAction):
        """All labels currently mapped to an action."""
        return [label for label, a in self._entries.items() if a is action]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, str]:
        return {label.value: action.value for label, action in self._entries.items()}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'GestureMapping':
        """Lenient parse: unknown keys ignored, bad values become NONE."""
        entries = {}
        for key, value in data.items():
            label = GestureLabel.from_string(key)
            if label is GestureLabel.NONE and key not in (GestureLabel.NONE.value, "NONE"):
                logger.debug("Ignoring unknown gesture label in mapping: %r", key)
                continue
            entries[label] = LogicalAction.from_string(value if isinstance(value, str) else None)
        return cls(entries)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> 'GestureMapping':
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Gesture mapping must be a JSON object, got {type(data).__name__}")
        return cls.from_dict(data)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, store, key: str = MAPPING_STORE_KEY,
             default: Optional['GestureMapping'] = None) -> 'GestureMapping':
        """Read a mapping from a KeyValueStore, falling back to the default."""
        fallback = default or cls.default()
        try:
            raw = store.get(key)
        except Exception as e:
            logger.warning("Could not read gesture mapping: %s", e)
            return fallback
        if raw is None:
            return fallback
        try:
            if isinstance(raw, str):
                return cls.from_json(raw)
            if isinstance(raw, dict):
                return cls.from_dict(raw)
            raise ValueError(f"unexpected stored type {type(raw).__name__}")
        except ValueError as e:
            logger.warning("Stored gesture mapping is corrupted (%s), using default", e)
            return fallback

    def save(self, store, key: str = MAPPING_STORE_KEY) -> None:
        store.set(key, self.to_json())

    # ------------------------------------------------------------------

    def items(self):
        return self._entries.items()

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __eq__(self, other):
        if not isinstance(other, GestureMapping):
            return NotImplemented
        return dict(self._entries) == dict(other._entries)

    def __hash__(self):
        return hash(tuple(sorted((k.value, v.value) for k, v in self._entries.items())))

    def __repr__(self):
        pairs = ", ".join(f"{k.value}->{v.value}" for k, v in self._entries.items()
                          if v is not LogicalAction.NONE)
        return f"GestureMapping({pairs})"
