"""Gesture mapping, cooldown, action dispatch and playback."""
from .action_dispatcher import ActionDispatcher
from .debouncer import Debouncer
from .gesture_mapping import GestureMapping, DEFAULT_GESTURE_MAP
from .presentation_player import PresentationPlayer

__all__ = [
    "ActionDispatcher",
    "Debouncer",
    "GestureMapping",
    "DEFAULT_GESTURE_MAP",
    "PresentationPlayer",
]
