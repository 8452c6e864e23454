"""
Gesture Presenter
=================

A slide player controlled by hand gestures seen through a webcam.

Modules:
    - core: detection loop, scheduler, event bus, shared types
    - capture: camera frame sampling
    - recognition: gesture classifier backends (MediaPipe, Gemini)
    - control: gesture mapping, cooldown, action dispatch, player
    - presentation: .pptx and image deck import
    - storage: persisted settings
    - visualization: camera overlay and slide rendering
    - utils: configuration, logging, performance monitoring
"""

__version__ = "1.0.0"
