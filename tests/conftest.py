"""
Shared fixtures: fake clock, camera, classifier and recording handler.
"""

import asyncio

import numpy as np
import pytest

from gesture_presenter.core.events import EventBus
from gesture_presenter.core.pipeline import DetectionConfig, DetectionLoop
from gesture_presenter.core.types import CameraUnavailable, DetectionResult, GestureLabel
from gesture_presenter.modules.control.action_dispatcher import ActionDispatcher
from gesture_presenter.modules.recognition.backend import ClassifierBackend
from gesture_presenter.modules.recognition.model_manager import ModelManager
from gesture_presenter.modules.storage.kv_store import MemoryStore
from gesture_presenter.modules.utils.config import Config


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def set(self, ms: float):
        self.now = float(ms)

    def advance(self, ms: float):
        self.now += ms


class FakeSampler:
    """Stands in for FrameSampler; always has the same frame."""

    def __init__(self, frame=None, fail: bool = False):
        self.frame = frame if frame is not None else np.zeros((240, 320, 3), dtype=np.uint8)
        self.fail = fail
        self.running = False
        self.start_calls = 0
        self.stop_calls = 0

    def start(self):
        self.start_calls += 1
        if self.fail:
            raise CameraUnavailable("no camera attached")
        self.running = True

    def stop(self):
        self.stop_calls += 1
        self.running = False

    def read(self):
        return self.frame if self.running else None


class ScriptedBackend(ClassifierBackend):
    """Returns whatever result the test set last.

    If ``gate`` is set, classify() waits on it before answering, which lets a
    test hold a call in flight.
    """

    name = "scripted"
    default_interval_ms = 100

    def __init__(self):
        self.result = DetectionResult.empty()
        self.error = None
        self.gate = None
        self.calls = 0

    def set(self, label: GestureLabel, confidence: float, bounding_box=None):
        self.result = DetectionResult(label=label, confidence=confidence,
                                      bounding_box=bounding_box)

    async def classify(self, frame):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class RecordingHandler:
    """on_action callback that remembers every call."""

    def __init__(self):
        self.actions = []

    def __call__(self, action):
        self.actions.append(action)


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sampler():
    return FakeSampler()


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def dispatcher(handler, store, bus):
    return ActionDispatcher(handler=handler, store=store, event_bus=bus)


@pytest.fixture
def make_loop(sampler, backend, dispatcher, bus, clock):
    """Factory for an activated, caller-driven DetectionLoop."""

    def _make(**config):
        config.setdefault("sampling_interval_ms", 100)
        loop = DetectionLoop(
            sampler=sampler,
            backend=backend,
            dispatcher=dispatcher,
            config=DetectionConfig(**config),
            event_bus=bus,
            clock=clock,
        )
        loop.activate(schedule=False)
        return loop

    return _make


@pytest.fixture(autouse=True)
def reset_singletons():
    yield
    Config.reset()
    ModelManager.reset_shared()
