"""
Tests for the Detection Loop
============================
"""

import asyncio

import pytest

from gesture_presenter.core.events import Events
from gesture_presenter.core.pipeline import DetectionConfig, DetectionLoop
from gesture_presenter.core.types import (
    BoundingBox, CameraUnavailable, ClassifierNotReady, DetectionError, DetectionResult,
    DetectionStatus, GestureLabel, LogicalAction, RateLimited, RecoverableDetectionError,
)

from conftest import FakeSampler, run


def process(loop, clock, t):
    """Set the clock and run one tick."""
    clock.set(t)
    return run(loop.tick())


class TestConfidenceThreshold:
    """Only detections at or above the threshold dispatch."""

    def test_exactly_at_threshold_dispatches(self, make_loop, backend, handler, clock):
        loop = make_loop(confidence_threshold=0.6)
        backend.set(GestureLabel.THUMB_UP, 0.6)

        assert process(loop, clock, 0)
        assert handler.actions == [LogicalAction.NEXT]
        assert loop.state.status is DetectionStatus.SUCCESS

    def test_just_below_threshold_is_ignored(self, make_loop, backend, handler, clock):
        loop = make_loop(confidence_threshold=0.6)
        backend.set(GestureLabel.THUMB_UP, 0.59)

        process(loop, clock, 0)

        assert handler.actions == []
        assert loop.state.status is DetectionStatus.WAITING
        assert loop.state.current_action is LogicalAction.NONE

    def test_low_confidence_clears_bounding_box(self, make_loop, backend, clock):
        loop = make_loop()
        box = BoundingBox(0.1, 0.1, 0.4, 0.5)
        backend.set(GestureLabel.THUMB_UP, 0.9, bounding_box=box)
        process(loop, clock, 0)
        assert loop.state.bounding_box == box

        backend.set(GestureLabel.THUMB_UP, 0.2, bounding_box=box)
        process(loop, clock, 200)
        assert loop.state.bounding_box is None

    def test_none_label_never_dispatches(self, make_loop, backend, handler, clock):
        loop = make_loop()
        backend.set(GestureLabel.NONE, 1.0)

        process(loop, clock, 0)

        assert handler.actions == []
        assert loop.state.label == "Ready"


class TestCooldown:
    """Cooldown and re-arm behaviour of held and changing gestures."""

    def test_held_gesture_fires_once_per_window(self, make_loop, backend, handler, clock):
        loop = make_loop(cooldown_ms=1000)
        backend.set(GestureLabel.THUMB_UP, 0.9)

        for t in range(0, 1000, 100):
            process(loop, clock, t)
        assert handler.actions == [LogicalAction.NEXT]

        process(loop, clock, 1050)
        assert handler.actions == [LogicalAction.NEXT, LogicalAction.NEXT]

    def test_changed_action_fires_immediately(self, make_loop, backend, handler, clock):
        loop = make_loop(cooldown_ms=1000)

        backend.set(GestureLabel.THUMB_UP, 0.9)
        process(loop, clock, 0)
        backend.set(GestureLabel.THUMB_DOWN, 0.9)
        process(loop, clock, 200)

        assert handler.actions == [LogicalAction.NEXT, LogicalAction.PREV]
        assert loop.last_fired_action is LogicalAction.PREV
        assert loop.cooldown_until == 1200

    def test_rearm_after_gesture_lost(self, make_loop, backend, clock):
        loop = make_loop(cooldown_ms=1000, rearm_after_ms=500)
        backend.set(GestureLabel.THUMB_UP, 0.9)
        process(loop, clock, 0)

        backend.set(GestureLabel.NONE, 0.0)
        process(loop, clock, 1400)
        assert loop.last_fired_action is LogicalAction.NEXT

        process(loop, clock, 1600)
        assert loop.last_fired_action is LogicalAction.NONE

    def test_action_event_published(self, make_loop, backend, bus, clock):
        events = []
        bus.subscribe(Events.ACTION_DISPATCHED, lambda event: events.append(event))
        loop = make_loop()
        backend.set(GestureLabel.VICTORY, 0.8)

        process(loop, clock, 0)

        assert len(events) == 1
        assert events[0].action is LogicalAction.VOL_UP
        assert events[0].label is GestureLabel.VICTORY
        assert events[0].confidence == pytest.approx(0.8)


class TestSampling:
    """Interval gate and single in-flight call."""

    def test_interval_gate(self, make_loop, backend, clock):
        loop = make_loop(sampling_interval_ms=100)
        backend.set(GestureLabel.NONE, 0.0)

        assert process(loop, clock, 0)
        assert not process(loop, clock, 50)
        assert process(loop, clock, 100)
        assert backend.calls == 2

    def test_backend_default_interval_used(self, sampler, backend, dispatcher, clock):
        loop = DetectionLoop(sampler, backend, dispatcher, DetectionConfig(), clock=clock)
        assert loop.current_interval_ms == backend.default_interval_ms

    def test_no_frame_skips(self, make_loop, sampler, backend, clock):
        loop = make_loop()
        sampler.frame = None

        assert not process(loop, clock, 0)
        assert backend.calls == 0

    def test_at_most_one_call_in_flight(self, make_loop, backend, clock):
        loop = make_loop()
        backend.set(GestureLabel.THUMB_UP, 0.9)

        async def scenario():
            backend.gate = asyncio.Event()
            first = asyncio.ensure_future(loop.tick())
            await asyncio.sleep(0)
            assert loop.is_classifying

            clock.advance(500)
            second = await loop.tick()

            backend.gate.set()
            return await first, second

        first, second = run(scenario())
        assert first is True
        assert second is False
        assert backend.calls == 1

    def test_mapping_read_when_result_arrives(self, make_loop, backend, dispatcher,
                                              handler, clock):
        loop = make_loop()
        backend.set(GestureLabel.THUMB_UP, 0.9)

        async def scenario():
            backend.gate = asyncio.Event()
            pending = asyncio.ensure_future(loop.tick())
            await asyncio.sleep(0)
            dispatcher.remap(GestureLabel.THUMB_UP, LogicalAction.CHANGE_THEME)
            backend.gate.set()
            await pending

        run(scenario())
        assert handler.actions == [LogicalAction.CHANGE_THEME]


class TestBackoff:
    """Quota errors stretch the interval; success restores it."""

    def test_doubles_then_caps_then_resets(self, make_loop, backend, bus, clock):
        intervals = []
        bus.subscribe(Events.INTERVAL_CHANGED, lambda interval_ms: intervals.append(interval_ms))
        loop = make_loop(sampling_interval_ms=4000, max_interval_ms=60000)

        backend.result = DetectionResult.failure(DetectionError.QUOTA_EXCEEDED)
        t = 0
        for expected in (8000, 16000, 32000, 60000, 60000):
            assert process(loop, clock, t)
            assert loop.current_interval_ms == expected
            assert loop.state.status is DetectionStatus.RATE_LIMITED
            t += expected

        backend.set(GestureLabel.NONE, 0.0)
        assert process(loop, clock, t)
        assert loop.current_interval_ms == 4000
        assert intervals == [8000, 16000, 32000, 60000, 4000]

    def test_failed_call_keeps_backoff(self, make_loop, backend, clock):
        loop = make_loop(sampling_interval_ms=4000, max_interval_ms=60000)
        backend.result = DetectionResult.failure(DetectionError.QUOTA_EXCEEDED)
        process(loop, clock, 0)
        process(loop, clock, 8000)
        assert loop.current_interval_ms == 16000

        backend.error = RecoverableDetectionError("503 service unavailable")
        assert process(loop, clock, 24000)
        assert loop.current_interval_ms == 16000
        assert loop.state.status is DetectionStatus.WAITING

        backend.error = None
        backend.set(GestureLabel.NONE, 0.0)
        process(loop, clock, 40000)
        assert loop.current_interval_ms == 4000

    def test_raised_rate_limit_backs_off(self, make_loop, backend, clock):
        loop = make_loop(sampling_interval_ms=4000)
        backend.error = RateLimited("429")

        assert process(loop, clock, 0)

        assert loop.current_interval_ms == 8000
        assert loop.state.status is DetectionStatus.RATE_LIMITED

    def test_backoff_gates_next_attempt(self, make_loop, backend, clock):
        loop = make_loop(sampling_interval_ms=4000)
        backend.result = DetectionResult.failure(DetectionError.QUOTA_EXCEEDED)

        process(loop, clock, 0)
        assert not process(loop, clock, 4000)
        assert process(loop, clock, 8000)

    def test_quota_error_does_not_dispatch_or_touch_cooldown(self, make_loop, backend,
                                                             handler, clock):
        loop = make_loop()
        backend.set(GestureLabel.THUMB_UP, 0.9)
        process(loop, clock, 0)

        backend.result = DetectionResult.failure(DetectionError.QUOTA_EXCEEDED)
        process(loop, clock, 2000)

        assert handler.actions == [LogicalAction.NEXT]
        assert loop.last_fired_action is LogicalAction.NEXT
        assert loop.cooldown_until == 1000


class TestClassifierErrors:
    """LOADING / INIT_FAILED / exceptions never dispatch."""

    def test_loading(self, make_loop, backend, handler, clock):
        loop = make_loop()
        backend.result = DetectionResult.failure(DetectionError.LOADING)

        process(loop, clock, 0)

        assert loop.state.status is DetectionStatus.LOADING
        assert loop.state.label == "Loading model..."
        assert handler.actions == []

    def test_init_failed(self, make_loop, backend, handler, clock):
        loop = make_loop()
        backend.result = DetectionResult.failure(DetectionError.INIT_FAILED)

        process(loop, clock, 0)

        assert loop.state.status is DetectionStatus.ERROR
        assert loop.state.label == "AI failed to load"
        assert handler.actions == []

    def test_raised_not_ready_is_loading(self, make_loop, backend, handler, clock):
        loop = make_loop()
        backend.error = ClassifierNotReady("warming up")

        process(loop, clock, 0)

        assert loop.state.status is DetectionStatus.LOADING
        assert handler.actions == []

    def test_exception_is_a_lost_tick(self, make_loop, backend, handler, clock):
        loop = make_loop()
        backend.error = RecoverableDetectionError("garbled reply")

        assert process(loop, clock, 0)
        assert loop.state.status is DetectionStatus.WAITING
        assert handler.actions == []

        backend.error = None
        backend.set(GestureLabel.THUMB_UP, 0.9)
        process(loop, clock, 200)
        assert handler.actions == [LogicalAction.NEXT]

    def test_handler_exception_does_not_stop_loop(self, make_loop, backend, dispatcher,
                                                  clock):
        def broken(action):
            raise RuntimeError("player crashed")

        dispatcher.set_handler(broken)
        loop = make_loop()
        backend.set(GestureLabel.THUMB_UP, 0.9)

        assert process(loop, clock, 0)
        assert dispatcher.action_count == 1


class TestUnmapped:

    def test_unmapped_label_reported(self, make_loop, backend, dispatcher, handler, bus, clock):
        seen = []
        bus.subscribe(Events.ACTION_UNMAPPED, lambda **kw: seen.append(kw))
        dispatcher.remap(GestureLabel.VICTORY, LogicalAction.NONE)
        loop = make_loop()
        backend.set(GestureLabel.VICTORY, 0.9)

        process(loop, clock, 0)

        assert loop.state.status is DetectionStatus.UNMAPPED
        assert loop.state.label == "Victory (unmapped)"
        assert handler.actions == []
        assert seen[0]["label"] is GestureLabel.VICTORY

    def test_unrecognized_label_reported(self, make_loop, backend, handler, bus, clock):
        seen = []
        bus.subscribe(Events.ACTION_UNMAPPED, lambda **kw: seen.append(kw))
        loop = make_loop(confidence_threshold=0.6)
        backend.result = DetectionResult(raw_label="Call_Me", confidence=0.95)

        process(loop, clock, 0)

        assert loop.state.status is DetectionStatus.UNMAPPED
        assert loop.state.label == "Call_Me (unmapped)"
        assert handler.actions == []
        assert seen[0]["raw_label"] == "Call_Me"

    def test_unrecognized_below_threshold_is_waiting(self, make_loop, backend, clock):
        loop = make_loop(confidence_threshold=0.6)
        backend.result = DetectionResult(raw_label="Call_Me", confidence=0.3)

        process(loop, clock, 0)

        assert loop.state.status is DetectionStatus.WAITING
        assert loop.state.label == "Ready"


class TestPause:

    def test_open_palm_pauses_and_blocks(self, make_loop, backend, dispatcher, handler, clock):
        loop = make_loop()
        backend.set(GestureLabel.OPEN_PALM, 0.9)
        process(loop, clock, 0)
        assert dispatcher.paused
        assert handler.actions == []

        backend.set(GestureLabel.THUMB_UP, 0.9)
        process(loop, clock, 200)
        assert handler.actions == []

        dispatcher.cancel()
        backend.set(GestureLabel.THUMB_DOWN, 0.9)
        process(loop, clock, 400)
        assert handler.actions == [LogicalAction.PREV]


class TestLifecycle:

    def test_teardown_drops_late_result(self, make_loop, backend, handler, clock):
        loop = make_loop()
        backend.set(GestureLabel.THUMB_UP, 0.95)

        async def scenario():
            backend.gate = asyncio.Event()
            pending = asyncio.ensure_future(loop.tick())
            await asyncio.sleep(0)
            await loop.deactivate()
            state_after_teardown = loop.state
            backend.gate.set()
            processed = await pending
            return processed, state_after_teardown

        processed, state_after_teardown = run(scenario())
        assert processed is False
        assert loop.state is state_after_teardown
        assert loop.state.status is DetectionStatus.LOADING
        assert handler.actions == []

    def test_deactivate_resets(self, make_loop, sampler, backend, clock):
        loop = make_loop()
        backend.set(GestureLabel.THUMB_UP, 0.9)
        process(loop, clock, 0)

        run(loop.deactivate())

        assert not loop.is_active
        assert not sampler.running
        assert loop.last_fired_action is LogicalAction.NONE
        assert loop.state.status is DetectionStatus.LOADING
        assert not run(loop.tick())

    def test_camera_unavailable(self, backend, dispatcher, bus, clock):
        errors = []
        bus.subscribe(Events.CAMERA_ERROR, lambda message: errors.append(message))
        loop = DetectionLoop(FakeSampler(fail=True), backend, dispatcher,
                             DetectionConfig(), event_bus=bus, clock=clock)

        with pytest.raises(CameraUnavailable):
            loop.activate(schedule=False)

        assert not loop.is_active
        assert loop.camera_error == "no camera attached"
        assert errors == ["no camera attached"]

    def test_state_published_per_result(self, make_loop, backend, bus, clock):
        loop = make_loop()
        states = []
        bus.subscribe(Events.STATE_CHANGED, lambda state: states.append(state))
        backend.set(GestureLabel.THUMB_UP, 0.9)

        process(loop, clock, 0)
        process(loop, clock, 100)

        assert len(states) == 2
        assert all(s.current_action is LogicalAction.NEXT for s in states)

    def test_scheduled_ticks(self, sampler, backend, dispatcher, handler):
        loop = DetectionLoop(sampler, backend, dispatcher,
                             DetectionConfig(sampling_interval_ms=10, cooldown_ms=10000))
        backend.set(GestureLabel.THUMB_UP, 0.9)

        async def scenario():
            loop.activate()
            await asyncio.sleep(0.1)
            await loop.deactivate()

        run(scenario())
        assert backend.calls >= 2
        assert handler.actions == [LogicalAction.NEXT]
