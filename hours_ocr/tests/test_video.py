"""
Integration tests for the frame pipeline and the HoursRecognizer.

Covers:
- End-to-end recognition of synthetic signs
- Stability voting across frames and session restart
- Listener delivery through dispatch_pending
- Worker thread: stale frames, dropping while busy, shutdown

Usage:
    pytest hours_ocr/tests/test_video.py -v
    pytest hours_ocr/tests/test_video.py -m "not threaded"
"""

import threading

import pytest

from hours_ocr.core.utils import (
    BoundingBox,
    LIVE_TRANSFORM,
    Language,
    Observation,
    RecognizerState,
)
from hours_ocr.core.video import HoursRecognizer, RecognizerClosedError, recognize_frame

from conftest import run_texts

SIGN = ["Mo-Fr 9-18", "Sa 10-14"]
SCHEDULE = "Mo-Fr 09:00-18:00 Sa 10:00-14:00"

# Seconds to wait on worker events before failing
TIMEOUT = 5.0


def _blocking_observation(text, started, release):
    """Observation whose geometry lookup blocks until ``release`` is set."""
    base = Observation.from_box(text, BoundingBox(0.0, 0.0, 10.0 * len(text), 10.0), 0.9)

    def rect_of(start, end):
        started.set()
        release.wait(TIMEOUT)
        return base.rect_of(start, end)

    return Observation(text, 0.9, rect_of)


# =============================================================================
# Frame Pipeline
# =============================================================================

class TestRecognizeFrame:
    """Single-frame recognition."""

    def test_two_line_sign(self, make_sign):
        result = recognize_frame(make_sign(SIGN))
        assert result.schedule == SCHEDULE
        assert result.line_texts == ["Mo-Fr 9-18", "Sa 10-14"]
        assert run_texts(result.runs) == [
            ["Mo", "-", "Fr"], ["09:00", "18:00"], ["Sa"], ["10:00", "14:00"]
        ]

    def test_boxes_follow_surviving_tokens(self, make_sign):
        result = recognize_frame(make_sign(SIGN))
        assert len(result.boxes) == 8
        assert result.boxes[0] == BoundingBox(0.0, 0.0, 20.0, 10.0)
        assert result.source_boxes == result.boxes

    def test_live_transform_source_boxes(self, make_observation):
        # bottom-left origin: the first row has the larger y
        observations = [
            make_observation("Mo-Fr 9-18", x=0.0, y=0.8, confidence=0.9, height=0.1),
            make_observation("Sa 10-14", x=0.0, y=0.6, confidence=0.9, height=0.1),
        ]
        result = recognize_frame(observations, LIVE_TRANSFORM)
        assert result.schedule == SCHEDULE

        source = result.source_boxes[0]
        assert source.x == pytest.approx(0.0)
        assert source.y == pytest.approx(0.8)
        assert source.width == pytest.approx(20.0)
        assert source.height == pytest.approx(0.1)

    def test_german_sign(self, make_sign):
        result = recognize_frame(make_sign(["Montag bis Freitag 8.30 - 18 Uhr"]), language=Language.DE)
        assert result.schedule == "Mo-Fr 08:30-18:00"

    def test_no_text(self):
        result = recognize_frame([])
        assert result.schedule == ""
        assert result.boxes == []

    def test_noise_only(self, make_sign):
        assert recognize_frame(make_sign(["OPEN", "Welcome!"])).schedule == ""


# =============================================================================
# Recognizer (synchronous)
# =============================================================================

class TestHoursRecognizer:
    """Voting, restart and listener delivery on the calling thread."""

    def test_finishes_after_threshold_frames(self, make_sign):
        recognizer = HoursRecognizer()
        for _ in range(4):
            recognizer.process_frame(make_sign(SIGN))
            assert not recognizer.finished
        recognizer.process_frame(make_sign(SIGN))
        assert recognizer.finished
        assert recognizer.text == SCHEDULE

    def test_frames_ignored_once_finished(self, make_sign):
        recognizer = HoursRecognizer(threshold=2)
        recognizer.process_frame(make_sign(SIGN))
        recognizer.process_frame(make_sign(SIGN))
        assert recognizer.process_frame(make_sign(["Sa 10-14"])) is None
        assert recognizer.text == SCHEDULE
        assert recognizer.voter.history == {SCHEDULE: 2}

    def test_empty_frames_do_not_count(self, make_sign):
        recognizer = HoursRecognizer()
        result = recognizer.process_frame([])
        assert result.schedule == ""
        assert recognizer.text == ""
        assert recognizer.voter.history == {}
        assert recognizer.last_frame is result

    def test_listeners_receive_states_on_dispatch(self, make_sign):
        recognizer = HoursRecognizer()
        states = []
        recognizer.add_listener(states.append)

        for _ in range(5):
            recognizer.process_frame(make_sign(SIGN))
        assert states == []

        assert recognizer.dispatch_pending() == 5
        assert states[-1] == RecognizerState(SCHEDULE, True, 0)
        assert not any(s.finished for s in states[:-1])
        assert recognizer.dispatch_pending() == 0

    def test_restart_publishes_cleared_state(self, make_sign):
        recognizer = HoursRecognizer()
        recognizer.process_frame(make_sign(SIGN))
        recognizer.dispatch_pending()

        states = []
        recognizer.add_listener(states.append)
        recognizer.restart()
        recognizer.dispatch_pending()

        assert recognizer.generation == 1
        assert states == [RecognizerState("", False, 1)]
        assert recognizer.text == ""
        assert recognizer.last_frame is None

    def test_removed_listener_not_called(self, make_sign):
        recognizer = HoursRecognizer()
        states = []
        recognizer.add_listener(states.append)
        recognizer.remove_listener(states.append)
        recognizer.process_frame(make_sign(SIGN))
        recognizer.dispatch_pending()
        assert states == []

    def test_set_image_starts_new_session(self, make_sign):
        recognizer = HoursRecognizer()
        assert recognizer.set_image(make_sign(SIGN)) == SCHEDULE
        assert recognizer.set_image(make_sign(["Sa 10-14"])) == "Sa 10:00-14:00"
        assert recognizer.voter.history == {"Sa 10:00-14:00": 1}
        assert not recognizer.finished

    def test_threshold_one_finishes_on_single_image(self, make_sign):
        recognizer = HoursRecognizer(threshold=1)
        recognizer.set_image(make_sign(SIGN))
        assert recognizer.finished


# =============================================================================
# Recognizer (worker thread)
# =============================================================================

class TestRecognizerWorker:
    """Frames handed to the background worker."""

    def test_submit_and_wait(self, make_sign):
        with HoursRecognizer() as recognizer:
            for _ in range(5):
                assert recognizer.submit_frame(make_sign(SIGN))
                recognizer.wait_idle()
            assert recognizer.finished
            assert recognizer.text == SCHEDULE

    def test_submit_after_finished_is_dropped(self, make_sign):
        with HoursRecognizer(threshold=1) as recognizer:
            recognizer.process_frame(make_sign(SIGN))
            assert recognizer.submit_frame(make_sign(SIGN)) is False

    def test_worker_drops_frames_while_busy(self):
        started = threading.Event()
        release = threading.Event()
        observation = _blocking_observation("Mo-Fr 9-18", started, release)

        with HoursRecognizer() as recognizer:
            assert recognizer.submit_frame([observation])
            assert started.wait(TIMEOUT)
            # worker is busy; one frame may wait in the slot
            assert recognizer.submit_frame([observation])
            assert recognizer.submit_frame([observation]) is False

            release.set()
            recognizer.wait_idle()
            assert recognizer.voter.history == {"Mo-Fr 09:00-18:00": 2}

    def test_worker_discards_stale_frame_after_restart(self):
        started = threading.Event()
        release = threading.Event()
        observation = _blocking_observation("Mo-Fr 9-18", started, release)

        with HoursRecognizer() as recognizer:
            states = []
            recognizer.add_listener(states.append)

            assert recognizer.submit_frame([observation])
            assert started.wait(TIMEOUT)
            recognizer.restart()
            release.set()
            recognizer.wait_idle()

            assert recognizer.text == ""
            assert recognizer.voter.history == {}
            assert recognizer.last_frame is None

            recognizer.dispatch_pending()
            assert states == [RecognizerState("", False, 1)]

    def test_submit_after_close_raises(self, make_sign):
        recognizer = HoursRecognizer()
        recognizer.submit_frame(make_sign(SIGN))
        recognizer.close()
        with pytest.raises(RecognizerClosedError):
            recognizer.submit_frame(make_sign(SIGN))

    def test_close_racing_submit_leaves_no_worker(self, make_sign):
        observations = make_sign(SIGN)
        for _ in range(20):
            before = set(threading.enumerate())
            recognizer = HoursRecognizer()
            barrier = threading.Barrier(2)

            def submit():
                barrier.wait()
                try:
                    recognizer.submit_frame(observations)
                except RecognizerClosedError:
                    pass

            submitter = threading.Thread(target=submit)
            submitter.start()
            barrier.wait()
            recognizer.close()
            submitter.join(TIMEOUT)

            leaked = [
                t for t in threading.enumerate()
                if t not in before and t.name == "hours-recognizer"
            ]
            assert leaked == [], "worker started after close() was never joined"
            with pytest.raises(RecognizerClosedError):
                recognizer.submit_frame(observations)

    def test_close_is_idempotent(self):
        recognizer = HoursRecognizer()
        recognizer.close()
        recognizer.close()
