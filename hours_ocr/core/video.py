"""
Frame processing and temporal stabilization for opening-hours OCR.

Contains the per-frame recognition pipeline, the HoursRecognizer that votes
across frames (optionally on a worker thread), and the video and still-image
front-ends.
"""

import logging
import queue
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import cv2
import numpy as np
from tqdm import tqdm

from .detection import LineGrouper, fragments_from_observations
from .postprocessing import (
    DayRunPolicy,
    ScheduleAssembler,
    SequencePruner,
    SequenceSegmenter,
    StabilityVoter,
)
from .recognition import OCREngine
from .scanner import tokenize_line
from .utils import (
    STABILITY_THRESHOLD,
    FrameResult,
    Language,
    Observation,
    RecognizerState,
    as_affine,
    draw_highlights,
    invert_affine,
    iter_video_frames,
    list_images,
    save_image_result,
)

logger = logging.getLogger(__name__)

_STOP = object()


def _log_state(state: RecognizerState) -> None:
    logger.debug("[Pipeline] generation %d: %r (finished=%s)",
                 state.generation, state.text, state.finished)


class RecognizerClosedError(RuntimeError):
    """Raised when frames are submitted to a closed recognizer."""
    pass


def recognize_frame(
    observations: Iterable[Observation],
    transform: Optional[np.ndarray] = None,
    language: Language = Language.EN,
    day_policy: DayRunPolicy = DayRunPolicy.KEEP
) -> FrameResult:
    """
    Run the full recognition pipeline on one frame's observations.

    This is a pure function of its inputs and safe to call from any thread.
    """
    matrix = as_affine(transform)

    # get strings and locations, then split into lines of text
    fragments = fragments_from_observations(observations, matrix)
    lines = LineGrouper().group(fragments)

    # convert lines of strings to lines of tokens
    token_lines = []
    for line in lines:
        tokens = tokenize_line(line, language)
        if tokens:
            token_lines.append(tokens)
            logger.debug(
                "[Tokens] %s: %s",
                " ".join(str(t) for t in tokens),
                " ".join(f"{t.confidence:.1f}" for t in tokens)
            )

    runs = SequenceSegmenter().segment(token_lines)
    runs = SequencePruner(day_policy).prune(runs)
    schedule = ScheduleAssembler().assemble(runs)

    boxes = [token.bbox for run in runs for token in run]
    inverse = invert_affine(matrix)

    logger.debug("[Frame] %d fragments, %d lines, %d runs -> %r",
                 len(fragments), len(lines), len(runs), schedule)

    return FrameResult(
        schedule=schedule,
        runs=runs,
        boxes=boxes,
        source_boxes=[box.transformed(inverse) for box in boxes],
        line_texts=[" ".join(f.text for f in line) for line in lines]
    )


class HoursRecognizer:
    """
    Accumulates per-frame schedules until one of them is stable.

    Frames can be processed synchronously with ``process_frame`` or handed to
    a worker thread with ``submit_frame``. The worker holds at most one
    pending frame; frames arriving while that slot is full are dropped.

    State changes are queued and delivered to listeners only from
    ``dispatch_pending``, which the consumer calls on its own thread.
    """

    def __init__(
        self,
        language: Language = Language.EN,
        threshold: int = STABILITY_THRESHOLD,
        day_policy: DayRunPolicy = DayRunPolicy.KEEP
    ):
        self.language = Language(language)
        self.day_policy = DayRunPolicy(day_policy)
        self.voter = StabilityVoter(threshold)
        self.last_frame: Optional[FrameResult] = None

        self._lock = threading.Lock()
        self._generation = 0
        self._frames: queue.Queue = queue.Queue(maxsize=1)
        self._updates: queue.Queue = queue.Queue()
        self._listeners: List[Callable[[RecognizerState], None]] = []
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()
        self._closed = False

    # -------------------------------------------------------------------------
    # Published state
    # -------------------------------------------------------------------------

    @property
    def text(self) -> str:
        return self.voter.text

    @property
    def finished(self) -> bool:
        return self.voter.finished

    @property
    def generation(self) -> int:
        return self._generation

    def add_listener(self, callback: Callable[[RecognizerState], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[RecognizerState], None]) -> None:
        self._listeners.remove(callback)

    def dispatch_pending(self) -> int:
        """
        Deliver queued state changes to listeners on the calling thread.

        Returns:
            Number of states delivered
        """
        delivered = 0
        while True:
            try:
                state = self._updates.get_nowait()
            except queue.Empty:
                return delivered
            for callback in list(self._listeners):
                callback(state)
            delivered += 1

    # -------------------------------------------------------------------------
    # Session control
    # -------------------------------------------------------------------------

    def restart(self) -> None:
        """Clear all session state; in-flight frames become stale."""
        with self._lock:
            self._generation += 1
            self.voter.restart()
            self.last_frame = None
            self._updates.put(RecognizerState("", False, self._generation))
        logger.debug("[Recognizer] restarted (generation %d)", self._generation)

    def _apply(self, generation: int, result: FrameResult) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("[Recognizer] discarding stale frame from generation %d", generation)
                return
            self.last_frame = result
            if self.voter.finished:
                return
            if not self.voter.vote(result.schedule):
                return
            self._updates.put(RecognizerState(self.voter.text, self.voter.finished, generation))

    def process_frame(
        self,
        observations: Iterable[Observation],
        transform: Optional[np.ndarray] = None
    ) -> Optional[FrameResult]:
        """
        Recognize one frame on the calling thread and count its result.

        Returns:
            The frame result, or None if the session is already finished
        """
        if self.finished:
            return None
        generation = self._generation
        result = recognize_frame(observations, transform, self.language, self.day_policy)
        self._apply(generation, result)
        return result

    def set_image(
        self,
        observations: Iterable[Observation],
        transform: Optional[np.ndarray] = None
    ) -> str:
        """Start a new session and run a single still image through it."""
        self.restart()
        self.process_frame(observations, transform)
        return self.text

    # -------------------------------------------------------------------------
    # Worker thread
    # -------------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None:
            self._worker = threading.Thread(
                target=self._run_worker,
                name="hours-recognizer",
                daemon=True
            )
            self._worker.start()

    def _run_worker(self) -> None:
        while True:
            item = self._frames.get()
            try:
                if item is _STOP:
                    return
                generation, observations, transform = item
                result = recognize_frame(observations, transform, self.language, self.day_policy)
                self._apply(generation, result)
            except Exception:
                logger.exception("[Recognizer] frame processing failed")
            finally:
                self._frames.task_done()

    def submit_frame(
        self,
        observations: Iterable[Observation],
        transform: Optional[np.ndarray] = None
    ) -> bool:
        """
        Hand a frame to the worker thread.

        Returns:
            False if the frame was dropped (busy or finished)
        """
        with self._worker_lock:
            if self._closed:
                raise RecognizerClosedError("recognizer is closed")
            if self.finished:
                return False
            self._ensure_worker()
            item = (self._generation, list(observations), transform)
            try:
                self._frames.put_nowait(item)
            except queue.Full:
                logger.debug("[Recognizer] busy, dropping frame")
                return False
        return True

    def wait_idle(self) -> None:
        """Block until every accepted frame has been processed."""
        self._frames.join()

    def close(self) -> None:
        # never join while holding _lock; the worker takes it in _apply
        with self._worker_lock:
            if self._closed:
                return
            self._closed = True
            worker, self._worker = self._worker, None
        if worker is not None:
            self._frames.put(_STOP)
            worker.join()

    def __enter__(self) -> 'HoursRecognizer':
        return self

    def __exit__(self, *args) -> None:
        self.close()


class VideoHoursPipeline:
    """Reads a video file frame by frame until the schedule is stable."""

    def __init__(
        self,
        engine: str = "paddle",
        lang: str = "en",
        threshold: int = STABILITY_THRESHOLD,
        frame_step: int = 1,
        day_policy: DayRunPolicy = DayRunPolicy.KEEP
    ):
        self.frame_step = frame_step
        self.ocr_engine = OCREngine(engine, lang)
        self.recognizer = HoursRecognizer(lang, threshold, day_policy)
        self.recognizer.add_listener(_log_state)

    def process(self, input_path: str) -> Dict[str, Any]:
        """
        Process a video file.

        Returns:
            Dict with the stable text, finished flag and frame counts
        """
        self.recognizer.restart()
        frames_read = 0
        frames_used = 0

        for frame_idx, image in tqdm(iter_video_frames(input_path, self.frame_step), desc="Processing frames"):
            frames_read += 1
            result = self.recognizer.process_frame(self.ocr_engine.recognize(image))
            self.recognizer.dispatch_pending()
            if result is not None and result.schedule:
                frames_used += 1
            if self.recognizer.finished:
                logger.info("[Pipeline] stable after frame %d", frame_idx)
                break

        self.recognizer.dispatch_pending()
        return {
            "input_path": str(input_path),
            "text": self.recognizer.text,
            "finished": self.recognizer.finished,
            "frames_read": frames_read,
            "frames_used": frames_used,
            "history": self.recognizer.voter.history,
        }


class ImageHoursPipeline:
    """Runs still images through the recognizer, one session per image."""

    def __init__(
        self,
        engine: str = "paddle",
        lang: str = "en",
        day_policy: DayRunPolicy = DayRunPolicy.KEEP
    ):
        self.ocr_engine = OCREngine(engine, lang)
        self.recognizer = HoursRecognizer(lang, day_policy=day_policy)
        self.recognizer.add_listener(_log_state)

    def process_image(self, image_path: str, output_dir: str) -> Dict[str, Any]:
        """Process a single image."""
        image = cv2.imread(str(image_path))
        if image is None:
            return {"error": f"Could not load image: {image_path}"}

        out_path = Path(output_dir)
        out_path.mkdir(parents=True, exist_ok=True)
        image_name = Path(image_path).stem

        text = self.recognizer.set_image(self.ocr_engine.recognize(image))
        self.recognizer.dispatch_pending()
        frame = self.recognizer.last_frame
        boxes = frame.source_boxes if frame is not None else []

        annotated = draw_highlights(image, boxes, text)
        annotated_path = out_path / "annotated" / f"{image_name}.png"
        annotated_path.parent.mkdir(exist_ok=True)
        cv2.imwrite(str(annotated_path), annotated)

        result = {
            "image_path": str(image_path),
            "text": text,
            "lines": frame.line_texts if frame is not None else [],
            "boxes": [list(box.as_int_tuple()) for box in boxes],
        }
        save_image_result(result, out_path, image_name)
        return result

    def process_folder(self, folder_path: str, output_dir: str) -> List[Dict[str, Any]]:
        """Process all images in a folder."""
        results = []
        for img_path in tqdm(list_images(folder_path), desc="Processing images"):
            results.append(self.process_image(str(img_path), output_dir))
        return results
