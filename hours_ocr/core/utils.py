"""
Utility functions and data classes for opening-hours OCR.

Contains shared data structures, geometry helpers, file I/O helpers, and
configuration constants.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Any, Union

import cv2
import numpy as np


# =============================================================================
# Configuration
# =============================================================================

# Number of identical frame results needed before a session is finished
STABILITY_THRESHOLD = 5

# Time token confidences (higher = more specific match)
CONFIDENCE_TIME_AMPM = 8.0      # "9:00 PM"
CONFIDENCE_TIME_MINUTES = 6.0   # "9:00"
CONFIDENCE_HOUR_AMPM = 4.0      # "9 PM"
CONFIDENCE_HOUR_ONLY = 1.0      # "9"

VIDEO_EXTENSIONS = {'.mp4', '.avi', '.mov', '.mkv', '.webm'}
IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.webp'}

# Affine transforms (2x3) from OCR coordinate space into display space
IDENTITY_TRANSFORM = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
# Normalized coordinates with a bottom-left origin -> top-left origin
LIVE_TRANSFORM = np.array([[1.0, 0.0, 0.0], [0.0, -1.0, 1.0]])
# Still images captured in portrait orientation
ROTATED_TRANSFORM = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])


class Language(str, Enum):
    """Supported recognition locales."""
    EN = "en"
    DE = "de"


class Weekday(str, Enum):
    """Weekday codes used in the schedule output."""
    MO = "Mo"
    TU = "Tu"
    WE = "We"
    TH = "Th"
    FR = "Fr"
    SA = "Sa"
    SU = "Su"


# =============================================================================
# Geometry
# =============================================================================

def as_affine(transform: Optional[np.ndarray]) -> np.ndarray:
    """Normalize a transform to a 2x3 float array (None means identity)."""
    if transform is None:
        return IDENTITY_TRANSFORM
    matrix = np.asarray(transform, dtype=float)
    if matrix.shape == (3, 3):
        matrix = matrix[:2]
    if matrix.shape != (2, 3):
        raise ValueError(f"Affine transform must be 2x3, got shape {matrix.shape}")
    return matrix


def invert_affine(transform: np.ndarray) -> np.ndarray:
    """Invert a 2x3 affine transform."""
    full = np.vstack([as_affine(transform), [0.0, 0.0, 1.0]])
    return np.linalg.inv(full)[:2]


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle, y grows downward."""
    x: float
    y: float
    width: float
    height: float

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_points(cls, points) -> 'BoundingBox':
        """Axis-aligned hull of a polygon given as [[x, y], ...]."""
        pts = np.asarray(points, dtype=float)
        x = float(pts[:, 0].min())
        y = float(pts[:, 1].min())
        return cls(x, y, float(pts[:, 0].max()) - x, float(pts[:, 1].max()) - y)

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        x1 = min(self.min_x, other.min_x)
        y1 = min(self.min_y, other.min_y)
        x2 = max(self.max_x, other.max_x)
        y2 = max(self.max_y, other.max_y)
        return BoundingBox(x1, y1, x2 - x1, y2 - y1)

    def transformed(self, transform: np.ndarray) -> 'BoundingBox':
        """Apply an affine transform and return the axis-aligned hull."""
        matrix = as_affine(transform)
        corners = np.array([
            [self.min_x, self.min_y, 1.0],
            [self.max_x, self.min_y, 1.0],
            [self.max_x, self.max_y, 1.0],
            [self.min_x, self.max_y, 1.0],
        ])
        return BoundingBox.from_points(corners @ matrix.T)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        return (int(round(self.x)), int(round(self.y)),
                int(round(self.width)), int(round(self.height)))


RectFunction = Callable[[int, int], BoundingBox]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class Observation:
    """One recognized text region as reported by an OCR engine.

    ``rect_of(start, end)`` returns the rectangle of ``text[start:end]`` in the
    engine's coordinate space.
    """
    text: str
    confidence: float
    rect_of: RectFunction = field(compare=False, repr=False)

    @classmethod
    def from_box(cls, text: str, box: BoundingBox, confidence: float) -> 'Observation':
        """Build an observation whose characters share the box width evenly."""
        count = max(len(text), 1)

        def rect_of(start: int, end: int) -> BoundingBox:
            x1 = box.x + box.width * start / count
            x2 = box.x + box.width * end / count
            return BoundingBox(x1, box.y, x2 - x1, box.height)

        return cls(text, confidence, rect_of)

    @classmethod
    def from_polygon(cls, text: str, polygon, confidence: float) -> 'Observation':
        """Build an observation from an engine quadrilateral [[x, y], ...]."""
        return cls.from_box(text, BoundingBox.from_points(polygon), confidence)


@dataclass(frozen=True)
class Fragment:
    """A single whitespace-delimited word in display space."""
    text: str
    bbox: BoundingBox
    confidence: float
    rect_of: RectFunction = field(compare=False, repr=False)


@dataclass(frozen=True)
class DayValue:
    day: Weekday

    @property
    def text(self) -> str:
        return self.day.value


@dataclass(frozen=True)
class TimeValue:
    hour: int
    minute: int = 0

    @property
    def text(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class DashValue:

    @property
    def text(self) -> str:
        return "-"


@dataclass(frozen=True)
class EndOfTextValue:

    @property
    def text(self) -> str:
        return ""


TokenValue = Union[DayValue, TimeValue, DashValue, EndOfTextValue]


class TokenKind(Enum):
    DAY = "day"
    TIME = "time"
    DASH = "dash"
    END_OF_TEXT = "end_of_text"


_KIND_BY_VALUE_TYPE = {
    DayValue: TokenKind.DAY,
    TimeValue: TokenKind.TIME,
    DashValue: TokenKind.DASH,
    EndOfTextValue: TokenKind.END_OF_TEXT,
}


@dataclass(frozen=True, eq=False)
class Token:
    """A scanned token with its source rectangle and confidence.

    Equality is structural: two tokens are equal when they are the same kind
    and render the same text, regardless of geometry or confidence.
    """
    value: TokenValue
    bbox: BoundingBox
    confidence: float

    @property
    def kind(self) -> TokenKind:
        return _KIND_BY_VALUE_TYPE[type(self.value)]

    @property
    def text(self) -> str:
        return self.value.text

    def is_day(self) -> bool:
        return self.kind is TokenKind.DAY

    def is_time(self) -> bool:
        return self.kind is TokenKind.TIME

    def is_dash(self) -> bool:
        return self.kind is TokenKind.DASH

    def __str__(self) -> str:
        return self.text

    def __eq__(self, other) -> bool:
        if not isinstance(other, Token):
            return NotImplemented
        return self.kind is other.kind and self.text == other.text

    def __hash__(self) -> int:
        return hash((self.kind, self.text))

    @classmethod
    def day(cls, day: Weekday, bbox: BoundingBox, confidence: float) -> 'Token':
        return cls(DayValue(day), bbox, confidence)

    @classmethod
    def time(cls, hour: int, minute: int, bbox: BoundingBox, confidence: float) -> 'Token':
        return cls(TimeValue(hour, minute), bbox, confidence)

    @classmethod
    def dash(cls, bbox: BoundingBox, confidence: float) -> 'Token':
        return cls(DashValue(), bbox, confidence)

    @classmethod
    def end_of_text(cls) -> 'Token':
        return cls(EndOfTextValue(), BoundingBox(0.0, 0.0, 0.0, 0.0), 0.0)


@dataclass
class FrameResult:
    """Results from running the recognition pipeline on a single frame."""
    schedule: str
    runs: List[List[Token]] = field(default_factory=list)
    boxes: List[BoundingBox] = field(default_factory=list)
    source_boxes: List[BoundingBox] = field(default_factory=list)
    line_texts: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RecognizerState:
    """Snapshot of published recognizer state handed to listeners."""
    text: str = ""
    finished: bool = False
    generation: int = 0


# =============================================================================
# File I/O Utilities
# =============================================================================

def iter_video_frames(input_path: str, frame_step: int = 1) -> Iterator[Tuple[int, np.ndarray]]:
    """
    Yield frames from a video file.

    Args:
        input_path: Path to video file
        frame_step: Yield every Nth frame

    Yields:
        (frame_index, image)
    """
    cap = cv2.VideoCapture(str(input_path))
    frame_idx = 0
    try:
        while cap.isOpened():
            ret, frame = cap.read()
            if not ret:
                break
            if frame_idx % max(frame_step, 1) == 0:
                yield frame_idx, frame
            frame_idx += 1
    finally:
        cap.release()


def list_images(folder_path: str) -> List[Path]:
    """Sorted image files in a folder."""
    folder = Path(folder_path)
    return sorted([
        f for f in folder.iterdir()
        if f.suffix.lower() in IMAGE_EXTENSIONS
    ])


def save_image_result(result: Dict[str, Any], out_path: Path, image_name: str) -> Path:
    """Save single image recognition result to JSON."""
    json_path = out_path / f"{image_name}_result.json"
    with open(json_path, "w") as f:
        json.dump(result, f, indent=2)
    return json_path


def draw_highlights(
    image: np.ndarray,
    boxes: List[BoundingBox],
    label: str = ""
) -> np.ndarray:
    """Draw token highlight boxes and the schedule label on an image."""
    annotated = image.copy()

    for box in boxes:
        x, y, w, h = box.as_int_tuple()
        cv2.rectangle(annotated, (x, y), (x + w, y + h), (0, 255, 0), 2)

    if label:
        cv2.putText(
            annotated, label,
            (10, 30),
            cv2.FONT_HERSHEY_SIMPLEX, 0.8,
            (0, 255, 0), 2
        )

    return annotated
