"""
Core module for opening-hours OCR.

This package contains modular components for schedule recognition:
- utils: Data classes, geometry, file I/O, and configuration
- detection: Word fragments and line grouping
- scanner: Rectangle-aware scanner and tokenizer
- postprocessing: Run segmentation, pruning, assembly, stability voting
- recognition: OCR engine wrappers (PaddleOCR, EasyOCR, Tesseract)
- video: Frame pipeline, recognizer, video and still-image front-ends
"""

# Data classes
from .utils import (
    BoundingBox,
    Observation,
    Fragment,
    Token,
    TokenKind,
    Weekday,
    Language,
    FrameResult,
    RecognizerState,
)

# Configuration
from .utils import (
    STABILITY_THRESHOLD,
    IDENTITY_TRANSFORM,
    LIVE_TRANSFORM,
    ROTATED_TRANSFORM,
)

# Detection
from .detection import LineGrouper, fragments_from_observations, group_lines

# Tokenizer
from .scanner import (
    MultiScanner,
    RectScanner,
    tokenize,
    tokenize_line,
    tokenize_text,
)

# Postprocessing
from .postprocessing import (
    DayRunPolicy,
    SequenceSegmenter,
    SequencePruner,
    ScheduleAssembler,
    StabilityVoter,
)

# Recognition
from .recognition import OCREngine

# Main pipelines
from .video import (
    HoursRecognizer,
    RecognizerClosedError,
    recognize_frame,
    VideoHoursPipeline,
    ImageHoursPipeline,
)


__all__ = [
    # Data classes
    "BoundingBox",
    "Observation",
    "Fragment",
    "Token",
    "TokenKind",
    "Weekday",
    "Language",
    "FrameResult",
    "RecognizerState",
    # Configuration
    "STABILITY_THRESHOLD",
    "IDENTITY_TRANSFORM",
    "LIVE_TRANSFORM",
    "ROTATED_TRANSFORM",
    # Detection
    "LineGrouper",
    "fragments_from_observations",
    "group_lines",
    # Tokenizer
    "MultiScanner",
    "RectScanner",
    "tokenize",
    "tokenize_line",
    "tokenize_text",
    # Postprocessing
    "DayRunPolicy",
    "SequenceSegmenter",
    "SequencePruner",
    "ScheduleAssembler",
    "StabilityVoter",
    # Recognition
    "OCREngine",
    # Pipelines
    "HoursRecognizer",
    "RecognizerClosedError",
    "recognize_frame",
    "VideoHoursPipeline",
    "ImageHoursPipeline",
]
