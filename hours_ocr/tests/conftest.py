"""
Pytest configuration and shared fixtures for opening-hours OCR tests.

This module provides:
- Builders for synthetic OCR observations (no OCR engine needed)
- Token builders for postprocessing tests
- Marker configuration

Usage:
    pytest hours_ocr/tests/ -v
    pytest hours_ocr/tests/test_scanner.py -v
"""

import sys
from pathlib import Path
from typing import List, Tuple

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hours_ocr.core.utils import BoundingBox, Observation, Token, Weekday  # noqa: E402


# Width of one character in synthetic observations (pixels)
CHAR_WIDTH = 10.0
LINE_HEIGHT = 10.0


# =============================================================================
# Observation Builders
# =============================================================================

@pytest.fixture
def make_observation():
    """
    Provide a builder for observations laid out on a character grid.

    Usage:
        make_observation("Mo-Fr 9-17", x=0, y=0, confidence=0.9)
    """
    def _make(text: str, x: float = 0.0, y: float = 0.0, confidence: float = 1.0,
              height: float = LINE_HEIGHT) -> Observation:
        box = BoundingBox(x, y, CHAR_WIDTH * len(text), height)
        return Observation.from_box(text, box, confidence)

    return _make


@pytest.fixture
def make_sign(make_observation):
    """
    Provide a builder for a whole sign: one observation per row of text.

    Usage:
        make_sign(["Mo-Fr 9-17", "Sa 10-14"])
    """
    def _make(rows: List[str], row_gap: float = 2 * LINE_HEIGHT) -> List[Observation]:
        return [
            make_observation(text, x=0.0, y=i * row_gap, confidence=0.9)
            for i, text in enumerate(rows)
        ]

    return _make


# =============================================================================
# Token Builders
# =============================================================================

_UNIT_BOX = BoundingBox(0.0, 0.0, 1.0, 1.0)


def time_token(hour: int, minute: int = 0, confidence: float = 6.0) -> Token:
    return Token.time(hour, minute, _UNIT_BOX, confidence)


def day_token(day: Weekday, confidence: float = 2.0) -> Token:
    return Token.day(day, _UNIT_BOX, confidence)


def dash_token() -> Token:
    return Token.dash(_UNIT_BOX, 1.0)


def texts(tokens) -> List[str]:
    return [str(t) for t in tokens]


def run_texts(runs) -> List[List[str]]:
    return [texts(run) for run in runs]


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "threaded: marks tests that exercise the recognizer worker thread"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their names."""
    for item in items:
        if "worker" in item.name or "submit" in item.name:
            item.add_marker(pytest.mark.threaded)
