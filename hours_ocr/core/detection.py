"""
Text fragment extraction and line grouping for opening-hours OCR.

Observations from the OCR engine are split into word fragments in display
space, then clustered into reading-order lines without relying on any line
metadata from the engine.
"""

import logging
import re
from typing import Iterable, List, Optional

import numpy as np

from .utils import BoundingBox, Fragment, Observation, as_affine

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[^ ]+")


def _fragment_rect_function(observation: Observation, offset: int, transform: np.ndarray):
    def rect_of(start: int, end: int) -> BoundingBox:
        return observation.rect_of(offset + start, offset + end).transformed(transform)
    return rect_of


def fragments_from_observations(
    observations: Iterable[Observation],
    transform: Optional[np.ndarray] = None
) -> List[Fragment]:
    """
    Split observations into word fragments mapped into display space.

    Each observation can contain text in disconnected parts of the screen, so
    every space-delimited word gets its own rectangle.
    """
    matrix = as_affine(transform)
    fragments = []

    for observation in observations:
        for match in _WORD_RE.finditer(observation.text):
            rect_of = _fragment_rect_function(observation, match.start(), matrix)
            fragments.append(Fragment(
                text=match.group(),
                bbox=rect_of(0, len(match.group())),
                confidence=observation.confidence,
                rect_of=rect_of
            ))

    return fragments


def _order_key(fragment: Fragment):
    box = fragment.bbox
    return (box.y, box.x, box.height, box.width, fragment.text)


def _in_vertical_span(edge: Fragment, candidate: Fragment) -> bool:
    return edge.bbox.min_y <= candidate.bbox.center_y <= edge.bbox.max_y


class LineGrouper:
    """Groups fragments into lines, sorted left-to-right and top-to-bottom."""

    def group(self, fragments: Iterable[Fragment]) -> List[List[Fragment]]:
        """
        Cluster fragments into lines.

        Each line grows from the most confident remaining fragment, taking the
        nearest neighbour on each side whose vertical center lies within the
        current edge fragment.

        Returns:
            List of lines, each a list of fragments
        """
        pool = list(fragments)
        lines = []

        while pool:
            seed = min(pool, key=lambda f: (-f.confidence, _order_key(f)))
            pool.remove(seed)
            line = [seed]

            # fragments to the left
            edge = seed
            while True:
                candidates = [
                    f for f in pool
                    if f.bbox.max_x <= edge.bbox.min_x and _in_vertical_span(edge, f)
                ]
                if not candidates:
                    break
                edge = min(candidates, key=lambda f: (edge.bbox.min_x - f.bbox.max_x, _order_key(f)))
                pool.remove(edge)
                line.insert(0, edge)

            # fragments to the right
            edge = seed
            while True:
                candidates = [
                    f for f in pool
                    if f.bbox.min_x >= edge.bbox.max_x and _in_vertical_span(edge, f)
                ]
                if not candidates:
                    break
                edge = min(candidates, key=lambda f: (f.bbox.min_x - edge.bbox.max_x, _order_key(f)))
                pool.remove(edge)
                line.append(edge)

            lines.append(line)

        lines.sort(key=lambda line: _order_key(line[0]))

        if logger.isEnabledFor(logging.DEBUG):
            for line in lines:
                logger.debug(
                    "[Lines] %s: %s",
                    " ".join(f.text for f in line),
                    " ".join(f"{f.confidence:.2f}" for f in line)
                )

        return lines


def group_lines(fragments: Iterable[Fragment]) -> List[List[Fragment]]:
    """Convenience wrapper around LineGrouper."""
    return LineGrouper().group(fragments)
