"""
Token postprocessing for opening-hours OCR.

Contains homogeneous run segmentation, day/time run pruning, assembly of the
final schedule string, and the stability vote across frames.
"""

import logging
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .utils import STABILITY_THRESHOLD, Token, TokenKind

logger = logging.getLogger(__name__)

MIDNIGHT = "00:00"


def _unhandled(token: Token):
    return TypeError(f"Unhandled token kind: {token.kind!r}")


# =============================================================================
# Segmentation
# =============================================================================

class SequenceSegmenter:
    """Splits token lines so each run holds only days or only times."""

    def segment_line(self, line: List[Token]) -> List[List[Token]]:
        """
        Split one token line into homogeneous runs.

        Dashes are kept only when they sit between two tokens of the same
        kind; a dash followed by the other kind, or by nothing, is dropped.
        """
        runs: List[List[Token]] = []
        pending_dash: Optional[Token] = None

        for token in line:
            kind = token.kind
            if kind is TokenKind.DASH:
                if runs:
                    pending_dash = token
            elif kind is TokenKind.DAY or kind is TokenKind.TIME:
                if runs and runs[-1][0].kind is kind:
                    if pending_dash is not None:
                        runs[-1].append(pending_dash)
                    runs[-1].append(token)
                else:
                    runs.append([token])
                pending_dash = None
            elif kind is TokenKind.END_OF_TEXT:
                pending_dash = None
            else:
                raise _unhandled(token)

        return runs

    def segment(self, token_lines: Iterable[List[Token]]) -> List[List[Token]]:
        """Segment every line; runs never span two lines."""
        runs = []
        for line in token_lines:
            runs.extend(self.segment_line(line))
        return runs


# =============================================================================
# Pruning
# =============================================================================

class DayRunPolicy(str, Enum):
    """How runs of three or more days are treated."""
    KEEP = "keep"
    BEST_TWO = "best_two"


def _drop_worst(tokens: List[Token]) -> List[Token]:
    worst = min(range(len(tokens)), key=lambda i: tokens[i].confidence)
    return tokens[:worst] + tokens[worst + 1:]


def _pair_up(tokens: List[Token]) -> List[Tuple[Token, Token]]:
    if len(tokens) % 2 == 1:
        tokens = _drop_worst(tokens)
    return [(tokens[i], tokens[i + 1]) for i in range(0, len(tokens), 2)]


def best_two(tokens: List[Token]) -> List[Token]:
    """Keep the two highest-confidence tokens, preserving their order."""
    if len(tokens) <= 2:
        return list(tokens)
    ranked = sorted(range(len(tokens)), key=lambda i: -tokens[i].confidence)
    return [tokens[i] for i in sorted(ranked[:2])]


class SequencePruner:
    """Normalizes day and time runs before assembly."""

    def __init__(self, day_policy: DayRunPolicy = DayRunPolicy.KEEP):
        self.day_policy = DayRunPolicy(day_policy)

    def prune_days(self, run: List[Token]) -> Optional[List[Token]]:
        if self.day_policy is DayRunPolicy.BEST_TWO:
            return best_two([t for t in run if t.is_day()])
        return run

    def prune_times(self, run: List[Token]) -> Optional[List[Token]]:
        """
        Reduce a time run to an even number of tokens forming ranges.

        Returns:
            Flattened (open, close) pairs, or None if no pair survives
        """
        # "9 - - 17" reads the same as "9 - 17"
        remaining = [
            t for i, t in enumerate(run)
            if not (t.is_dash() and i > 0 and run[i - 1].is_dash())
        ]
        pairs: List[Tuple[Token, Token]] = []

        # pull out dash-separated pairs
        while True:
            dash = next((i for i, t in enumerate(remaining) if t.is_dash()), None)
            if dash is None:
                break
            if dash == 0 or dash == len(remaining) - 1:
                # dash with a missing neighbour
                remaining.pop(dash)
                continue
            pairs.extend(_pair_up(remaining[:dash - 1]))
            pairs.append((remaining[dash - 1], remaining[dash + 1]))
            remaining = remaining[dash + 2:]

        pairs.extend(_pair_up(remaining))

        # both ends at midnight is almost always noise
        pairs = [p for p in pairs if not (p[0].text == MIDNIGHT and p[1].text == MIDNIGHT)]

        if not pairs:
            return None
        return [token for pair in pairs for token in pair]

    def prune(self, runs: Iterable[List[Token]]) -> List[List[Token]]:
        pruned = []
        for run in runs:
            first = run[0]
            if first.kind is TokenKind.DAY:
                result = self.prune_days(run)
            elif first.kind is TokenKind.TIME:
                result = self.prune_times(run)
            elif first.kind is TokenKind.DASH or first.kind is TokenKind.END_OF_TEXT:
                result = None
            else:
                raise _unhandled(first)
            if result:
                pruned.append(result)
        return pruned


# =============================================================================
# Assembly
# =============================================================================

def _format_days(days: List[Token]) -> str:
    if len(days) == 2:
        return f"{days[0]}-{days[1]}"
    return ",".join(str(d) for d in days)


class ScheduleAssembler:
    """Converts pruned runs into the final schedule string."""

    def assemble(self, runs: Iterable[List[Token]]) -> str:
        """
        Walk all tokens; each group is one or more days followed by two or
        more times.

        Returns:
            Schedule such as "Mo-Fr 09:00-12:00,13:00-18:00 Sa 10:00-14:00"
        """
        days: List[Token] = []
        times: List[Token] = []
        groups: List[str] = []

        tokens = [token for run in runs for token in run]
        tokens.append(Token.end_of_text())

        for token in tokens:
            kind = token.kind
            if kind is TokenKind.DAY or kind is TokenKind.END_OF_TEXT:
                if len(times) >= 2:
                    ranges = ",".join(
                        f"{times[i]}-{times[i + 1]}"
                        for i in range(0, len(times) - 1, 2)
                    )
                    if days:
                        groups.append(f"{_format_days(days)} {ranges}")
                    else:
                        groups.append(ranges)
                if times:
                    times = []
                    days = []
                if kind is TokenKind.DAY:
                    days.append(token)
            elif kind is TokenKind.TIME:
                times.append(token)
            elif kind is TokenKind.DASH:
                pass
            else:
                raise _unhandled(token)

        return " ".join(groups)


# =============================================================================
# Stability Vote
# =============================================================================

class StabilityVoter:
    """
    Accumulates per-frame schedules and publishes the most frequent one.

    The published string only changes when another string strictly exceeds
    its count, so equal counts keep the incumbent.
    """

    def __init__(self, threshold: int = STABILITY_THRESHOLD):
        self.threshold = threshold
        self._lock = threading.Lock()
        self._history: Dict[str, int] = {}
        self._text = ""
        self._finished = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def history(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._history)

    def restart(self) -> None:
        with self._lock:
            self._history.clear()
            self._text = ""
            self._finished = False

    def vote(self, schedule: str) -> bool:
        """
        Count one frame result.

        Returns:
            True if the frame was counted (non-empty schedule)
        """
        if not schedule:
            return False

        with self._lock:
            count = self._history.get(schedule, 0) + 1
            self._history[schedule] = count

            best_count = self._history.get(self._text, 0)
            if not self._text or count > best_count:
                self._text = schedule
                best_count = count
            self._finished = best_count >= self.threshold

        logger.debug("[Voter] %r x%d -> %r (finished=%s)", schedule, count, self._text, self._finished)
        return True
