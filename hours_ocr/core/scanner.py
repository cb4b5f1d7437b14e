"""
Rectangle-aware text scanner and opening-hours tokenizer.

A RectScanner walks one text source and reports a rectangle for everything it
consumes. A MultiScanner stitches several sources (the words of a line)
together, implying a single space at every boundary between them. The
tokenizer uses these to turn a line of fragments into Day, Time and Dash tokens.

Every ``scan_*`` call either consumes input and returns a result, or leaves
the cursor where it was and returns None.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union

from .utils import (
    BoundingBox,
    CONFIDENCE_HOUR_AMPM,
    CONFIDENCE_HOUR_ONLY,
    CONFIDENCE_TIME_AMPM,
    CONFIDENCE_TIME_MINUTES,
    Fragment,
    Language,
    Observation,
    RectFunction,
    Token,
    Weekday,
)

logger = logging.getLogger(__name__)

_DIGITS = "0123456789"


# =============================================================================
# Locale Tables
# =============================================================================

DAY_NAMES = MappingProxyType({
    Language.EN: (
        (Weekday.MO, ("monday", "mo", "mon")),
        (Weekday.TU, ("tuesday", "tu", "tue")),
        (Weekday.WE, ("wednesday", "we", "wed")),
        (Weekday.TH, ("thursday", "th", "thu", "thur")),
        (Weekday.FR, ("friday", "fr", "fri")),
        (Weekday.SA, ("saturday", "sa", "sat")),
        (Weekday.SU, ("sunday", "su", "sun")),
    ),
    Language.DE: (
        (Weekday.MO, ("montag", "mo", "mon")),
        (Weekday.TU, ("dienstag", "di")),
        (Weekday.WE, ("mittwoch", "mi")),
        (Weekday.TH, ("donnerstag", "do", "don")),
        (Weekday.FR, ("freitag", "fr")),
        (Weekday.SA, ("samstag", "sa", "sam")),
        (Weekday.SU, ("sonntag", "so", "son")),
    ),
})

RANGE_WORDS = MappingProxyType({
    Language.EN: "to",
    Language.DE: "bis",
})


# =============================================================================
# Scanners
# =============================================================================

@dataclass(frozen=True)
class ScanResult:
    """Text consumed by a scan and the rectangle it covers."""
    text: str
    bbox: BoundingBox


class Cursor(NamedTuple):
    source: int
    offset: int


class RectScanner:
    """Case-insensitive scanner over one text source."""

    def __init__(self, text: str, rect_of: RectFunction):
        self.text = text
        self.rect_of = rect_of
        self.offset = 0

    @property
    def at_end(self) -> bool:
        return self.offset >= len(self.text)

    def _consume(self, start: int, end: int) -> ScanResult:
        self.offset = end
        return ScanResult(self.text[start:end], self.rect_of(start, end))

    def last_char(self) -> ScanResult:
        start = max(len(self.text) - 1, 0)
        return ScanResult(self.text[start:], self.rect_of(start, len(self.text)))

    def scan_string(self, string: str) -> Optional[ScanResult]:
        start = self.offset
        end = start + len(string)
        if string and self.text[start:end].lower() == string.lower():
            return self._consume(start, end)
        return None

    def _scan_while(self, predicate) -> Optional[ScanResult]:
        start = end = self.offset
        while end < len(self.text) and predicate(self.text[end]):
            end += 1
        if end == start:
            return None
        return self._consume(start, end)

    def scan_whitespace(self) -> Optional[ScanResult]:
        return self._scan_while(str.isspace)

    def scan_up_to_whitespace(self) -> Optional[ScanResult]:
        return self._scan_while(lambda c: not c.isspace())

    def scan_int(self) -> Optional[ScanResult]:
        return self._scan_while(lambda c: c in _DIGITS)

    def scan_word(self, word: str) -> Optional[ScanResult]:
        """Scan ``word`` only if it is not the prefix of a longer word."""
        start = self.offset
        result = self.scan_string(word)
        if result is None:
            return None
        if self.offset < len(self.text) and self.text[self.offset].isalpha():
            self.offset = start
            return None
        return result

    def scan_any_word(self, words: Sequence[str]) -> Optional[ScanResult]:
        for word in words:
            result = self.scan_word(word)
            if result is not None:
                return result
        return None

    def remainder(self) -> str:
        return self.text[self.offset:]


SourceSpec = Tuple[str, RectFunction]


class MultiScanner:
    """
    Scanner over a sequence of text sources.

    Sources are treated as if separated by a single space: scanning for " "
    at the start of any source after the first succeeds without consuming
    input, using the rectangle of the previous source's last character.
    """

    def __init__(self, sources: Sequence[SourceSpec]):
        if not sources:
            raise ValueError("MultiScanner needs at least one source")
        self.scanners = [RectScanner(text, rect_of) for text, rect_of in sources]
        self._index = 0

    @property
    def cursor(self) -> Cursor:
        return Cursor(self._index, self.scanners[self._index].offset)

    @cursor.setter
    def cursor(self, value: Cursor) -> None:
        self._index = value.source
        self.scanners[value.source].offset = value.offset
        for scanner in self.scanners[value.source + 1:]:
            scanner.offset = 0

    def _current(self) -> RectScanner:
        while self.scanners[self._index].at_end and self._index + 1 < len(self.scanners):
            self._index += 1
        return self.scanners[self._index]

    @property
    def at_end(self) -> bool:
        return self._current().at_end

    def scan_string(self, string: str) -> Optional[ScanResult]:
        scanner = self._current()
        if string == " " and self._index > 0 and scanner.offset == 0:
            previous = self.scanners[self._index - 1].last_char()
            return ScanResult(" ", previous.bbox)
        return scanner.scan_string(string)

    def scan_whitespace(self) -> Optional[ScanResult]:
        result = self._current().scan_whitespace()
        if result is None:
            return None
        # keep going in case the whitespace runs into the next source
        while True:
            more = self._current().scan_whitespace()
            if more is None:
                return result
            result = ScanResult(result.text + more.text, result.bbox.union(more.bbox))

    def scan_up_to_whitespace(self) -> Optional[ScanResult]:
        return self._current().scan_up_to_whitespace()

    def scan_int(self) -> Optional[ScanResult]:
        return self._current().scan_int()

    def scan_word(self, word: str) -> Optional[ScanResult]:
        return self._current().scan_word(word)

    def scan_any_word(self, words: Sequence[str]) -> Optional[ScanResult]:
        return self._current().scan_any_word(words)

    def remainder(self) -> str:
        return " ".join(s.remainder() for s in self.scanners[self._index:])


# =============================================================================
# Token Scanning
# =============================================================================

def scan_day(scanner: MultiScanner, language: Language) -> Optional[Token]:
    """Scan a weekday name; confidence is the length of the matched text."""
    for day, names in DAY_NAMES[Language(language)]:
        result = scanner.scan_any_word(names)
        if result is not None:
            return Token.day(day, result.bbox, float(len(result.text)))
    return None


def _scan_meridiem(scanner: MultiScanner) -> Tuple[Optional[ScanResult], bool]:
    am = scanner.scan_string("AM")
    if am is not None:
        return am, False
    pm = scanner.scan_string("PM")
    if pm is not None:
        return pm, True
    return None, False


def _fold_hour(hour: int, is_pm: bool) -> int:
    return hour % 12 + (12 if is_pm else 0)


def scan_time(scanner: MultiScanner) -> Optional[Token]:
    """
    Scan a clock time: "9", "9 PM", "9:30", "9.30", "9 30" or "9:30 PM".

    The hour must be 0-24 and minutes exactly two digits 00-59. A malformed
    minute falls back to the bare hour rather than failing.
    """
    start = scanner.cursor
    hour = scanner.scan_int()
    if hour is None:
        return None
    if len(hour.text) > 2:
        scanner.cursor = start
        return None
    hour_value = int(hour.text)
    if not 0 <= hour_value <= 24:
        scanner.cursor = start
        return None

    after_hour = scanner.cursor
    separator = scanner.scan_string(":")
    if separator is None:
        separator = scanner.scan_string(".")
    if separator is None:
        separator = scanner.scan_string(" ")
    if separator is not None:
        minute = scanner.scan_int()
        if minute is not None and len(minute.text) == 2 and int(minute.text) < 60:
            minute_value = int(minute.text)
            scanner.scan_whitespace()
            suffix, is_pm = _scan_meridiem(scanner)
            if suffix is not None:
                return Token.time(
                    _fold_hour(hour_value, is_pm), minute_value,
                    hour.bbox.union(suffix.bbox),
                    CONFIDENCE_TIME_AMPM
                )
            return Token.time(
                hour_value, minute_value,
                hour.bbox.union(minute.bbox),
                CONFIDENCE_TIME_MINUTES
            )
    scanner.cursor = after_hour

    scanner.scan_whitespace()
    suffix, is_pm = _scan_meridiem(scanner)
    if suffix is not None:
        return Token.time(
            _fold_hour(hour_value, is_pm), 0,
            hour.bbox.union(suffix.bbox),
            CONFIDENCE_HOUR_AMPM
        )
    return Token.time(hour_value, 0, hour.bbox, CONFIDENCE_HOUR_ONLY)


def scan_dash(scanner: MultiScanner, language: Language) -> Optional[Token]:
    """Scan "-" or the locale's word for "to"."""
    result = scanner.scan_string("-")
    if result is None:
        result = scanner.scan_word(RANGE_WORDS[Language(language)])
    if result is None:
        return None
    return Token.dash(result.bbox, float(len(result.text)))


def scan_token(scanner: MultiScanner, language: Language) -> Optional[Token]:
    """Try Day, then Time, then Dash at the current position."""
    token = scan_day(scanner, language)
    if token is None:
        token = scan_time(scanner)
    if token is None:
        token = scan_dash(scanner, language)
    return token


def tokenize(sources: Sequence[SourceSpec], language: Language = Language.EN) -> List[Token]:
    """
    Convert text sources into tokens.

    Anything that is not a day, time or dash is skipped up to the next
    whitespace, so a noisy line never fails as a whole.
    """
    if not sources:
        return []

    tokens = []
    scanner = MultiScanner(sources)
    scanner.scan_whitespace()
    while not scanner.at_end:
        token = scan_token(scanner, language)
        if token is not None:
            tokens.append(token)
        else:
            skipped = scanner.scan_up_to_whitespace()
            if skipped is not None:
                logger.debug("[Scanner] skipped %r", skipped.text)
        scanner.scan_whitespace()
    return tokens


def tokenize_line(line: Sequence[Fragment], language: Language = Language.EN) -> List[Token]:
    """Tokenize the fragments of one line as a single stitched source."""
    return tokenize([(f.text, f.rect_of) for f in line], language)


def tokenize_text(
    text: str,
    language: Language = Language.EN,
    bbox: Union[BoundingBox, None] = None
) -> List[Token]:
    """Tokenize a plain string, spreading ``bbox`` evenly over its characters."""
    if bbox is None:
        bbox = BoundingBox(0.0, 0.0, float(len(text)), 1.0)
    observation = Observation.from_box(text, bbox, 1.0)
    return tokenize([(text, observation.rect_of)], language)
