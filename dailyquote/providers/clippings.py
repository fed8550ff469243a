"""Parser for Kindle "My Clippings.txt" highlight exports."""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime
from pathlib import Path

from dailyquote.providers.content_types import AnnotationType, Quote

logger = logging.getLogger(__name__)

SEPARATOR_RE = re.compile(r"^==========[ \t]*$", re.MULTILINE)

# Author is the last parenthesized group, so titles may contain parentheses
BOOK_LINE_RE = re.compile(r"^(?P<title>.+?)\s*\((?P<author>[^()]+)\)$")

METADATA_LINE_RE = re.compile(
    r"^-\s*Your Highlight (?:on|at)\s+"
    r"(?:[Pp]age (?P<page>[^\s|]+)\s*\|\s*)?"
    r"[Ll]ocation (?P<location>\d+(?:-\d+)?)\s*\|\s*"
    r"Added on (?P<date>.+)$"
)

# Leading weekday, only when another word and a day number follow it
WEEKDAY_PREFIX_RE = re.compile(r"^[A-Za-z]+ (?=[A-Za-z]+ \d)")

DATE_RE = re.compile(
    r"^(?P<month>[A-Za-z]+) (?P<day>\d{1,2}) (?P<year>\d{4}) "
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2}) (?P<meridiem>AM|PM)$"
)

MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

MIN_SEGMENT_LINES = 3


class ParseError(Exception):
    """A highlights export could not be interpreted.

    Attributes:
        reason: Short description of what is wrong.
        ordinal: 1-based position of the offending highlight, 0 for the whole input.
        field: Which part of the highlight failed (book, metadata, date, content).
    """

    def __init__(self, reason: str, ordinal: int = 0, field: str | None = None):
        self.reason = reason
        self.ordinal = ordinal
        self.field = field
        if ordinal:
            message = f"Highlight #{ordinal}: {reason}"
        else:
            message = reason
        super().__init__(message)


def quote_id(book_title: str, location: str, created_at: datetime) -> str:
    """Stable identifier for a highlight, so re-imports keep their ids."""
    key = f"{book_title}|{location}|{created_at.isoformat()}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_clippings_date(text: str) -> datetime:
    """Parse the 'Added on' part of a metadata line.

    Accepts e.g. "Monday, January 5, 2023 2:30:00 PM". The weekday and
    commas are dropped before matching.

    Raises:
        ValueError: If the date cannot be parsed or is out of range.
    """
    cleaned = " ".join(text.replace(",", " ").split())
    cleaned = WEEKDAY_PREFIX_RE.sub("", cleaned)

    match = DATE_RE.match(cleaned)
    if not match:
        raise ValueError(f"Unrecognized date: {text!r}")

    month_name = match.group("month")
    if month_name not in MONTHS:
        raise ValueError(f"Unknown month: {month_name!r}")

    hour = int(match.group("hour"))
    if not 1 <= hour <= 12:
        raise ValueError(f"Hour out of range: {hour}")
    # 12 AM is midnight, 12 PM is noon
    hour = hour % 12
    if match.group("meridiem") == "PM":
        hour += 12

    return datetime(
        year=int(match.group("year")),
        month=MONTHS.index(month_name) + 1,
        day=int(match.group("day")),
        hour=hour,
        minute=int(match.group("minute")),
        second=int(match.group("second")),
    )


def split_segments(raw_text: str) -> list[str]:
    """Split an export into non-blank highlight segments."""
    text = raw_text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    return [seg for seg in SEPARATOR_RE.split(text) if seg.strip()]


def parse_segment(segment: str, ordinal: int) -> Quote:
    """Parse one highlight segment into a Quote.

    Raises:
        ParseError: If any line of the segment is malformed.
    """
    lines = [line.strip().lstrip("\ufeff") for line in segment.split("\n")]
    lines = [line for line in lines if line]
    if len(lines) < MIN_SEGMENT_LINES:
        raise ParseError(
            f"expected at least {MIN_SEGMENT_LINES} lines, got {len(lines)}",
            ordinal=ordinal,
        )

    book_match = BOOK_LINE_RE.match(lines[0])
    if not book_match:
        raise ParseError("invalid book line", ordinal=ordinal, field="book")
    book_title = book_match.group("title").strip()
    book_author = book_match.group("author").strip()
    if not book_title or not book_author:
        raise ParseError("invalid book line", ordinal=ordinal, field="book")

    meta_match = METADATA_LINE_RE.match(lines[1])
    if not meta_match:
        raise ParseError("invalid metadata line", ordinal=ordinal, field="metadata")

    try:
        created_at = parse_clippings_date(meta_match.group("date"))
    except ValueError as e:
        raise ParseError("invalid date", ordinal=ordinal, field="date") from e

    content = "\n".join(lines[2:]).strip()
    if not content:
        raise ParseError("empty content", ordinal=ordinal, field="content")

    location = meta_match.group("location")
    return Quote(
        id=quote_id(book_title, location, created_at),
        content=content,
        book_title=book_title,
        book_author=book_author,
        location=location,
        page=meta_match.group("page"),
        created_at=created_at,
        annotation_type=AnnotationType.HIGHLIGHT,
    )


def parse_clippings(raw_text: str) -> list[Quote]:
    """Parse a full highlights export into quotes, in source order.

    The import is all-or-nothing: the first malformed highlight fails the
    whole export.

    Raises:
        ParseError: If the input is empty or any highlight is malformed.
    """
    segments = split_segments(raw_text)
    if not segments:
        raise ParseError("empty input")

    quotes = [parse_segment(seg, ordinal) for ordinal, seg in enumerate(segments, start=1)]
    logger.info(f"Parsed {len(quotes)} highlights from {len({q.book_title for q in quotes})} books")
    return quotes


def read_clippings_file(path: str | Path) -> str:
    """Read an export from disk. Kindle writes UTF-8 with a BOM."""
    return Path(path).read_text(encoding="utf-8-sig")
