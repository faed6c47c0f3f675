"""Log line parser - converts raw client log lines to typed events."""

import re
from datetime import datetime
from typing import Callable, Optional

from divtrack.core.models import (
    ItemDropped,
    LeagueDetected,
    LogEvent,
    StackedDeckOpened,
    ZoneChanged,
)
from divtrack.parser.patterns import (
    CARD_DROP_PATTERN,
    DIVINATION_MARKUP,
    LEAGUE_PATTERN,
    LINE_PREFIX_PATTERN,
    LOG_TIMESTAMP_FORMAT,
    STACKED_DECK_PATTERN,
    ZONE_PATTERN,
)


class _Malformed(Exception):
    """Recognizer matched but a capture could not be converted."""


def _parse_prefix(line: str) -> tuple[Optional[datetime], Optional[str]]:
    """Extract (timestamp, event_id) from the standard line prefix, if present."""
    match = LINE_PREFIX_PATTERN.match(line)
    if not match:
        return None, None
    try:
        timestamp = datetime.strptime(match.group("timestamp"), LOG_TIMESTAMP_FORMAT)
    except ValueError:
        timestamp = None
    return timestamp, match.group("event_id")


def _positive_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        raise _Malformed(value)
    if number <= 0:
        raise _Malformed(value)
    return number


def _card_drop(match: re.Match, line: str, timestamp, event_id) -> LogEvent:
    return ItemDropped(
        card_name=match.group("card_name").strip(),
        stack_size=_positive_int(match.group("stack_size"), default=1),
        event_id=event_id,
        timestamp=timestamp,
        raw_line=line,
    )


def _stacked_deck(match: re.Match, line: str, timestamp, event_id) -> LogEvent:
    return StackedDeckOpened(event_id=event_id, timestamp=timestamp, raw_line=line)


def _league(match: re.Match, line: str, timestamp, event_id) -> LogEvent:
    return LeagueDetected(name=match.group("league_name"), timestamp=timestamp, raw_line=line)


def _zone(match: re.Match, line: str, timestamp, event_id) -> LogEvent:
    return ZoneChanged(zone_name=match.group("zone_name"), timestamp=timestamp, raw_line=line)


# Most specific first: the stacked deck message is a prefix of the card drop message.
RECOGNIZERS: list[tuple[re.Pattern, Callable[..., LogEvent]]] = [
    (CARD_DROP_PATTERN, _card_drop),
    (STACKED_DECK_PATTERN, _stacked_deck),
    (LEAGUE_PATTERN, _league),
    (ZONE_PATTERN, _zone),
]


def parse_line(line: str) -> Optional[LogEvent]:
    """
    Parse a single client log line into a typed event.

    Recognizers are tried in order and the first match wins. Lines that
    match nothing, and lines whose numeric captures are not positive
    integers, return None. A line carrying card markup that the card drop
    recognizer rejects is malformed and never falls through to another event.

    Args:
        line: Raw log line (may include trailing newline)

    Returns:
        ItemDropped, StackedDeckOpened, LeagueDetected, ZoneChanged or None
    """
    line = line.rstrip("\r\n")

    if not line:
        return None

    for pattern, build in RECOGNIZERS:
        match = pattern.search(line)
        if match:
            timestamp, event_id = _parse_prefix(line)
            try:
                return build(match, line, timestamp, event_id)
            except _Malformed:
                return None
        if pattern is CARD_DROP_PATTERN and DIVINATION_MARKUP in line:
            return None

    return None


def parse_lines(lines: list[str]) -> list[LogEvent]:
    """Parse multiple lines, dropping those that yield no event."""
    events = [parse_line(line) for line in lines]
    return [e for e in events if e is not None]
