"""Compiled regex patterns for client log parsing."""

import re

# Standard client log prefix (date, time, event id, hash, source tag)
# Example: 2025/12/01 02:07:01 219999828 cff945bb [INFO Client 2588] : ...
LINE_PREFIX_PATTERN = re.compile(
    r"^(?P<timestamp>\d{4}/\d{2}/\d{2}\s+\d{2}:\d{2}:\d{2})\s+"
    r"(?P<event_id>\d+)\s+"
    r"\S+\s+"
    r"\[[^\]]*\]"
)

LOG_TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"

# Marker of a card drop line; lines carrying it are never anything else
DIVINATION_MARKUP = "<divination>{"

# Card drop (must be tried before STACKED_DECK_PATTERN - its message is a prefix of this one)
# Example: ... : Card drawn from the deck: <divination>{The Fool}
# Example: ... : Card drawn from the deck: <divination>{The Fool} x3
CARD_DROP_PATTERN = re.compile(
    r"(?:^|\]\s*:\s*)Card drawn from the deck:\s*<divination>\{(?P<card_name>[^}]+)\}"
    r"(?:\s+x(?P<stack_size>\S+))?\s*$"
)

# Stacked deck opened
# Example: ... : Card drawn from the deck
# Example: ... : Stacked Deck opened
STACKED_DECK_PATTERN = re.compile(
    r"(?:^|\]\s*:\s*)(?:Card drawn from the deck|Stacked Deck opened)\s*$"
)

# League reported by the client on login
# Example: ... : Connected to league: Settlers of Kalguur
LEAGUE_PATTERN = re.compile(
    r"(?:^|\]\s*:\s*)Connected to league:\s*(?P<league_name>.+?)\s*$"
)

# Zone transition
# Example: ... : You have entered Lioneye's Watch.
ZONE_PATTERN = re.compile(
    r"(?:^|\]\s*:\s*)You have entered (?P<zone_name>.+?)\.?\s*$"
)
