"""Player output parsing and validation.

A player answers each round with one or more lines. Each line holds actions
separated by ``;``::

    WAIT
    MOVE <src> <dst> <units>
    BOMB <src> <dst>
    INC <src>
    MSG <text>

Keywords are case-insensitive and followed by exactly one space. Arguments are
1 to 8 decimal digits separated by whitespace. An action must match its shape
exactly: no leading or trailing whitespace, no empty actions. A ``;`` only
separates actions when a keyword follows it, so message text may contain
``;``.
"""

import re
from typing import TYPE_CHECKING

import structlog

from .exceptions import (
    InvalidReferenceError,
    MalformedInputError,
    RuleViolationError,
)
from .types import BombOrder, IncreaseOrder, MoveOrder, PlayerOrders

if TYPE_CHECKING:
    from .state import Match

logger = structlog.get_logger()

_FLAGS = re.IGNORECASE | re.ASCII
_NUMBER = "[0-9]{1,8}"

SHAPES = {
    "MOVE": re.compile(
        rf"MOVE (?P<src>{_NUMBER})\s+(?P<dst>{_NUMBER})\s+(?P<units>{_NUMBER})", _FLAGS
    ),
    "BOMB": re.compile(rf"BOMB (?P<src>{_NUMBER})\s+(?P<dst>{_NUMBER})", _FLAGS),
    "INC": re.compile(rf"INC (?P<src>{_NUMBER})", _FLAGS),
    "WAIT": re.compile("WAIT", _FLAGS),
    "MSG": re.compile("MSG (?P<message>.*)", _FLAGS),
}

_SEPARATOR = re.compile(r"\s*;\s*(?=WAIT|MOVE|BOMB|INC|MSG)", _FLAGS)


def split_actions(line: str) -> list[str]:
    """Split one output line into action strings.

    Only a ``;`` followed by a keyword separates actions; whitespace around it
    is consumed. Anything else, including a dangling ``;``, stays inside the
    action and later fails to match its shape.
    """
    return _SEPARATOR.split(line)


def tokenize_action(player_id: int, action: str) -> tuple[str, re.Match[str]]:
    """Match an action string against one of the five shapes.

    Returns (keyword, match) with the arguments as named groups.

    Raises:
        MalformedInputError: If the action has no valid shape.
    """
    for keyword, shape in SHAPES.items():
        found = shape.fullmatch(action)
        if found is not None:
            return keyword, found
    raise MalformedInputError(player_id, f"expected a valid action, got {action!r}")


class OrderParser:
    """Validates one player's actions against the current match."""

    def __init__(self, match: "Match", player_id: int):
        self.match = match
        self.player_id = player_id
        self.moves: list[MoveOrder] = []
        self.bombs: list[BombOrder] = []
        self.increases: list[IncreaseOrder] = []
        self.message: str | None = None

    def _check_reference(self, factory_id: int, role: str) -> None:
        count = self.match.factory_count
        if factory_id >= count:
            raise InvalidReferenceError(
                self.player_id, f"expected 0 <= {role} < {count}, got {factory_id}"
            )

    def _check_route(self, keyword: str, source: int, destination: int) -> None:
        self._check_reference(source, "source")
        self._check_reference(destination, "destination")
        self._check_owned(keyword, source)
        if source == destination:
            raise RuleViolationError(
                self.player_id,
                "degenerate_route",
                f"{keyword} with same source and destination {source}",
            )

    def _check_owned(self, keyword: str, source: int) -> None:
        if not self.match.get_factory(source).is_owned_by(self.player_id):
            raise RuleViolationError(
                self.player_id,
                "unauthorized_source",
                f"{keyword} from factory {source} not controlled by player",
            )

    def feed(self, action: str) -> None:
        """Validate and record one action."""
        keyword, found = tokenize_action(self.player_id, action)
        rules = self.match.rules

        if keyword == "MSG":
            self.message = found["message"].strip()[: rules.message_max_length]
        elif keyword == "MOVE":
            if rules.move_restriction and self.moves:
                logger.debug("move_dropped_restricted", player_id=self.player_id)
                return
            source, destination = int(found["src"]), int(found["dst"])
            self._check_route(keyword, source, destination)
            self.moves.append(
                MoveOrder(
                    source=source, destination=destination, units=int(found["units"])
                )
            )
        elif keyword == "BOMB":
            source, destination = int(found["src"]), int(found["dst"])
            self._check_route(keyword, source, destination)
            self.bombs.append(BombOrder(source=source, destination=destination))
        elif keyword == "INC":
            if not rules.increase_enabled:
                logger.debug("increase_dropped_disabled", player_id=self.player_id)
                return
            source = int(found["src"])
            self._check_reference(source, "source")
            self._check_owned(keyword, source)
            self.increases.append(IncreaseOrder(source=source))

    def result(self) -> PlayerOrders:
        return PlayerOrders(
            moves=tuple(self.moves),
            bombs=tuple(self.bombs),
            increases=tuple(self.increases),
            message=self.message,
        )


def parse_orders(match: "Match", player_id: int, raw_text: str) -> PlayerOrders:
    """
    Parse one player's output for the round.

    Args:
        match: Current match, used for factory count and ownership
        player_id: The acting player
        raw_text: Player output, possibly several lines

    Returns:
        The validated orders. Only the last MSG is kept.

    Raises:
        MalformedInputError: Text matches no action shape.
        InvalidReferenceError: A factory id is out of range.
        RuleViolationError: Source not owned, or source equals destination.
    """
    parser = OrderParser(match, player_id)
    for line in raw_text.splitlines() or [""]:
        for action in split_actions(line):
            parser.feed(action)
    return parser.result()
