"""Core types for the factory simulation."""

from enum import Enum

from pydantic import BaseModel


class Position(BaseModel, frozen=True):
    """Immutable 2D map coordinate."""

    x: int
    y: int

    def distance_to(self, other: "Position") -> float:
        """Euclidean distance to another position."""
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5

    def mirrored(self, width: int, height: int) -> "Position":
        """Return the point reflected through the map center."""
        return Position(x=width - self.x, y=height - self.y)

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"


class Owned(BaseModel, frozen=True):
    """Ownership by a player."""

    player_id: int

    def __str__(self) -> str:
        return f"player {self.player_id}"


class Unowned(BaseModel, frozen=True):
    """Ownership by no one (neutral factory)."""

    def __str__(self) -> str:
        return "neutral"


# Factory owner: exactly one of the two variants, checked with isinstance
Owner = Owned | Unowned

NEUTRAL = Unowned()


def owner_id(owner: Owner) -> int | None:
    """Player id of an owner, or None for neutral."""
    if isinstance(owner, Owned):
        return owner.player_id
    return None


class EntityType(str, Enum):
    """Entity kinds as they appear in player input lines."""

    FACTORY = "FACTORY"
    TROOP = "TROOP"
    BOMB = "BOMB"


class MoveOrder(BaseModel, frozen=True):
    """A validated order to send units from one factory to another."""

    source: int
    destination: int
    units: int


class BombOrder(BaseModel, frozen=True):
    """A validated order to launch a bomb."""

    source: int
    destination: int


class IncreaseOrder(BaseModel, frozen=True):
    """A validated order to raise a factory's production rate."""

    source: int


class PlayerOrders(BaseModel, frozen=True):
    """Everything one player asked for in a single round."""

    moves: tuple[MoveOrder, ...] = ()
    bombs: tuple[BombOrder, ...] = ()
    increases: tuple[IncreaseOrder, ...] = ()
    message: str | None = None

    def is_empty(self) -> bool:
        """True when the player issued no actions."""
        return not (self.moves or self.bombs or self.increases)


NO_ORDERS = PlayerOrders()
