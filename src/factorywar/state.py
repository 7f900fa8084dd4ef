"""Match state management."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import structlog
from pydantic import BaseModel, Field, PrivateAttr

from .config import Config, RulesConfig
from .distances import DistanceTable
from .exceptions import OrderError, PlayerNotFoundError
from .orders import parse_orders
from .types import NEUTRAL, NO_ORDERS, Owned, Owner, PlayerOrders, Position

logger = structlog.get_logger()


class IdAllocator:
    """Hands out increasing entity ids for one match."""

    def __init__(self, start: int = 0):
        self._next = start

    def allocate(self) -> int:
        """Return the next unused id."""
        entity_id = self._next
        self._next += 1
        return entity_id

    @property
    def next_id(self) -> int:
        """The id the next allocation will return."""
        return self._next


class Factory(BaseModel, validate_assignment=True):
    """A stationary node that stores and produces units.

    Constraints are checked on every assignment, so a mutation that would
    leave a negative stock raises instead of clamping.
    """

    factory_id: int = Field(frozen=True)
    position: Position = Field(frozen=True)
    radius: int = Field(frozen=True)
    owner: Owner = NEUTRAL
    unit_count: int = Field(default=0, ge=0)
    production_rate: int = Field(default=0, ge=0)
    disabled: int = Field(default=0, ge=0)

    @property
    def is_neutral(self) -> bool:
        return not isinstance(self.owner, Owned)

    def is_owned_by(self, player_id: int) -> bool:
        """Check whether the given player owns this factory."""
        return isinstance(self.owner, Owned) and self.owner.player_id == player_id

    def effective_production_rate(self) -> int:
        """Units produced per round: 0 while disabled."""
        return 0 if self.disabled > 0 else self.production_rate


class Troop(BaseModel, validate_assignment=True):
    """Units in flight between two factories."""

    troop_id: int = Field(frozen=True)
    owner: int = Field(frozen=True)
    source: int = Field(frozen=True)
    destination: int = Field(frozen=True)
    unit_count: int = Field(gt=0)
    remaining_turns: int

    def advance(self) -> None:
        self.remaining_turns -= 1

    @property
    def has_arrived(self) -> bool:
        return self.remaining_turns <= 0


class Bomb(BaseModel, validate_assignment=True):
    """A bomb in flight between two factories."""

    bomb_id: int = Field(frozen=True)
    owner: int = Field(frozen=True)
    source: int = Field(frozen=True)
    destination: int = Field(frozen=True)
    remaining_turns: int

    def advance(self) -> None:
        self.remaining_turns -= 1

    @property
    def has_arrived(self) -> bool:
        return self.remaining_turns <= 0


class Player(BaseModel, validate_assignment=True):
    """A seat in the match.

    Players hold no entity references; use the Match accessors to find what
    a player owns.
    """

    player_id: int = Field(frozen=True)
    score: int = Field(default=0, ge=0)
    remaining_bombs: int = Field(default=0, ge=0)
    message: str | None = None
    orders: PlayerOrders = NO_ORDERS
    eliminated: bool = False
    elimination_reason: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.eliminated


@dataclass
class Event:
    """Something that happened during a round, for reporting."""

    kind: str
    player_id: int | None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class MatchOutcome:
    """Final verdict of a match. winner is None for a draw."""

    winner: int | None
    reason: str
    round: int
    scores: dict[int, int] = field(default_factory=dict)

    @property
    def is_draw(self) -> bool:
        return self.winner is None


class Match(BaseModel):
    """
    Mutable state of one match.

    Owns every factory, troop and bomb. Factory ids equal their index.
    Troops and bombs are kept in launch order.
    """

    rules: RulesConfig = Field(default_factory=RulesConfig)
    seed: int = 0
    round: int = 0

    _players: list[Player] = PrivateAttr(default_factory=list)
    _factories: list[Factory] = PrivateAttr(default_factory=list)
    _distances: DistanceTable | None = PrivateAttr(default=None)
    _troops: dict[int, Troop] = PrivateAttr(default_factory=dict)
    _bombs: dict[int, Bomb] = PrivateAttr(default_factory=dict)
    _new_troops: list[Troop] = PrivateAttr(default_factory=list)
    _new_bombs: list[Bomb] = PrivateAttr(default_factory=list)
    _pending_events: list[Event] = PrivateAttr(default_factory=list)
    _pending_orders: dict[int, PlayerOrders] = PrivateAttr(default_factory=dict)
    _ids: IdAllocator = PrivateAttr(default_factory=IdAllocator)
    _outcome: MatchOutcome | None = PrivateAttr(default=None)

    # --- Construction ---

    @classmethod
    def create(cls, config: Config | None = None) -> "Match":
        """Build a fresh match: resolve the seed, seat players, generate the map."""
        from .mapgen import generate_map

        config = config or Config()
        rules = config.resolved_rules()
        seed = config.match.seed
        if seed is None:
            seed = int(np.random.default_rng().integers(0, 2**63 - 1))

        ids = IdAllocator()
        generated = generate_map(
            seed,
            factory_count=config.match.factory_count,
            initial_unit_count=config.match.initial_unit_count,
            rules=rules,
            ids=ids,
        )
        match = cls.from_factories(
            generated.factories,
            rules=rules,
            seed=seed,
            player_count=config.match.player_count,
            distances=generated.distances,
            ids=ids,
        )
        logger.info(
            "match_created",
            seed=seed,
            factory_count=len(generated.factories),
            player_count=config.match.player_count,
        )
        return match

    @classmethod
    def from_factories(
        cls,
        factories: Sequence[Factory],
        rules: RulesConfig | None = None,
        seed: int = 0,
        player_count: int = 2,
        distances: DistanceTable | None = None,
        ids: IdAllocator | None = None,
    ) -> "Match":
        """Build a match around an existing layout.

        Factory ids must be 0..n-1 in order. When no allocator is given, a new
        one starts after the highest factory id.
        """
        rules = rules or RulesConfig()
        for index, factory in enumerate(factories):
            if factory.factory_id != index:
                raise ValueError(
                    f"Factory at index {index} has id {factory.factory_id}"
                )
        if distances is None:
            distances = DistanceTable.from_factories(factories, rules.distance_unit)
        if distances.size != len(factories):
            raise ValueError(
                f"Distance table covers {distances.size} factories, "
                f"map has {len(factories)}"
            )

        match = cls(rules=rules, seed=seed)
        match._factories = list(factories)
        match._distances = distances
        if ids is not None and ids.next_id < len(factories):
            raise ValueError(
                f"Id allocator would reuse factory ids (next id {ids.next_id})"
            )
        match._ids = ids or IdAllocator(start=len(factories))
        match._players = [
            Player(player_id=i, remaining_bombs=rules.bombs_per_player)
            for i in range(player_count)
        ]
        match.recompute_scores()
        return match

    # --- Players ---

    @property
    def players(self) -> Sequence[Player]:
        """All seated players in id order."""
        return self._players

    def get_player(self, player_id: int) -> Player:
        """Get player by id.

        Raises:
            PlayerNotFoundError: If the id is not seated.
        """
        if not 0 <= player_id < len(self._players):
            raise PlayerNotFoundError(f"Player {player_id} not found")
        return self._players[player_id]

    def active_players(self) -> list[Player]:
        """Players still in contention, ascending id."""
        return [p for p in self._players if p.is_active]

    def submit_orders(self, player_id: int, raw_text: str) -> PlayerOrders:
        """Parse a player's output and queue the orders for the next round.

        The orders replace any queued earlier in the same round. They reach
        `Player.orders` and `Player.message` when the round is stepped.

        Raises:
            OrderError: If the output is fatal; the player is eliminated first.
        """
        self.get_player(player_id)
        self._pending_orders.pop(player_id, None)
        try:
            orders = parse_orders(self, player_id, raw_text)
        except OrderError as exc:
            logger.warning(
                "order_rejected",
                player_id=player_id,
                code=exc.code,
                detail=exc.detail,
            )
            self.eliminate(player_id, exc.code)
            raise
        self._pending_orders[player_id] = orders
        return orders

    def take_pending_orders(self) -> dict[int, PlayerOrders]:
        """Return and clear the orders queued by submit_orders."""
        pending = self._pending_orders
        self._pending_orders = {}
        return pending

    def mark_timeout(self, player_id: int) -> None:
        """A player that did not answer is treated like a fatal order."""
        self.eliminate(player_id, "timeout")

    def eliminate(self, player_id: int, reason: str) -> None:
        """Remove a player from contention with all its factories and troops."""
        player = self.get_player(player_id)
        if player.eliminated:
            return

        for factory in self.factories_of(player_id):
            factory.owner = NEUTRAL
        for troop in self.troops_of(player_id):
            self.remove_troop(troop.troop_id)
        self._pending_orders.pop(player_id, None)

        player.score = 0
        player.orders = NO_ORDERS
        player.eliminated = True
        player.elimination_reason = reason

        self._pending_events.append(
            Event("player_eliminated", player_id, {"reason": reason})
        )
        logger.info("player_eliminated", player_id=player_id, reason=reason)

    def drain_events(self) -> list[Event]:
        """Return and clear events recorded outside a round step."""
        events = self._pending_events
        self._pending_events = []
        return events

    # --- Factories ---

    @property
    def factories(self) -> Sequence[Factory]:
        """All factories, indexed by id."""
        return self._factories

    @property
    def factory_count(self) -> int:
        return len(self._factories)

    def get_factory(self, factory_id: int) -> Factory:
        """Get factory by id.

        Raises:
            IndexError: If the id is out of range.
        """
        if not 0 <= factory_id < len(self._factories):
            raise IndexError(f"Factory {factory_id} out of range")
        return self._factories[factory_id]

    def factories_of(self, player_id: int) -> list[Factory]:
        """Factories currently owned by a player."""
        return [f for f in self._factories if f.is_owned_by(player_id)]

    @property
    def distances(self) -> DistanceTable:
        if self._distances is None:
            raise RuntimeError("Match has no map")
        return self._distances

    # --- Troops and bombs ---

    @property
    def troops(self) -> Mapping[int, Troop]:
        """Read-only view of troops in flight, in launch order."""
        return self._troops

    @property
    def bombs(self) -> Mapping[int, Bomb]:
        """Read-only view of bombs in flight, in launch order."""
        return self._bombs

    @property
    def new_troops(self) -> Sequence[Troop]:
        """Troops launched during the current round."""
        return self._new_troops

    @property
    def new_bombs(self) -> Sequence[Bomb]:
        """Bombs launched during the current round."""
        return self._new_bombs

    def troops_of(self, player_id: int) -> list[Troop]:
        return [t for t in self._troops.values() if t.owner == player_id]

    def bombs_of(self, player_id: int) -> list[Bomb]:
        return [b for b in self._bombs.values() if b.owner == player_id]

    def launch_troop(
        self, player_id: int, source: int, destination: int, units: int
    ) -> Troop:
        """Create a troop on the source -> destination edge."""
        troop = Troop(
            troop_id=self._ids.allocate(),
            owner=player_id,
            source=source,
            destination=destination,
            unit_count=units,
            remaining_turns=self.distances.distance(source, destination),
        )
        self._troops[troop.troop_id] = troop
        self._new_troops.append(troop)
        return troop

    def launch_bomb(self, player_id: int, source: int, destination: int) -> Bomb:
        """Create a bomb on the source -> destination edge."""
        bomb = Bomb(
            bomb_id=self._ids.allocate(),
            owner=player_id,
            source=source,
            destination=destination,
            remaining_turns=self.distances.distance(source, destination),
        )
        self._bombs[bomb.bomb_id] = bomb
        self._new_bombs.append(bomb)
        return bomb

    def remove_troop(self, troop_id: int) -> Troop:
        """Remove and return a troop.

        Raises:
            KeyError: If the troop is not in flight.
        """
        return self._troops.pop(troop_id)

    def remove_bomb(self, bomb_id: int) -> Bomb:
        """Remove and return a bomb.

        Raises:
            KeyError: If the bomb is not in flight.
        """
        return self._bombs.pop(bomb_id)

    # --- Round bookkeeping ---

    def begin_round(self) -> None:
        """Forget the previous round's launches."""
        self._new_troops = []
        self._new_bombs = []

    def advance_round(self) -> None:
        """Increment round counter."""
        self.round += 1

    def recompute_scores(self) -> None:
        """Score = units in owned factories plus units in owned troops."""
        totals = {p.player_id: 0 for p in self._players}
        for factory in self._factories:
            if isinstance(factory.owner, Owned) and factory.owner.player_id in totals:
                totals[factory.owner.player_id] += factory.unit_count
        for troop in self._troops.values():
            if troop.owner in totals:
                totals[troop.owner] += troop.unit_count
        for player in self._players:
            player.score = 0 if player.eliminated else totals[player.player_id]

    def production_of(self, player_id: int) -> int:
        """Summed base production rate over a player's factories."""
        return sum(f.production_rate for f in self.factories_of(player_id))

    def units_on_board(self) -> int:
        """Garrisons plus units in flight."""
        return sum(f.unit_count for f in self._factories) + sum(
            t.unit_count for t in self._troops.values()
        )

    # --- Outcome ---

    @property
    def outcome(self) -> MatchOutcome | None:
        return self._outcome

    @property
    def is_over(self) -> bool:
        return self._outcome is not None

    def finish(self, winner: int | None, reason: str) -> MatchOutcome:
        """Record the final verdict."""
        self._outcome = MatchOutcome(
            winner=winner,
            reason=reason,
            round=self.round,
            scores={p.player_id: p.score for p in self._players},
        )
        logger.info("match_over", winner=winner, reason=reason, round=self.round)
        return self._outcome

    def finish_round_limit(self) -> MatchOutcome:
        """End the match at the round cap: highest score wins, ties draw."""
        if self._outcome is not None:
            return self._outcome
        best = max(p.score for p in self._players)
        leaders = [p.player_id for p in self._players if p.score == best]
        winner = leaders[0] if len(leaders) == 1 else None
        return self.finish(winner, "round_limit")
