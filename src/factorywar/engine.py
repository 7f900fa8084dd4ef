"""Round engine: one discrete state transition per call.

Phases run in a fixed order:

1. advance troops and bombs
2. decay disable countdowns
3. launch bombs
4. dispatch troops
5. increase production
6. produce
7. resolve arrivals and combat
8. detonate bombs
9. score
10. check end conditions
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError

from .exceptions import InvariantViolationError, MatchFinishedError
from .state import Event, Match, MatchOutcome
from .types import NO_ORDERS, Owned, PlayerOrders, owner_id

logger = structlog.get_logger()


@dataclass
class RoundResult:
    """Result of a completed round."""

    round: int
    events: list[Event] = field(default_factory=list)
    eliminated: list[int] = field(default_factory=list)
    outcome: MatchOutcome | None = None
    duration_ms: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None

    def events_for(self, player_id: int) -> list[Event]:
        """Events caused by, or happening to, a player."""
        return [e for e in self.events if e.player_id == player_id]


def _orders_for(
    match: Match, orders_by_player: Mapping[int, PlayerOrders] | None
) -> dict[int, PlayerOrders]:
    """Capture every active player's orders before the round starts.

    Orders queued by submit_orders are consumed either way. The captured
    orders and their message become the player's orders for this round.
    """
    pending = match.take_pending_orders()
    source = pending if orders_by_player is None else orders_by_player
    captured: dict[int, PlayerOrders] = {}
    for player in match.active_players():
        orders = source.get(player.player_id, NO_ORDERS)
        player.orders = orders
        player.message = orders.message
        captured[player.player_id] = orders
    return captured


def advance_movement(match: Match) -> None:
    """Phase 1: everything in flight gets one round closer."""
    for troop in match.troops.values():
        troop.advance()
    for bomb in match.bombs.values():
        bomb.advance()


def decay_disable(match: Match) -> None:
    """Phase 2: bombed factories recover one round."""
    for factory in match.factories:
        if factory.disabled > 0:
            factory.disabled -= 1


def launch_bombs(match: Match, orders: dict[int, PlayerOrders]) -> list[Event]:
    """Phase 3: launch bombs within budget, one per route per round."""
    events: list[Event] = []
    for player_id in sorted(orders):
        player = match.get_player(player_id)
        for order in orders[player_id].bombs:
            if player.remaining_bombs <= 0:
                logger.debug("bomb_dropped_no_budget", player_id=player_id)
                continue
            if any(
                b.source == order.source and b.destination == order.destination
                for b in match.new_bombs
            ):
                logger.debug(
                    "bomb_dropped_duplicate_route",
                    player_id=player_id,
                    source=order.source,
                    destination=order.destination,
                )
                continue
            bomb = match.launch_bomb(player_id, order.source, order.destination)
            player.remaining_bombs -= 1
            events.append(
                Event(
                    "bomb_launched",
                    player_id,
                    {
                        "bomb_id": bomb.bomb_id,
                        "source": bomb.source,
                        "destination": bomb.destination,
                    },
                )
            )
    return events


def dispatch_troops(match: Match, orders: dict[int, PlayerOrders]) -> list[Event]:
    """
    Phase 4: send units.

    Units are taken from the source before the bomb-route check, so a move
    on the same route as a bomb launched this round loses its units.
    Moves sharing (owner, source, destination) merge into one troop.
    """
    events: list[Event] = []
    for player_id in sorted(orders):
        for order in orders[player_id].moves:
            source = match.get_factory(order.source)
            units = min(source.unit_count, order.units)
            if units <= 0:
                continue

            source.unit_count -= units

            if any(
                b.source == order.source and b.destination == order.destination
                for b in match.new_bombs
            ):
                events.append(
                    Event(
                        "move_rejected",
                        player_id,
                        {
                            "source": order.source,
                            "destination": order.destination,
                            "units": units,
                            "reason": "bomb_on_route",
                        },
                    )
                )
                logger.debug(
                    "move_rejected_bomb_route",
                    player_id=player_id,
                    source=order.source,
                    destination=order.destination,
                    units_lost=units,
                )
                continue

            existing = next(
                (
                    t
                    for t in match.new_troops
                    if t.owner == player_id
                    and t.source == order.source
                    and t.destination == order.destination
                ),
                None,
            )
            if existing is not None:
                existing.unit_count += units
                troop = existing
                merged = True
            else:
                troop = match.launch_troop(
                    player_id, order.source, order.destination, units
                )
                merged = False

            events.append(
                Event(
                    "troop_dispatched",
                    player_id,
                    {
                        "troop_id": troop.troop_id,
                        "source": order.source,
                        "destination": order.destination,
                        "units": units,
                        "merged": merged,
                    },
                )
            )
    return events


def increase_production(match: Match, orders: dict[int, PlayerOrders]) -> list[Event]:
    """Phase 5: pay the increase cost to raise a factory's rate."""
    rules = match.rules
    events: list[Event] = []
    for player_id in sorted(orders):
        for order in orders[player_id].increases:
            factory = match.get_factory(order.source)
            if factory.unit_count < rules.increase_cost:
                continue
            if factory.production_rate >= rules.max_production_rate:
                continue
            factory.unit_count -= rules.increase_cost
            factory.production_rate += 1
            events.append(
                Event(
                    "production_increased",
                    player_id,
                    {"factory_id": factory.factory_id, "rate": factory.production_rate},
                )
            )
    return events


def produce(match: Match) -> None:
    """Phase 6: owned factories grow by their effective rate."""
    for factory in match.factories:
        if isinstance(factory.owner, Owned):
            factory.unit_count += factory.effective_production_rate()


def resolve_combat(match: Match) -> list[Event]:
    """
    Phase 7: land arriving troops and fight.

    Opposing arrivals cancel first: the second largest force is removed from
    every force, leaving at most one player with a surplus. The surplus then
    reinforces an allied garrison or attacks it.
    """
    arriving: dict[int, dict[int, int]] = {}
    for troop in [t for t in match.troops.values() if t.has_arrived]:
        match.remove_troop(troop.troop_id)
        forces = arriving.setdefault(troop.destination, {})
        forces[troop.owner] = forces.get(troop.owner, 0) + troop.unit_count

    events: list[Event] = []
    for factory_id in sorted(arriving):
        forces = arriving[factory_id]
        factory = match.get_factory(factory_id)

        ranked = sorted(forces.values(), reverse=True)
        cancelled = ranked[1] if len(ranked) > 1 else 0

        for player_id in sorted(forces):
            surplus = forces[player_id] - cancelled
            if surplus <= 0:
                continue

            if factory.is_owned_by(player_id):
                factory.unit_count += surplus
            elif surplus > factory.unit_count:
                previous = owner_id(factory.owner)
                remaining = surplus - factory.unit_count
                factory.owner = Owned(player_id=player_id)
                factory.unit_count = remaining
                events.append(
                    Event(
                        "factory_captured",
                        player_id,
                        {
                            "factory_id": factory_id,
                            "previous_owner": previous,
                            "units": remaining,
                        },
                    )
                )
                logger.debug(
                    "factory_captured",
                    factory_id=factory_id,
                    player_id=player_id,
                    previous_owner=previous,
                )
            else:
                factory.unit_count -= surplus
    return events


def detonate_bombs(match: Match) -> list[Event]:
    """Phase 8: arriving bombs destroy units and disable the target."""
    rules = match.rules
    events: list[Event] = []
    for bomb in [b for b in match.bombs.values() if b.has_arrived]:
        match.remove_bomb(bomb.bomb_id)
        target = match.get_factory(bomb.destination)
        damage = min(target.unit_count, max(10, target.unit_count // 2))
        target.unit_count -= damage
        target.disabled = rules.disable_duration
        events.append(
            Event(
                "bomb_exploded",
                bomb.owner,
                {
                    "bomb_id": bomb.bomb_id,
                    "factory_id": target.factory_id,
                    "damage": damage,
                },
            )
        )
    return events


def check_end(match: Match) -> tuple[list[int], MatchOutcome | None]:
    """
    Phase 10: eliminate players with nothing left, decide if the match is over.

    A player is out when it has no units anywhere and no production.
    The match ends once at most one player remains.
    """
    eliminated: list[int] = []
    for player in match.active_players():
        if player.score == 0 and match.production_of(player.player_id) == 0:
            match.eliminate(player.player_id, "no_units")
            eliminated.append(player.player_id)

    survivors = match.active_players()
    if len(survivors) > 1:
        return eliminated, None

    if survivors:
        return eliminated, match.finish(survivors[0].player_id, "last_player_standing")
    return eliminated, match.finish(None, "all_eliminated")


def step(
    match: Match, orders_by_player: Mapping[int, PlayerOrders] | None = None
) -> RoundResult:
    """
    Advance the match by exactly one round.

    Args:
        match: The match state, mutated in place
        orders_by_player: Validated orders per player id. When omitted, the
            orders queued by Match.submit_orders are used.

    Returns:
        RoundResult with the round's events and the outcome if the match ended

    Raises:
        MatchFinishedError: If the match already has an outcome
        InvariantViolationError: If an entity constraint breaks mid-round
    """
    if match.is_over:
        raise MatchFinishedError(f"Match ended at round {match.round}")

    start = time.time()
    orders = _orders_for(match, orders_by_player)
    events = match.drain_events()

    try:
        match.begin_round()
        advance_movement(match)
        decay_disable(match)
        events += launch_bombs(match, orders)
        events += dispatch_troops(match, orders)
        events += increase_production(match, orders)
        produce(match)
        events += resolve_combat(match)
        events += detonate_bombs(match)
        match.recompute_scores()
    except ValidationError as exc:
        raise InvariantViolationError(
            f"Invariant broken in round {match.round}: {exc}"
        ) from exc

    eliminated, outcome = check_end(match)
    events += match.drain_events()

    result = RoundResult(
        round=match.round,
        events=events,
        eliminated=eliminated,
        outcome=outcome,
        duration_ms=(time.time() - start) * 1000,
    )

    logger.debug(
        "round_processed",
        round=match.round,
        idle_players=[pid for pid, o in orders.items() if o.is_empty()],
        troops_in_flight=len(match.troops),
        bombs_in_flight=len(match.bombs),
        scores={p.player_id: p.score for p in match.players},
        duration_ms=result.duration_ms,
    )

    match.advance_round()
    return result
