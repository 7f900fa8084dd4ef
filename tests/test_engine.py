"""Tests for the round engine."""

import pytest

from conftest import make_factory, uniform_distances

from factorywar.config import Config, MatchConfig, RulesConfig
from factorywar.encoding import encode_view_frame
from factorywar.engine import (
    dispatch_troops,
    increase_production,
    launch_bombs,
    resolve_combat,
    step,
)
from factorywar.exceptions import (
    InvariantViolationError,
    MatchFinishedError,
    OrderError,
)
from factorywar.state import Match
from factorywar.types import (
    BombOrder,
    IncreaseOrder,
    MoveOrder,
    Owned,
    PlayerOrders,
)


def moves(*triples: tuple[int, int, int]) -> PlayerOrders:
    return PlayerOrders(
        moves=tuple(MoveOrder(source=s, destination=d, units=u) for s, d, u in triples)
    )


def bombs(*pairs: tuple[int, int]) -> PlayerOrders:
    return PlayerOrders(
        bombs=tuple(BombOrder(source=s, destination=d) for s, d in pairs)
    )


class TestMovement:
    """Troop dispatch, travel and arrival."""

    def test_troop_created_with_distance(self, duel: Match):
        step(duel, {0: moves((0, 3, 4))})

        (troop,) = duel.troops.values()
        assert troop.owner == 0
        assert troop.unit_count == 4
        assert troop.remaining_turns == 2
        # 10 - 4 sent, +1 produced
        assert duel.get_factory(0).unit_count == 7

    def test_units_clamped_to_stock(self, duel: Match):
        step(duel, {0: moves((0, 3, 500))})

        (troop,) = duel.troops.values()
        assert troop.unit_count == 10
        assert duel.get_factory(0).unit_count == 1

    def test_zero_unit_move_dropped(self, duel: Match):
        result = step(duel, {1: moves((1, 3, 5))})

        assert len(duel.troops) == 0
        assert result.events_for(1) == []

    def test_same_route_moves_merge(self, duel: Match):
        """Two moves on one route in a round give a single troop with the sum."""
        duel.submit_orders(0, "MOVE 0 3 3;MOVE 0 3 4")
        result = step(duel)

        assert len(duel.troops) == 1
        (troop,) = duel.troops.values()
        assert troop.unit_count == 7
        dispatched = [e for e in result.events if e.kind == "troop_dispatched"]
        assert [e.data["merged"] for e in dispatched] == [False, True]

    def test_different_routes_do_not_merge(self, duel: Match):
        step(duel, {0: moves((0, 3, 3), (0, 4, 3))})

        assert sorted(t.destination for t in duel.troops.values()) == [3, 4]

    def test_moves_in_later_rounds_do_not_merge(self, duel: Match):
        step(duel, {0: moves((0, 3, 3))})
        step(duel, {0: moves((0, 3, 3))})

        assert [t.unit_count for t in duel.troops.values()] == [3, 3]

    def test_capture_after_travel(self, duel: Match):
        """10 units into an empty enemy factory two rounds away take it over."""
        step(duel, {0: moves((0, 1, 10))})
        step(duel)
        assert duel.get_factory(1).is_owned_by(1)

        result = step(duel)

        target = duel.get_factory(1)
        assert target.owner == Owned(player_id=0)
        assert target.unit_count == 10
        assert len(duel.troops) == 0
        captured = [e for e in result.events if e.kind == "factory_captured"]
        assert captured[0].data == {
            "factory_id": 1,
            "previous_owner": 1,
            "units": 10,
        }

    def test_attack_absorbed_by_garrison(self, duel: Match):
        step(duel, {0: moves((0, 3, 10))})
        step(duel)
        step(duel)

        target = duel.get_factory(3)
        assert target.is_neutral
        assert target.unit_count == 10

    def test_exact_garrison_does_not_flip(self, duel: Match):
        duel.get_factory(0).unit_count = 20
        step(duel, {0: moves((0, 3, 20))})
        step(duel)
        step(duel)

        assert duel.get_factory(3).is_neutral
        assert duel.get_factory(3).unit_count == 0

    def test_reinforcement_adds_to_garrison(self, duel: Match):
        step(duel, {1: moves((2, 1, 5))})
        step(duel)
        step(duel)

        assert duel.get_factory(1).unit_count == 5

    def test_simultaneous_arrivals_cancel(self, duel: Match):
        """Equal forces landing together on a neutral factory leave it untouched."""
        step(duel, {0: moves((0, 4, 5)), 1: moves((2, 4, 5))})
        step(duel)
        step(duel)

        target = duel.get_factory(4)
        assert target.is_neutral
        assert target.unit_count == 0
        assert len(duel.troops) == 0

    def test_simultaneous_arrivals_surplus_fights(self, duel: Match):
        step(duel, {0: moves((0, 4, 8)), 1: moves((2, 4, 5))})
        step(duel)
        step(duel)

        target = duel.get_factory(4)
        assert target.is_owned_by(0)
        assert target.unit_count == 3


class TestCombatThreePlayers:
    """Cancellation with more than two players."""

    def test_second_largest_force_cancels(self):
        factories = [
            make_factory(0, owner=0, units=0),
            make_factory(1, owner=1, units=0),
            make_factory(2, owner=2, units=0),
            make_factory(3, units=2),
        ]
        match = Match.from_factories(
            factories, player_count=3, distances=uniform_distances(4, 1)
        )
        for owner, units in ((0, 9), (1, 6), (2, 4)):
            match.launch_troop(owner, owner, 3, units).remaining_turns = 0

        resolve_combat(match)

        target = match.get_factory(3)
        # 9 - 6 = 3 survive, 2 defend
        assert target.is_owned_by(0)
        assert target.unit_count == 1


class TestBombs:
    """Bomb launch, collision rules and detonation."""

    def test_bomb_halves_large_garrison(self, duel: Match):
        """20 units lose max(10, 20 // 2) = 10 and the factory is disabled."""
        step(duel, {0: bombs((0, 3))})
        step(duel)
        result = step(duel)

        target = duel.get_factory(3)
        assert target.unit_count == 10
        assert target.disabled == duel.rules.disable_duration
        assert len(duel.bombs) == 0
        exploded = [e for e in result.events if e.kind == "bomb_exploded"]
        assert exploded[0].data["damage"] == 10

    def test_bomb_minimum_damage(self, duel: Match):
        duel.get_factory(3).unit_count = 14
        step(duel, {0: bombs((0, 3))})
        step(duel)
        step(duel)

        assert duel.get_factory(3).unit_count == 4

    def test_bomb_cannot_go_negative(self, duel: Match):
        step(duel, {0: bombs((0, 4))})
        step(duel)
        step(duel)

        assert duel.get_factory(4).unit_count == 0
        assert duel.get_factory(4).disabled == 5

    def test_disabled_factory_stops_producing(self, duel: Match):
        step(duel, {0: bombs((0, 2))})
        step(duel)
        step(duel)

        target = duel.get_factory(2)
        assert target.disabled == 5
        stock = target.unit_count

        step(duel)

        assert target.disabled == 4
        assert target.unit_count == stock

    def test_production_resumes_after_disable(self, duel: Match):
        duel.get_factory(2).disabled = 1

        step(duel)

        assert duel.get_factory(2).disabled == 0
        assert duel.get_factory(2).unit_count == 21

    def test_bomb_budget_consumed(self, duel: Match):
        step(duel, {0: bombs((0, 1))})

        assert duel.get_player(0).remaining_bombs == 1
        (bomb,) = duel.bombs.values()
        assert (bomb.owner, bomb.source, bomb.destination) == (0, 0, 1)
        assert bomb.remaining_turns == 2

    def test_duplicate_route_dropped_without_cost(self, duel: Match):
        step(duel, {0: bombs((0, 1), (0, 1))})

        assert len(duel.bombs) == 1
        assert duel.get_player(0).remaining_bombs == 1

    def test_no_bombs_beyond_budget(self, duel: Match):
        step(duel, {0: bombs((0, 1), (0, 2), (0, 3))})

        assert len(duel.bombs) == 2
        assert duel.get_player(0).remaining_bombs == 0

    def test_move_on_bomb_route_wastes_units(self, duel: Match):
        """Units are taken before the route check, so the move is lost."""
        orders = {
            0: PlayerOrders(
                bombs=(BombOrder(source=0, destination=3),),
                moves=(MoveOrder(source=0, destination=3, units=4),),
            )
        }
        launch_bombs(duel, orders)
        events = dispatch_troops(duel, orders)

        assert len(duel.troops) == 0
        assert duel.get_factory(0).unit_count == 6
        assert events[0].kind == "move_rejected"
        assert events[0].data["reason"] == "bomb_on_route"

    def test_move_on_other_route_than_bomb(self, duel: Match):
        step(
            duel,
            {
                0: PlayerOrders(
                    bombs=(BombOrder(source=0, destination=3),),
                    moves=(MoveOrder(source=0, destination=4, units=4),),
                )
            },
        )

        assert len(duel.troops) == 1


class TestPlayerRoundOrders:
    """Orders and messages recorded on the player by each round."""

    def test_explicit_orders_recorded(self, duel: Match):
        orders = PlayerOrders(
            moves=(MoveOrder(source=0, destination=3, units=2),), message="hello"
        )

        step(duel, {0: orders})

        player = duel.get_player(0)
        assert player.orders == orders
        assert player.message == "hello"
        assert encode_view_frame(duel)[0] == "11 2 hello"

    def test_message_lasts_one_round(self, duel: Match):
        duel.submit_orders(0, "MSG hi")
        step(duel)
        assert duel.get_player(0).message == "hi"

        step(duel)

        assert duel.get_player(0).message is None
        assert duel.get_player(0).orders.is_empty()

    def test_submitted_orders_not_replayed(self, duel: Match):
        duel.submit_orders(0, "MOVE 0 3 2")
        step(duel)
        step(duel)

        assert len(duel.troops) == 1

    def test_explicit_orders_discard_queued_ones(self, duel: Match):
        duel.submit_orders(0, "MOVE 0 3 2")

        step(duel, {})

        assert len(duel.troops) == 0
        assert duel.take_pending_orders() == {}


class TestIncrease:
    """Production increase orders."""

    def test_increase_with_exact_cost(self, duel: Match):
        orders = {0: PlayerOrders(increases=(IncreaseOrder(source=0),))}

        events = increase_production(duel, orders)

        factory = duel.get_factory(0)
        assert factory.unit_count == 0
        assert factory.production_rate == 2
        assert events[0].data == {"factory_id": 0, "rate": 2}

    def test_increase_one_unit_short(self, duel: Match):
        duel.get_factory(0).unit_count = 9
        orders = {0: PlayerOrders(increases=(IncreaseOrder(source=0),))}

        events = increase_production(duel, orders)

        factory = duel.get_factory(0)
        assert factory.unit_count == 9
        assert factory.production_rate == 1
        assert events == []
        assert duel.get_player(0).eliminated is False

    def test_increase_at_max_rate(self, duel: Match):
        factory = duel.get_factory(0)
        factory.production_rate = 3
        orders = {0: PlayerOrders(increases=(IncreaseOrder(source=0),))}

        increase_production(duel, orders)

        assert factory.production_rate == 3
        assert factory.unit_count == 10

    def test_increase_then_produce(self, duel: Match):
        step(duel, {0: PlayerOrders(increases=(IncreaseOrder(source=0),))})

        factory = duel.get_factory(0)
        assert factory.production_rate == 2
        assert factory.unit_count == 2


class TestProductionAndScore:
    """Production and scoring phases."""

    def test_owned_factories_produce(self, duel: Match):
        step(duel)

        assert duel.get_factory(0).unit_count == 11
        assert duel.get_factory(2).unit_count == 21

    def test_neutral_factories_do_not_produce(self, duel: Match):
        step(duel)

        assert duel.get_factory(3).unit_count == 20

    def test_score_counts_factories_and_troops(self, duel: Match):
        step(duel, {1: moves((2, 4, 5))})

        # 16 at home + 5 in flight + 0 at factory 1
        assert duel.get_player(1).score == 21
        assert duel.get_player(0).score == 11

    def test_bombs_do_not_score(self, duel: Match):
        step(duel, {0: bombs((0, 1))})

        assert duel.get_player(0).score == 11


class TestEndConditions:
    """Elimination and match over."""

    def test_no_units_no_production_ends_match(self):
        factories = [
            make_factory(0, owner=0, units=5, rate=1),
            make_factory(1, owner=1, units=0, rate=0),
            make_factory(2),
        ]
        match = Match.from_factories(factories, distances=uniform_distances(3, 1))

        result = step(match)

        assert result.eliminated == [1]
        assert result.is_terminal
        assert result.outcome is not None
        assert result.outcome.winner == 0
        assert result.outcome.reason == "last_player_standing"
        assert match.get_factory(1).is_neutral

    def test_zero_score_with_production_survives(self):
        factories = [
            make_factory(0, owner=0, units=5, rate=1),
            make_factory(1, owner=1, units=0, rate=1, disabled=3),
            make_factory(2),
        ]
        match = Match.from_factories(factories, distances=uniform_distances(3, 1))

        result = step(match)

        assert result.outcome is None
        assert not result.is_terminal
        assert match.get_player(1).eliminated is False

    def test_units_in_flight_keep_player_alive(self, duel: Match):
        duel.get_factory(2).production_rate = 0
        step(duel, {1: moves((2, 3, 20))})

        assert duel.get_player(1).eliminated is False

    def test_fatal_order_ends_match_next_round(self, duel: Match):
        with pytest.raises(OrderError):
            duel.submit_orders(0, "MOVE 99 1 5")

        result = step(duel)

        assert result.outcome is not None
        assert result.outcome.winner == 1
        eliminated = [e for e in result.events if e.kind == "player_eliminated"]
        assert eliminated[0].player_id == 0
        assert eliminated[0].data == {"reason": "invalid_reference"}

    def test_eliminated_player_orders_ignored(self, duel: Match):
        duel.mark_timeout(0)

        step(duel, {0: moves((0, 3, 5))})

        assert len(duel.troops) == 0

    def test_step_after_match_over_raises(self, duel: Match):
        duel.mark_timeout(0)
        step(duel)

        with pytest.raises(MatchFinishedError):
            step(duel)

    def test_all_eliminated_is_draw(self, duel: Match):
        duel.mark_timeout(0)
        duel.mark_timeout(1)

        result = step(duel)

        assert result.outcome is not None
        assert result.outcome.is_draw
        assert result.outcome.reason == "all_eliminated"


class TestInvariants:
    """Broken invariants abort the round."""

    def test_invalid_state_raises(self):
        factories = [
            make_factory(0, owner=0, units=10, rate=1),
            make_factory(1, owner=1, units=10, rate=1),
            make_factory(2, units=5),
        ]
        match = Match.from_factories(
            factories,
            rules=RulesConfig(disable_duration=-1),
            distances=uniform_distances(3, 1),
        )
        step(match, {0: bombs((0, 2))})

        with pytest.raises(InvariantViolationError):
            step(match)


class TestRoundProperties:
    """Properties that hold for every round."""

    @pytest.mark.parametrize("seed", range(8))
    def test_units_never_created_by_combat(self, seed: int):
        """Board units grow by at most the production of owned factories."""
        match = Match.create(Config(match=MatchConfig(seed=seed)))
        rules = match.rules

        for round_index in range(40):
            if match.is_over:
                break
            orders = {}
            for player in match.active_players():
                owned = match.factories_of(player.player_id)
                if not owned:
                    continue
                source = owned[round_index % len(owned)]
                target = (source.factory_id + 1 + round_index) % match.factory_count
                if target == source.factory_id:
                    target = (target + 1) % match.factory_count
                orders[player.player_id] = PlayerOrders(
                    moves=(
                        MoveOrder(
                            source=source.factory_id,
                            destination=target,
                            units=source.unit_count // 2 + 1,
                        ),
                    ),
                    bombs=(BombOrder(source=source.factory_id, destination=target),)
                    if round_index % 7 == 3
                    else (),
                    increases=(IncreaseOrder(source=source.factory_id),),
                )

            before = match.units_on_board()
            ceiling = sum(
                rules.max_production_rate
                for f in match.factories
                if isinstance(f.owner, Owned)
            )

            step(match, orders)

            assert match.units_on_board() <= before + ceiling

    def test_same_seed_same_game(self):
        """Identical seeds and orders give identical states."""

        def play() -> list[tuple]:
            match = Match.create(Config(match=MatchConfig(seed=99)))
            for _ in range(10):
                step(match, {0: moves((1, 0, 3)), 1: moves((2, 0, 3))})
            return [
                (f.owner, f.unit_count, f.production_rate) for f in match.factories
            ] + [(t.troop_id, t.unit_count) for t in match.troops.values()]

        assert play() == play()
