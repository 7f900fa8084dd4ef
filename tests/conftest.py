"""Shared test fixtures for simulation tests."""

import pytest

from factorywar.config import RulesConfig
from factorywar.distances import DistanceTable
from factorywar.state import Factory, Match
from factorywar.types import NEUTRAL, Owned, Position


def make_factory(
    factory_id: int,
    owner: int | None = None,
    units: int = 0,
    rate: int = 0,
    disabled: int = 0,
) -> Factory:
    """Factory on a horizontal line; positions only matter for distance tests."""
    return Factory(
        factory_id=factory_id,
        position=Position(x=1000 + factory_id * 3000, y=3000),
        radius=600,
        owner=NEUTRAL if owner is None else Owned(player_id=owner),
        unit_count=units,
        production_rate=rate,
        disabled=disabled,
    )


def uniform_distances(count: int, distance: int) -> DistanceTable:
    """Every pair of factories the same number of rounds apart."""
    return DistanceTable.from_rows(
        [[0 if a == b else distance for b in range(count)] for a in range(count)]
    )


@pytest.fixture
def rules() -> RulesConfig:
    """Full ruleset."""
    return RulesConfig()


@pytest.fixture
def duel(rules: RulesConfig) -> Match:
    """Five factories, every pair two rounds apart.

        0: player 0, 10 units, rate 1
        1: player 1,  0 units, rate 0
        2: player 1, 20 units, rate 1
        3: neutral,  20 units, rate 2
        4: neutral,   0 units, rate 0
    """
    factories = [
        make_factory(0, owner=0, units=10, rate=1),
        make_factory(1, owner=1, units=0, rate=0),
        make_factory(2, owner=1, units=20, rate=1),
        make_factory(3, units=20, rate=2),
        make_factory(4, units=0, rate=0),
    ]
    return Match.from_factories(
        factories, rules=rules, distances=uniform_distances(5, 2)
    )


@pytest.fixture
def restricted_duel() -> Match:
    """Same layout as duel, played with the most restricted league rules."""
    factories = [
        make_factory(0, owner=0, units=10, rate=1),
        make_factory(1, owner=1, units=0, rate=0),
        make_factory(2, owner=1, units=20, rate=1),
        make_factory(3, units=20, rate=2),
        make_factory(4, units=0, rate=0),
    ]
    return Match.from_factories(
        factories,
        rules=RulesConfig.for_league(0),
        distances=uniform_distances(5, 2),
    )
