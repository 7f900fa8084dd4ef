"""Procedural generation of symmetric factory layouts."""

from dataclasses import dataclass

import numpy as np
import structlog

from .config import RulesConfig, value_in_range
from .distances import DistanceTable
from .exceptions import MapGenerationError
from .state import Factory, IdAllocator
from .types import NEUTRAL, Owned, Position

logger = structlog.get_logger()


@dataclass
class GeneratedMap:
    """Result of map generation."""

    factories: list[Factory]
    distances: DistanceTable
    seed: int
    radius: int
    initial_unit_count: int

    @property
    def factory_count(self) -> int:
        return len(self.factories)


def twin_of(factory_id: int) -> int:
    """Id of the factory mirrored through the center (the center is its own twin)."""
    if factory_id == 0:
        return 0
    return factory_id + 1 if factory_id % 2 == 1 else factory_id - 1


def factory_radius(factory_count: int) -> int:
    """Factories shrink on crowded maps."""
    return 600 if factory_count > 10 else 700


def resolve_factory_count(
    hint: int | None, rules: RulesConfig, rng: np.random.Generator
) -> int:
    """Use the hint when in range, otherwise draw one. The result is always odd.

    An even count moves up by one, or down when that would pass the maximum.
    """
    if value_in_range(hint, rules.min_factory_count, rules.max_factory_count):
        count = int(hint)  # type: ignore[arg-type]
    else:
        count = int(rng.integers(rules.min_factory_count, rules.max_factory_count + 1))
    if count % 2 == 0:
        count += 1 if count + 1 <= rules.max_factory_count else -1
    return count


def resolve_initial_units(
    hint: int | None, rules: RulesConfig, rng: np.random.Generator
) -> int:
    """Use the hint when in range, otherwise draw one."""
    if value_in_range(hint, rules.player_init_units_min, rules.player_init_units_max):
        return int(hint)  # type: ignore[arg-type]
    return int(
        rng.integers(rules.player_init_units_min, rules.player_init_units_max + 1)
    )


def _sample_point(
    rng: np.random.Generator, rules: RulesConfig, radius: int
) -> Position:
    """Draw a candidate in the left half of the map, away from the edges."""
    margin = radius + rules.extra_space_between_factories
    x = int(rng.integers(0, rules.width // 2 - 2 * radius)) + margin
    y = int(rng.integers(0, rules.height - 2 * radius)) + margin
    return Position(x=x, y=y)


def _top_up_production(factories: list[Factory], rules: RulesConfig) -> None:
    """Raise mirrored pairs until the map meets the production floor.

    Pairs are walked in id order and raised together so symmetry holds.
    The center factory is never raised.
    """
    total = sum(f.production_rate for f in factories)
    pairs = [
        (factories[i], factories[twin_of(i)]) for i in range(1, len(factories), 2)
    ]

    while total < rules.min_total_production_rate:
        raised = False
        for first, second in pairs:
            if total >= rules.min_total_production_rate:
                break
            if first.production_rate < rules.max_production_rate:
                first.production_rate += 1
                second.production_rate += 1
                total += 2
                raised = True
        if not raised:
            # Every pair is at the max rate; the floor cannot be met
            break


def generate_map(
    seed: int,
    factory_count: int | None = None,
    initial_unit_count: int | None = None,
    rules: RulesConfig | None = None,
    ids: IdAllocator | None = None,
) -> GeneratedMap:
    """
    Generate a point-symmetric factory layout.

    Factory 0 sits at the map center. Factories 1 and 2 are the homes of
    players 0 and 1. Every later pair (2k+1, 2k+2) is a neutral mirrored twin.

    Args:
        seed: Seed for the numpy generator
        factory_count: Requested count; ignored when out of range
        initial_unit_count: Units on each home; ignored when out of range
        rules: Deployment rules
        ids: Id allocator of the match being built

    Returns:
        GeneratedMap with factories in id order and their distance table

    Raises:
        MapGenerationError: If placement keeps failing
    """
    rules = rules or RulesConfig()
    ids = ids or IdAllocator()
    rng = np.random.default_rng(seed)

    count = resolve_factory_count(factory_count, rules, rng)
    radius = factory_radius(count)
    min_spacing = 2 * (radius + rules.extra_space_between_factories)

    center = Position(x=rules.width // 2, y=rules.height // 2)
    factories = [
        Factory(factory_id=ids.allocate(), position=center, radius=radius)
    ]
    home_units = 0
    attempts = 0

    while len(factories) < count:
        candidate = _sample_point(rng, rules, radius)
        if any(f.position.distance_to(candidate) < min_spacing for f in factories):
            attempts += 1
            if attempts >= rules.max_placement_attempts:
                raise MapGenerationError(
                    f"No valid placement for factory {len(factories)} of {count} "
                    f"after {attempts} attempts (seed={seed})"
                )
            continue

        rate = int(
            rng.integers(rules.min_production_rate, rules.max_production_rate + 1)
        )
        twin = candidate.mirrored(rules.width, rules.height)

        if len(factories) == 1:
            home_units = resolve_initial_units(initial_unit_count, rules, rng)
            owners = (Owned(player_id=0), Owned(player_id=1))
            units = home_units
        else:
            owners = (NEUTRAL, NEUTRAL)
            units = int(rng.integers(0, 5 * rate + 1))

        for owner, position in zip(owners, (candidate, twin)):
            factories.append(
                Factory(
                    factory_id=ids.allocate(),
                    position=position,
                    radius=radius,
                    owner=owner,
                    unit_count=units,
                    production_rate=rate,
                )
            )

    _top_up_production(factories, rules)

    distances = DistanceTable.from_factories(factories, rules.distance_unit)

    logger.debug(
        "map_generated",
        seed=seed,
        factory_count=count,
        radius=radius,
        rejected_samples=attempts,
        total_production=sum(f.production_rate for f in factories),
    )

    return GeneratedMap(
        factories=factories,
        distances=distances,
        seed=seed,
        radius=radius,
        initial_unit_count=home_units,
    )
