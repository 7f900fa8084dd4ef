"""Line-oriented text framing for player and viewer input.

Every block is counts-first: the number of lines on its own line, then one
space-separated record per line.
"""

from .state import Bomb, Factory, Match, Troop
from .types import EntityType, owner_id


def _ownership(owner_player: int | None, player_id: int) -> int:
    """1 for the reader's own entity, -1 for an opponent's, 0 for neutral."""
    if owner_player is None:
        return 0
    return 1 if owner_player == player_id else -1


def _entity_line(entity_id: int, kind: EntityType, *args: int) -> str:
    return " ".join([str(entity_id), kind.value, *(str(a) for a in args)])


def factory_line(factory: Factory, player_id: int) -> str:
    """FACTORY: ownership, units, production rate, disabled rounds, 0."""
    return _entity_line(
        factory.factory_id,
        EntityType.FACTORY,
        _ownership(owner_id(factory.owner), player_id),
        factory.unit_count,
        factory.production_rate,
        factory.disabled,
        0,
    )


def troop_line(troop: Troop, player_id: int) -> str:
    """TROOP: ownership, source, destination, units, remaining turns."""
    return _entity_line(
        troop.troop_id,
        EntityType.TROOP,
        _ownership(troop.owner, player_id),
        troop.source,
        troop.destination,
        troop.unit_count,
        troop.remaining_turns,
    )


def bomb_line(bomb: Bomb, player_id: int) -> str:
    """BOMB: opponents only learn the source of a bomb."""
    if bomb.owner == player_id:
        return _entity_line(
            bomb.bomb_id,
            EntityType.BOMB,
            1,
            bomb.source,
            bomb.destination,
            bomb.remaining_turns,
            0,
        )
    return _entity_line(bomb.bomb_id, EntityType.BOMB, -1, bomb.source, -1, -1, 0)


def encode_initial_input(match: Match) -> list[str]:
    """Map description sent to every player before the first round."""
    links = [f"{a} {b} {d}" for a, b, d in match.distances.links()]
    return [str(match.factory_count), str(len(links)), *links]


def encode_turn_input(match: Match, player_id: int) -> list[str]:
    """Entities visible to a player at the start of a round."""
    entities = [factory_line(f, player_id) for f in match.factories]
    entities += [troop_line(t, player_id) for t in match.troops.values()]
    entities += [bomb_line(b, player_id) for b in match.bombs.values()]
    return [str(len(entities)), *entities]


def encode_view_init(match: Match) -> list[str]:
    """Static map data for a viewer, prefixed with its own line count."""
    rules = match.rules
    data = [
        f"{rules.width} {rules.height} {match.factory_count} {rules.bombs_per_player}"
    ]
    data += [
        f"{f.factory_id} {f.production_rate} {f.position.x} {f.position.y} {f.radius}"
        for f in match.factories
    ]
    return [str(len(data) + 1), *data]


def encode_view_frame(match: Match) -> list[str]:
    """Per-round viewer data: players, this round's launches, factory states."""
    data: list[str] = []
    for player in match.players:
        info = f"{player.score} {player.remaining_bombs}"
        if player.message is not None:
            info += f" {player.message}"
        data.append(info)

    data.append(str(len(match.new_troops)))
    data += [
        f"{t.troop_id} {t.owner} {t.source} {t.destination} {t.unit_count} {t.remaining_turns}"
        for t in match.new_troops
    ]

    data.append(str(len(match.new_bombs)))
    data += [
        f"{b.bomb_id} {b.owner} {b.source} {b.destination} {b.remaining_turns}"
        for b in match.new_bombs
    ]

    for f in match.factories:
        owner = -1 if f.is_neutral else owner_id(f.owner)
        data.append(f"{owner} {f.unit_count} {f.production_rate} {f.disabled}")
    return data

