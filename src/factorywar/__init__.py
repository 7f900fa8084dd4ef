"""Deterministic simulation core for a turn-based factory conquest game."""

from .config import Config, MatchConfig, RulesConfig, find_config, load_config
from .distances import DistanceTable
from .encoding import (
    encode_initial_input,
    encode_turn_input,
    encode_view_frame,
    encode_view_init,
)
from .engine import RoundResult, step
from .exceptions import (
    FactoryWarError,
    InvalidReferenceError,
    InvariantViolationError,
    MalformedInputError,
    MapGenerationError,
    MatchFinishedError,
    OrderError,
    PlayerNotFoundError,
    RuleViolationError,
)
from .mapgen import GeneratedMap, generate_map
from .orders import parse_orders
from .runner import MatchRunner, PlayerAgent, run_match
from .state import (
    Bomb,
    Event,
    Factory,
    IdAllocator,
    Match,
    MatchOutcome,
    Player,
    Troop,
)
from .types import (
    NEUTRAL,
    BombOrder,
    IncreaseOrder,
    MoveOrder,
    Owned,
    Owner,
    PlayerOrders,
    Position,
    Unowned,
)

__all__ = [
    # Types
    "Position",
    "Owner",
    "Owned",
    "Unowned",
    "NEUTRAL",
    "MoveOrder",
    "BombOrder",
    "IncreaseOrder",
    "PlayerOrders",
    # Config
    "Config",
    "MatchConfig",
    "RulesConfig",
    "find_config",
    "load_config",
    # State
    "Match",
    "Factory",
    "Troop",
    "Bomb",
    "Player",
    "Event",
    "MatchOutcome",
    "IdAllocator",
    "DistanceTable",
    # Map generation
    "GeneratedMap",
    "generate_map",
    # Orders
    "parse_orders",
    # Engine
    "RoundResult",
    "step",
    # Runner
    "MatchRunner",
    "PlayerAgent",
    "run_match",
    # Encoding
    "encode_initial_input",
    "encode_turn_input",
    "encode_view_init",
    "encode_view_frame",
    # Exceptions
    "FactoryWarError",
    "OrderError",
    "MalformedInputError",
    "InvalidReferenceError",
    "RuleViolationError",
    "MapGenerationError",
    "InvariantViolationError",
    "MatchFinishedError",
    "PlayerNotFoundError",
]
