"""Match configuration: rule presets and per-match inputs, loadable from TOML."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field


class RulesConfig(BaseModel):
    """Fixed rules for a deployment.

    Defaults are the full ruleset (every action enabled). Use
    `RulesConfig.for_league` for the restricted presets.
    """

    # Map geometry
    width: int = Field(default=16000, description="Map width")
    height: int = Field(default=6500, description="Map height")
    extra_space_between_factories: int = Field(
        default=300, description="Spacing added to the radius when placing factories"
    )
    distance_unit: int = Field(
        default=800, description="Map units travelled per round"
    )
    max_placement_attempts: int = Field(
        default=10000, description="Rejected samples allowed before generation fails"
    )

    # Factories
    min_factory_count: int = Field(default=7, description="Minimum factory count")
    max_factory_count: int = Field(default=15, description="Maximum factory count")
    min_production_rate: int = Field(default=0, description="Lowest production rate")
    max_production_rate: int = Field(default=3, description="Highest production rate")
    min_total_production_rate: int = Field(
        default=4, description="Floor for the summed production rate of a new map"
    )
    player_init_units_min: int = Field(default=15, description="Min units on a home factory")
    player_init_units_max: int = Field(default=30, description="Max units on a home factory")

    # Actions
    move_restriction: bool = Field(
        default=False, description="Only the first MOVE of a turn is kept"
    )
    bombs_per_player: int = Field(default=2, ge=0, description="Bomb budget per player")
    increase_enabled: bool = Field(default=True, description="Whether INC is available")
    increase_cost: int = Field(default=10, description="Units paid for one INC")
    disable_duration: int = Field(
        default=5, description="Rounds a bombed factory stops producing"
    )
    message_max_length: int = Field(default=100, description="MSG truncation length")

    # Match
    max_rounds: int = Field(default=200, description="Round cap enforced by the host")

    @classmethod
    def for_league(cls, level: int) -> "RulesConfig":
        """Return the preset for a league level.

        0: few factories, one move per turn.
        1: multiple moves per turn, more factories.
        2: adds bombs.
        3 and above: adds the increase action.
        """
        if level <= 0:
            return cls(
                max_factory_count=9,
                move_restriction=True,
                bombs_per_player=0,
                increase_enabled=False,
            )
        if level == 1:
            return cls(bombs_per_player=0, increase_enabled=False)
        if level == 2:
            return cls(increase_enabled=False)
        return cls()


class MatchConfig(BaseModel):
    """Per-match inputs. Out-of-range or absent values fall back to random draws."""

    seed: int | None = Field(default=None, description="Seed; random when absent")
    factory_count: int | None = Field(default=None, description="Factory count hint")
    initial_unit_count: int | None = Field(
        default=None, description="Units on each home factory"
    )
    # Symmetric maps seat exactly two players
    player_count: int = Field(default=2, ge=2, le=2)


class Config(BaseModel):
    """Complete configuration for a match."""

    league: int | None = Field(
        default=None, description="League preset; overrides the [rules] table when set"
    )
    rules: RulesConfig = Field(default_factory=RulesConfig)
    match: MatchConfig = Field(default_factory=MatchConfig)

    def resolved_rules(self) -> RulesConfig:
        """Rules to play with, honouring the league preset."""
        if self.league is not None:
            return RulesConfig.for_league(self.league)
        return self.rules


def value_in_range(value: int | None, low: int, high: int) -> bool:
    """Check that an optional hint is present and within [low, high]."""
    return value is not None and low <= value <= high


def load_config(config_path: Path) -> Config:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to the TOML config file.

    Returns:
        Parsed Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        tomllib.TOMLDecodeError: If TOML is malformed.
    """
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    return Config.model_validate(data)


def _configs_dir() -> Path:
    return Path(__file__).parent.parent.parent / "configs"


def find_config(name: str) -> Path:
    """Find a config file by name.

    Searches in the following order:
    1. Exact path if name contains path separator
    2. configs/{name}.toml
    3. configs/{name}

    Raises:
        FileNotFoundError: If config file is not found.
    """
    if "/" in name or name.endswith(".toml"):
        path = Path(name)
        if path.exists():
            return path
        raise FileNotFoundError(f"Config file not found: {name}")

    configs_dir = _configs_dir()

    config_path = configs_dir / f"{name}.toml"
    if config_path.exists():
        return config_path

    config_path = configs_dir / name
    if config_path.exists():
        return config_path

    raise FileNotFoundError(
        f"Config '{name}' not found in {configs_dir}. "
        f"Available configs: {list_configs()}"
    )


def list_configs() -> list[str]:
    """List available config names."""
    configs_dir = _configs_dir()
    if not configs_dir.exists():
        return []
    return sorted(p.stem for p in configs_dir.glob("*.toml"))
