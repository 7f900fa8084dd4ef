"""Command-line interface for map generation."""

import argparse
import sys

import structlog


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: generate a map and print its initial data."""
    parser = argparse.ArgumentParser(
        description="Generate a factory map and print the initial input"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path or name of a TOML config in configs/",
    )
    parser.add_argument(
        "--league", type=int, default=None, help="League preset (overrides config rules)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--factory-count", type=int, default=None, help="Requested factory count"
    )
    parser.add_argument(
        "--initial-units", type=int, default=None, help="Units on each home factory"
    )
    parser.add_argument(
        "--view",
        action="store_true",
        help="Print viewer init data instead of player input",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Verbose logging"
    )

    args = parser.parse_args(argv)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(10 if args.verbose else 20),
        # stdout carries the map data
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )
    logger = structlog.get_logger()

    # Import here to avoid slow startup for --help
    from .config import Config, find_config, load_config
    from .encoding import encode_initial_input, encode_view_init
    from .state import Match

    config = load_config(find_config(args.config)) if args.config else Config()

    overrides = {
        "seed": args.seed,
        "factory_count": args.factory_count,
        "initial_unit_count": args.initial_units,
    }
    match_config = config.match.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    config = config.model_copy(update={"match": match_config})
    if args.league is not None:
        config = config.model_copy(update={"league": args.league})

    match = Match.create(config)
    logger.info("map_ready", seed=match.seed, factory_count=match.factory_count)

    lines = encode_view_init(match) if args.view else encode_initial_input(match)
    print("\n".join(lines))


if __name__ == "__main__":
    main()
