"""Synchronous host adapter that drives one match to completion."""

from collections.abc import Callable, Mapping

import structlog

from .encoding import encode_initial_input, encode_turn_input
from .engine import RoundResult, step
from .exceptions import OrderError
from .state import Match, MatchOutcome

logger = structlog.get_logger()

# Receives the player's input lines, returns its output text.
# None means the player did not answer in time.
PlayerAgent = Callable[[list[str]], str | None]

RoundCallback = Callable[[RoundResult], None]


class MatchRunner:
    """
    Runs a match round by round.

    Usage:
        match = Match.create(config)
        runner = MatchRunner(match, {0: agent_a, 1: agent_b})
        outcome = runner.run()
    """

    def __init__(
        self,
        match: Match,
        agents: Mapping[int, PlayerAgent],
        max_rounds: int | None = None,
        on_round_complete: RoundCallback | None = None,
    ):
        missing = [p.player_id for p in match.players if p.player_id not in agents]
        if missing:
            raise ValueError(f"No agent for players {missing}")
        self.match = match
        self.agents = agents
        self.max_rounds = max_rounds if max_rounds is not None else match.rules.max_rounds
        self.on_round_complete = on_round_complete
        self.results: list[RoundResult] = []

    def _collect_orders(self) -> None:
        """Ask every active player for its orders, ascending id."""
        for player in self.match.active_players():
            lines = encode_turn_input(self.match, player.player_id)
            if self.match.round == 0:
                lines = encode_initial_input(self.match) + lines

            output = self.agents[player.player_id](lines)
            if output is None:
                logger.warning(
                    "player_timeout", player_id=player.player_id, round=self.match.round
                )
                self.match.mark_timeout(player.player_id)
                continue

            try:
                self.match.submit_orders(player.player_id, output)
            except OrderError as exc:
                # Already eliminated by submit_orders; the match goes on
                logger.info(
                    "player_lost_on_input",
                    player_id=exc.player_id,
                    code=exc.code,
                    round=self.match.round,
                )

    def play_round(self) -> RoundResult:
        """Collect orders and advance one round."""
        self._collect_orders()
        result = step(self.match)
        self.results.append(result)
        if self.on_round_complete:
            self.on_round_complete(result)
        return result

    def run(self) -> MatchOutcome:
        """Play until the match ends or the round cap is reached."""
        logger.info(
            "match_started",
            seed=self.match.seed,
            factory_count=self.match.factory_count,
            max_rounds=self.max_rounds,
        )
        while not self.match.is_over and self.match.round < self.max_rounds:
            self.play_round()

        outcome = self.match.outcome or self.match.finish_round_limit()
        return outcome


def run_match(
    match: Match,
    agents: Mapping[int, PlayerAgent],
    max_rounds: int | None = None,
) -> list[RoundResult]:
    """
    Run a match to the end (useful for testing).

    Args:
        match: Match state
        agents: One callable per player id
        max_rounds: Round cap; defaults to the match rules

    Returns:
        List of RoundResults, one per round played
    """
    runner = MatchRunner(match, agents, max_rounds=max_rounds)
    runner.run()
    return runner.results
