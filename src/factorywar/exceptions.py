"""Custom exceptions for the factory simulation."""


class FactoryWarError(Exception):
    """Base exception for simulation errors."""

    pass


class OrderError(FactoryWarError):
    """Raised when a player's output is fatal to that player.

    The offending player is eliminated; other players are unaffected.
    """

    code = "order_error"

    def __init__(self, player_id: int, detail: str):
        super().__init__(f"player {player_id}: {self.code}: {detail}")
        self.player_id = player_id
        self.detail = detail


class MalformedInputError(OrderError):
    """Raised when text matches none of the action shapes."""

    code = "malformed_input"


class InvalidReferenceError(OrderError):
    """Raised when an action names a factory id that does not exist."""

    code = "invalid_reference"


class RuleViolationError(OrderError):
    """Raised when an action breaks a game rule."""

    code = "rule_violation"

    def __init__(self, player_id: int, code: str, detail: str):
        self.code = code
        super().__init__(player_id, detail)


class MapGenerationError(FactoryWarError):
    """Raised when no valid factory layout is found."""

    pass


class InvariantViolationError(FactoryWarError):
    """Raised when an entity invariant breaks during a round."""

    pass


class MatchFinishedError(FactoryWarError):
    """Raised when stepping a match that is already over."""

    pass


class PlayerNotFoundError(FactoryWarError):
    """Raised when a player id is not seated in the match."""

    pass
