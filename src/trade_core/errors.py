"""Error taxonomy for trade-core. Venue errors live in execution.venue."""


class TradingError(Exception):
    """Base class for trade-core errors."""


class ValidationError(TradingError):
    """Invalid signal or account state. Rejected locally, never retried."""


class SignalParseError(ValidationError):
    """Signal Source output could not be parsed or failed schema validation."""


class InsufficientDataError(TradingError):
    """Not enough candles to cover the warm-up period. Fatal to a simulation run."""
