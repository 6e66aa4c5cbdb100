"""
Error taxonomy. Everything except ConfigurationError is recovered inside a cycle.
"""


class TradingError(Exception):
    """Base class for all bot errors."""


class InsufficientData(TradingError):
    """Too few bars (or values) for the requested period."""

    def __init__(self, message: str = "", required: int = 0, available: int = 0):
        super().__init__(message or f"need {required} values, got {available}")
        self.required = required
        self.available = available


class ConnectivityError(TradingError):
    """Broker or market data source unreachable."""


class InvalidOrderResponse(TradingError):
    """Execution boundary accepted the call but returned no usable position."""


class ConfigurationError(TradingError):
    """Bad or ambiguous configuration. Fatal at startup."""
