"""Error taxonomy for risk checks and price data lookups."""


class InvalidInput(ValueError):
    """Malformed risk-check arguments. Fatal to the call, never retried."""


class ProviderUnavailable(RuntimeError):
    """A single price-data source failed. Recovered by falling through the cascade."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class NoDataAvailable(RuntimeError):
    """Every price-data source was exhausted without a usable result."""


class StaleTrade(RuntimeError):
    """Trade is too recent for historical data to cover it."""
