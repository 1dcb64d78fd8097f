"""Shared constants: candle resolutions and instrument aliases."""

VALID_INTERVALS = ["1m", "5m", "15m", "30m", "1h", "2h", "4h", "1d"]

INTERVAL_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "1d": 86400,
}

# TradingView-style resolutions expressed in seconds map onto the labels above
RESOLUTION_ALIASES: dict[str, str] = {
    str(seconds): label for label, seconds in INTERVAL_SECONDS.items()
}

# Interval to hours mapping for APScheduler
INTERVAL_HOURS: dict[str, float] = {
    label: seconds / 3600 for label, seconds in INTERVAL_SECONDS.items()
}

SIGNAL_INSTRUMENT_ALIASES: dict[str, str] = {
    "BTCUSD": "BTC-PERPETUAL",
    "BTCUSD.P": "BTC-PERPETUAL",
    "BTCUSDT": "BTC-PERPETUAL",
    "XBTUSD": "BTC-PERPETUAL",
    "ETHUSD": "ETH-PERPETUAL",
    "ETHUSD.P": "ETH-PERPETUAL",
    "ETHUSDT": "ETH-PERPETUAL",
}


def normalize_resolution(resolution: str) -> str:
    """Return the canonical interval label for `resolution`.

    Accepts either a label ("1m") or its length in seconds ("60").
    Raises ValueError for anything outside the enumerated set.
    """
    value = resolution.strip()
    value = RESOLUTION_ALIASES.get(value, value)
    if value not in INTERVAL_SECONDS:
        allowed = ", ".join(VALID_INTERVALS)
        raise ValueError(f"Unsupported resolution {resolution!r}; must be one of: {allowed}")
    return value


def normalize_instrument(symbol: str) -> str:
    """Map a signal symbol (e.g. TradingView's BTCUSD) to a Deribit instrument name."""
    text = symbol.strip().upper()
    if text in SIGNAL_INSTRUMENT_ALIASES:
        return SIGNAL_INSTRUMENT_ALIASES[text]
    if "-" in text:
        return text
    if text.startswith("BTC"):
        return "BTC-PERPETUAL"
    return f"{text}-PERPETUAL"
