"""Exception hierarchy for the oracle resolver."""


class OracleResolverError(Exception):
    """Base class for all resolver errors."""


class ChainReadError(OracleResolverError):
    """A read against the OracleMarkets contract failed."""


class MarketNotFoundError(ChainReadError):
    """The contract reports that a market id is not allocated."""

    def __init__(self, market_id: int):
        super().__init__(f"Market does not exist: #{market_id}")
        self.market_id = market_id


class ChainWriteError(OracleResolverError):
    """Submitting or confirming a resolve transaction failed."""


class EvidenceFetchError(OracleResolverError):
    """A third-party evidence source could not be fetched."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source


class InferenceError(OracleResolverError):
    """The reasoning service call or its response was unusable."""
