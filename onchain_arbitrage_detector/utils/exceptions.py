"""
Error taxonomy for the live arbitrage engine.

Every error raised by the engine derives from ArbitrageEngineError so the
orchestration loop can catch engine failures without masking programming errors.
"""


class ArbitrageEngineError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(ArbitrageEngineError):
    """Empty endpoint pool, malformed venue or token configuration. Fatal at startup."""


class DecodeError(ArbitrageEngineError):
    """Account bytes are malformed or the account does not exist"""

    def __init__(self, address, message: str):
        self.address = address
        super().__init__(f"failed to decode account {address}: {message}")


class AccountNotLoadedError(ArbitrageEngineError):
    """A cached account was read before any successful load"""

    def __init__(self, address):
        self.address = address
        super().__init__(f"account {address} has not been loaded yet")


class QuoteComputationError(ArbitrageEngineError):
    """A venue pricing function failed for one pool and direction"""

    def __init__(self, venue: str, pool_id: str, from_token: str, to_token: str, cause: Exception):
        self.venue = venue
        self.pool_id = pool_id
        self.from_token = from_token
        self.to_token = to_token
        self.cause = cause
        super().__init__(
            f"[{venue}] quote failed on pool {pool_id} ({from_token}->{to_token}): {cause!r}")


class NetworkError(ArbitrageEngineError):
    """Pull, subscribe or unsubscribe failure"""

    def __init__(self, operation: str, address, cause: Exception = None):
        self.operation = operation
        self.address = address
        self.cause = cause
        super().__init__(f"{operation} failed for account {address}: {cause!r}")


class SearchDomainError(ArbitrageEngineError):
    """Invalid optimizer input such as a non-positive granularity"""
