"""Exceptions raised by the remote clients. Route handlers catch these and show a toast."""


class CompanionError(Exception):
    """Base class for recoverable remote-call failures."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.message = message
        self.status = status


class BackendError(CompanionError):
    """Auth or table request to the hosted backend failed."""


class PriceOracleError(CompanionError):
    """Price API request failed or returned something unusable."""
