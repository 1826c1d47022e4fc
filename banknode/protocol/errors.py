"""
Exceptions raised across the node and the reasons they render to on the wire.
"""


class BankNodeError(Exception):
    pass


class ProtocolError(BankNodeError):
    """Empty line or unknown verb."""


class ValidationError(BankNodeError):
    """Malformed or out-of-range command arguments."""

    def __init__(self, reason="Invalid arguments"):
        super().__init__(reason)
        self.reason = reason


class DomainError(BankNodeError):
    reason = "Could not process request"

    def __init__(self, message=None):
        super().__init__(message or self.reason)


class AccountNotFound(DomainError):
    reason = "Account not found"


class InsufficientFunds(DomainError):
    reason = "Insufficient funds"


class BalanceNotZero(DomainError):
    reason = "Balance must be 0"


class NetworkError(BankNodeError):
    """Peer unreachable, handshake failure or socket fault."""


class InternalError(BankNodeError):
    """Unexpected storage or serialization fault. Never leaks to a peer."""


class ConfigError(BankNodeError):
    pass


def failure(verb, reason):
    return f"ER {verb} Failed: {reason}"
