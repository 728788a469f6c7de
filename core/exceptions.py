"""
Typed exceptions for the payment router.

Transport errors (InfraError) are distinguished from node-side rejections
(RPCResponseError) so the executor can decide between endpoint failover and
a Reverted outcome.
"""

from typing import Optional

from core.constants import ErrorCode


class RouterError(Exception):
    """Base exception for the payment router."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class InfraError(RouterError):
    """Infrastructure-related errors (RPC transport, timeouts, rate limits)."""
    pass


class RPCError(InfraError):
    """RPC call failed at the transport level."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INFRA_RPC_ERROR, details)


class RPCTimeoutError(InfraError):
    """RPC call timed out."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INFRA_TIMEOUT, details)


class ReceiptTimeoutError(InfraError):
    """Transaction was broadcast but no receipt arrived in time."""

    def __init__(self, message: str, tx_hash: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.RECEIPT_TIMEOUT, {"tx_hash": tx_hash, **(details or {})})
        self.tx_hash = tx_hash


class RPCResponseError(RouterError):
    """
    Node returned a JSON-RPC error object.

    The endpoint is reachable; the request itself was refused
    (e.g. "execution reverted" during gas estimation).
    """

    def __init__(
        self,
        message: str,
        rpc_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, ErrorCode.RPC_ERROR_RESPONSE, details)
        self.rpc_code = rpc_code


class ABIDecodeError(RouterError):
    """Contract call returned data that could not be decoded."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.ABI_DECODE_ERROR, details)


class ConfigError(RouterError):
    """Invalid or missing configuration."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class ValidationError(RouterError):
    """Invalid input to an engine operation."""
    pass


class InvalidTransitionError(RouterError):
    """Raised when an invalid route state transition is attempted."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INVALID_TRANSITION, details)
