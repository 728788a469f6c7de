"""
core - Core utilities and models for the payment router.

This package contains:
- constants.py: Enums (ErrorKind, ErrorCode) and defaults
- exceptions.py: Typed exceptions with error codes
- math.py: Decimal conversions between human amounts and on-chain units
- format_money.py: Display formatting for amounts and fees
- validators.py: Address/amount/token validation
- models.py: NetworkConfig, TransferRequest, FundsStatus, ExecutionOutcome
- logging.py: Structured JSON logging
"""

from core.constants import (
    ErrorCode,
    ErrorKind,
    FUNDS_FAILURE_KINDS,
    LedgerStatus,
    OutcomeStatus,
    TransferType,
)
from core.exceptions import (
    ABIDecodeError,
    ConfigError,
    InfraError,
    InvalidTransitionError,
    ReceiptTimeoutError,
    RouterError,
    RPCError,
    RPCResponseError,
    RPCTimeoutError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    ClaimAdmission,
    EngineSettings,
    ExecutionOutcome,
    FundsStatus,
    LedgerEntry,
    NetworkConfig,
    TransferFailure,
    TransferRequest,
    TransferSuccess,
)

__all__ = [
    # Constants
    "ErrorCode",
    "ErrorKind",
    "FUNDS_FAILURE_KINDS",
    "LedgerStatus",
    "OutcomeStatus",
    "TransferType",
    # Exceptions
    "ABIDecodeError",
    "ConfigError",
    "InfraError",
    "InvalidTransitionError",
    "ReceiptTimeoutError",
    "RouterError",
    "RPCError",
    "RPCResponseError",
    "RPCTimeoutError",
    "ValidationError",
    # Models
    "ClaimAdmission",
    "EngineSettings",
    "ExecutionOutcome",
    "FundsStatus",
    "LedgerEntry",
    "NetworkConfig",
    "TransferFailure",
    "TransferRequest",
    "TransferSuccess",
    # Logging
    "get_logger",
    "setup_logging",
]
