"""
Constants for the payment router.

Contains enums, defaults, and configuration constants shared by the
chains, execution and distribution layers.
"""

from enum import Enum
from typing import Final

# =============================================================================
# DEFAULTS
# =============================================================================

# JSON-RPC transport
DEFAULT_RPC_TIMEOUT_SECONDS = 10
DEFAULT_RPC_RETRY_COUNT = 3
DEFAULT_RPC_RETRY_DELAY_MS = 300

# Funds checks get one extra attempt on the next endpoint
FUNDS_CHECK_ATTEMPTS = 2

# Receipt polling
DEFAULT_RECEIPT_TIMEOUT_SECONDS = 120
DEFAULT_RECEIPT_POLL_INTERVAL_MS = 1000

# Gas margin: gas + gas // 5 (20%)
DEFAULT_GAS_MARGIN_DIVISOR = 5

# Giveaway rounds
DEFAULT_GIVEAWAY_DURATION_SECONDS = 600

# User-facing detail strings are truncated to this length
DEFAULT_MAX_DETAIL_LENGTH = 200

# ERC-8021 attribution suffix
DEFAULT_BUILDER_CODE = "bc_qt9yxo1d"
BUILDER_CODE_MARKER: Final[str] = "8021"
BUILDER_CODE_PAYLOAD_BYTES: Final[int] = 32

# Handles that are never treated as recipients
RESERVED_HANDLES: Final[frozenset[str]] = frozenset([
    "monibot",
    "monipay",
    "everyone",
    "here",
])


class ErrorKind(str, Enum):
    """
    Closed taxonomy of terminal transfer failures.

    Every failed ExecutionOutcome carries exactly one of these.
    """
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"
    REVERTED = "REVERTED"
    NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
    CONTRACT_UNDERFUNDED = "CONTRACT_UNDERFUNDED"

    # Router: an alternate network has the balance but the sender has not
    # authorized the router there
    NEEDS_AUTHORIZATION = "NEEDS_AUTHORIZATION"

    # Identity resolution failed before any chain call
    RECIPIENT_UNRESOLVED = "RECIPIENT_UNRESOLVED"


# Failures that cross-chain rerouting can recover from
FUNDS_FAILURE_KINDS: Final[frozenset[ErrorKind]] = frozenset([
    ErrorKind.INSUFFICIENT_BALANCE,
    ErrorKind.INSUFFICIENT_ALLOWANCE,
])


class OutcomeStatus(str, Enum):
    """Discriminant of ExecutionOutcome."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class LedgerStatus(str, Enum):
    """Status written to the ledger."""
    COMPLETED = "completed"
    FAILED = "failed"
    # Signed and possibly broadcast; outcome unknown
    UNCONFIRMED = "unconfirmed"


class TransferType(str, Enum):
    """Kind of router instruction."""
    P2P = "p2p"
    GRANT = "grant"


class ErrorCode(str, Enum):
    """
    Internal error codes carried by exceptions.

    These never reach end users directly; the execution layer maps them to
    an ErrorKind.
    """
    # Infrastructure errors
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    INFRA_RATE_LIMIT = "INFRA_RATE_LIMIT"
    RECEIPT_TIMEOUT = "RECEIPT_TIMEOUT"

    # Node answered with a JSON-RPC error object
    RPC_ERROR_RESPONSE = "RPC_ERROR_RESPONSE"

    # Decoding
    ABI_DECODE_ERROR = "ABI_DECODE_ERROR"

    # Configuration
    CONFIG_INVALID = "CONFIG_INVALID"
    UNKNOWN_NETWORK = "UNKNOWN_NETWORK"
    MISSING_OPERATOR_KEY = "MISSING_OPERATOR_KEY"

    # Validation
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Route state machine
    INVALID_TRANSITION = "INVALID_TRANSITION"

    UNKNOWN = "UNKNOWN"
