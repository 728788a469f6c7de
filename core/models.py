"""
Core data models for the payment router.

NETWORK CONFIG
==============
NetworkConfig is immutable and loaded once at startup from networks.yaml.
Amounts are converted with the config's own `decimals`; an integer amount
computed for one network is never reused on another.

EXECUTION OUTCOME CONTRACT
==========================
ExecutionOutcome is a closed tagged union:
  - TransferSuccess  (status == SUCCESS): tx_hash, fee, network used
  - TransferFailure  (status == FAILURE): kind (ErrorKind), bounded detail,
                                          optional partial tx_hash
Callers branch on `outcome.status` (or isinstance) and then on
`outcome.kind`; every ErrorKind must be handled explicitly.
==========================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from core.constants import (
    BUILDER_CODE_PAYLOAD_BYTES,
    DEFAULT_MAX_DETAIL_LENGTH,
    ErrorKind,
    LedgerStatus,
    OutcomeStatus,
    TransferType,
)
from core.exceptions import ConfigError
from core.math import net_of_fee
from core.validators import is_valid_address, normalize_address, validate_amount, validate_token


def bound_detail(text: str, limit: int = DEFAULT_MAX_DETAIL_LENGTH) -> str:
    """Truncate a detail string to `limit` characters."""
    if text is None:
        return ""
    text = str(text)
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."


# =============================================================================
# NETWORK CONFIG
# =============================================================================

@dataclass(frozen=True)
class NetworkConfig:
    """Static per-network configuration."""
    name: str
    chain_id: int
    rpcs: Tuple[str, ...]
    router_address: str
    token_address: str
    decimals: int
    symbol: str
    use_builder_code: bool = False

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "NetworkConfig":
        """
        Build a NetworkConfig from a networks.yaml entry.

        Raises:
            ConfigError: On missing fields or invalid values
        """
        required = ("chain_id", "rpcs", "router_address", "token_address", "decimals", "symbol")
        missing = [key for key in required if key not in data]
        if missing:
            raise ConfigError(
                f"Network {name} missing fields: {', '.join(missing)}",
                details={"network": name, "missing": missing},
            )

        rpcs = tuple(url for url in (data.get("rpcs") or []) if url)
        if not rpcs:
            raise ConfigError(f"Network {name} has no RPC endpoints", details={"network": name})

        decimals = int(data["decimals"])
        if decimals <= 0:
            raise ConfigError(f"Network {name} has invalid decimals: {decimals}", details={"network": name})

        for key in ("router_address", "token_address"):
            if not is_valid_address(data[key]):
                raise ConfigError(
                    f"Network {name} has invalid {key}: {data[key]}",
                    details={"network": name, "field": key},
                )

        return cls(
            name=name,
            chain_id=int(data["chain_id"]),
            rpcs=rpcs,
            router_address=data["router_address"].lower(),
            token_address=data["token_address"].lower(),
            decimals=decimals,
            symbol=str(data["symbol"]),
            use_builder_code=bool(data.get("use_builder_code", False)),
        )

    def with_primary_rpc(self, url: Optional[str]) -> "NetworkConfig":
        """Return a copy with `url` placed first in the endpoint list."""
        if not url:
            return self
        rest = tuple(u for u in self.rpcs if u != url)
        return replace(self, rpcs=(url,) + rest)


@dataclass(frozen=True)
class EngineSettings:
    """Engine-wide tunables (config/engine.yaml)."""
    rpc_timeout_seconds: float = 10
    rpc_retry_count: int = 3
    rpc_retry_delay_ms: int = 300
    receipt_timeout_seconds: float = 120
    receipt_poll_interval_ms: int = 1000
    gas_margin_divisor: int = 5
    builder_code: str = "bc_qt9yxo1d"
    giveaway_duration_seconds: float = 600
    retry_failed_claimants: bool = False
    max_detail_length: int = DEFAULT_MAX_DETAIL_LENGTH

    def __post_init__(self):
        if len(self.builder_code.encode("utf-8")) > BUILDER_CODE_PAYLOAD_BYTES:
            raise ConfigError(
                f"Builder code longer than {BUILDER_CODE_PAYLOAD_BYTES} bytes",
                details={"builder_code": self.builder_code},
            )
        if self.rpc_retry_count < 1:
            raise ConfigError("rpc_retry_count must be >= 1")


# =============================================================================
# TRANSFER REQUEST
# =============================================================================

@dataclass(frozen=True)
class TransferRequest:
    """
    One transfer attempt.

    `amount` is in human units; `token` is the caller-supplied idempotency
    token passed verbatim to the router contract.
    """
    sender: str
    recipient: str
    amount: Decimal
    token: str
    network: str
    transfer_type: TransferType = TransferType.P2P

    def __post_init__(self):
        object.__setattr__(self, "amount", validate_amount(self.amount))
        object.__setattr__(self, "token", validate_token(self.token))
        object.__setattr__(self, "recipient", normalize_address(self.recipient))
        if self.transfer_type == TransferType.P2P:
            object.__setattr__(self, "sender", normalize_address(self.sender))

    def on_network(self, network: str) -> "TransferRequest":
        """Same logical transfer, targeted at another network."""
        return replace(self, network=network)


# =============================================================================
# FUNDS STATUS
# =============================================================================

@dataclass(frozen=True)
class FundsStatus:
    """Result of a balance/allowance check on one network."""
    network: str
    has_balance: bool
    has_allowance: bool
    balance: Decimal
    allowance: Decimal
    symbol: str
    reachable: bool = True

    @property
    def is_viable(self) -> bool:
        """Both balance and allowance suffice."""
        return self.has_balance and self.has_allowance

    @classmethod
    def unreachable(cls, network: str, symbol: str = "") -> "FundsStatus":
        """Zero status for a network whose reads failed."""
        return cls(
            network=network,
            has_balance=False,
            has_allowance=False,
            balance=Decimal("0"),
            allowance=Decimal("0"),
            symbol=symbol,
            reachable=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "has_balance": self.has_balance,
            "has_allowance": self.has_allowance,
            "balance": str(self.balance),
            "allowance": str(self.allowance),
            "symbol": self.symbol,
            "reachable": self.reachable,
        }


# =============================================================================
# EXECUTION OUTCOME
# =============================================================================

@dataclass(frozen=True)
class TransferSuccess:
    """Confirmed, non-reverted transfer."""
    network: str
    tx_hash: str
    fee: Decimal
    amount: Decimal
    amount_units: int
    symbol: str = ""
    rerouted_from: Optional[str] = None

    status = OutcomeStatus.SUCCESS

    @property
    def ok(self) -> bool:
        return True

    @property
    def net_amount(self) -> Decimal:
        """Amount received after the router's fee."""
        return net_of_fee(self.amount, self.fee)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "network": self.network,
            "tx_hash": self.tx_hash,
            "fee": str(self.fee),
            "amount": str(self.amount),
            "amount_units": self.amount_units,
            "symbol": self.symbol,
            "rerouted_from": self.rerouted_from,
        }


@dataclass(frozen=True)
class TransferFailure:
    """Typed terminal failure."""
    network: str
    kind: ErrorKind
    detail: str
    tx_hash: Optional[str] = None
    checked_all_networks: bool = False
    # Set for NEEDS_AUTHORIZATION: the network holding the balance
    alternate: Optional[FundsStatus] = None

    status = OutcomeStatus.FAILURE

    @property
    def ok(self) -> bool:
        return False

    @property
    def unconfirmed(self) -> bool:
        """Signed and possibly broadcast, but never seen mined or rejected."""
        return self.kind == ErrorKind.NETWORK_UNREACHABLE and self.tx_hash is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "network": self.network,
            "error_kind": self.kind.value,
            "detail": self.detail,
            "tx_hash": self.tx_hash,
            "checked_all_networks": self.checked_all_networks,
            "alternate": self.alternate.to_dict() if self.alternate else None,
        }


ExecutionOutcome = Union[TransferSuccess, TransferFailure]


def failure(
    network: str,
    kind: ErrorKind,
    detail: str,
    tx_hash: Optional[str] = None,
    limit: int = DEFAULT_MAX_DETAIL_LENGTH,
) -> TransferFailure:
    """Build a TransferFailure with a bounded detail string."""
    return TransferFailure(network=network, kind=kind, detail=bound_detail(detail, limit), tx_hash=tx_hash)


# =============================================================================
# DISTRIBUTION
# =============================================================================

@dataclass(frozen=True)
class ClaimAdmission:
    """One admitted giveaway claim and its execution outcome."""
    claimant_id: str
    recipient_tag: str
    position: int
    outcome: ExecutionOutcome
    admitted_count: int
    capacity: int

    @property
    def succeeded(self) -> bool:
        return self.outcome.ok


# =============================================================================
# LEDGER
# =============================================================================

@dataclass(frozen=True)
class LedgerEntry:
    """One append-only ledger row per terminal transfer outcome."""
    sender: str
    recipient: str
    amount: Decimal
    fee: Decimal
    tx_hash: Optional[str]
    network: str
    status: LedgerStatus
    token: str
    error_kind: Optional[str] = None
    transfer_type: str = TransferType.P2P.value
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_outcome(cls, request: TransferRequest, outcome: ExecutionOutcome) -> "LedgerEntry":
        """
        Build the ledger row for a terminal outcome.

        Successful rows record the net amount (after fee) on the network
        actually used. A transfer that was signed but never confirmed is
        written as UNCONFIRMED with its transaction hash.
        """
        if isinstance(outcome, TransferSuccess):
            return cls(
                sender=request.sender,
                recipient=request.recipient,
                amount=outcome.net_amount,
                fee=outcome.fee,
                tx_hash=outcome.tx_hash,
                network=outcome.network,
                status=LedgerStatus.COMPLETED,
                token=request.token,
                transfer_type=request.transfer_type.value,
            )
        return cls(
            sender=request.sender,
            recipient=request.recipient,
            amount=request.amount,
            fee=Decimal("0"),
            tx_hash=outcome.tx_hash,
            network=outcome.network,
            status=LedgerStatus.UNCONFIRMED if outcome.unconfirmed else LedgerStatus.FAILED,
            token=request.token,
            error_kind=outcome.kind.value,
            transfer_type=request.transfer_type.value,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "fee": str(self.fee),
            "tx_hash": self.tx_hash,
            "network": self.network,
            "status": self.status.value,
            "token": self.token,
            "error_kind": self.error_kind,
            "transfer_type": self.transfer_type,
            "recorded_at": self.recorded_at,
        }
