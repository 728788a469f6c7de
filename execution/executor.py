"""
execution/executor.py - Transfer Executor.

EXECUTION CONTRACT:
===================

execute(request)        P2P transfer: router moves `amount` from the sender
                        (who has approved the router) to the recipient.
execute_grant(request)  Disbursement: router pays the recipient from its own
                        token float.

Both return an ExecutionOutcome and never raise for classified failures.

Phases:
  1. PREPARE (read-only, re-attempted on the next endpoint on transport
     failure): nonce / balance / allowance reads, fee quote, calldata
     (+ builder code), gas estimate, signing.
  2. SUBMIT: broadcast the signed transaction, once.
  3. CONFIRM: wait for the receipt; status 0 => REVERTED.

The signed transaction is never re-broadcast. A transport failure during
SUBMIT, or a node answering "already known" or "nonce too low", is settled
by waiting for the receipt of the locally computed hash; no receipt yields
NETWORK_UNREACHABLE. Every failure from SUBMIT on carries the hash.

All submissions share one operating account and are serialized by a single
lock held from the nonce read to the receipt.
===================
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from chains.abi import append_builder_code, encode_execute_grant, encode_execute_p2p
from chains.providers import receipt_succeeded
from chains.registry import Connection, NetworkRegistry
from chains.signer import SignedTransfer
from core.constants import ErrorCode, ErrorKind, TransferType
from core.exceptions import (
    ABIDecodeError,
    ConfigError,
    InfraError,
    ReceiptTimeoutError,
    RPCResponseError,
    ValidationError,
)
from core.format_money import format_amount
from core.logging import get_logger
from core.math import Number, add_margin, from_base_units, to_base_units
from core.models import (
    EngineSettings,
    ExecutionOutcome,
    NetworkConfig,
    TransferFailure,
    TransferRequest,
    TransferSuccess,
    failure,
)

logger = get_logger("monirouter.execution.executor")

# Errors that mean "this endpoint could not serve the read"
ENDPOINT_FAILURES = (InfraError, ABIDecodeError)

# Node errors meaning this exact transaction (or its nonce) was already accepted
ALREADY_SUBMITTED_MARKERS = (
    "already known",
    "known transaction",
    "already imported",
    "nonce too low",
)


def already_submitted(error: RPCResponseError) -> bool:
    message = error.message.lower()
    return any(marker in message for marker in ALREADY_SUBMITTED_MARKERS)


@dataclass(frozen=True)
class PreparedTransfer:
    """Output of the read-only phase: a signed transaction and its fee quote."""
    signed: SignedTransfer
    fee_units: int
    amount_units: int


Preparer = Callable[[Connection, TransferRequest, int], Awaitable[Union[PreparedTransfer, TransferFailure]]]


class TransferExecutor:
    """
    Encodes, signs, submits and classifies router transfers on one network.

    Example:
        executor = TransferExecutor(registry)
        outcome = await executor.execute(request)
        if outcome.ok:
            print(outcome.tx_hash, outcome.fee)
    """

    def __init__(self, registry: NetworkRegistry, settings: Optional[EngineSettings] = None):
        self.registry = registry
        self.settings = settings or registry.settings
        self._submit_lock = asyncio.Lock()

    # =========================================================================
    # Public operations
    # =========================================================================

    async def execute(self, request: TransferRequest) -> ExecutionOutcome:
        """Execute a P2P transfer on `request.network`."""
        if request.transfer_type != TransferType.P2P:
            raise ValidationError("execute() requires a P2P request; use execute_grant()")
        return await self._run(request, self._prepare_p2p)

    async def execute_grant(self, request: TransferRequest) -> ExecutionOutcome:
        """Pay `request.recipient` from the router's own float."""
        if request.transfer_type != TransferType.GRANT:
            raise ValidationError("execute_grant() requires a GRANT request")
        return await self._run(request, self._prepare_grant)

    # =========================================================================
    # Phases
    # =========================================================================

    def amount_units(self, amount: Number, network: str) -> int:
        """
        `amount` in `network`'s integer units.

        Raises:
            ValidationError: If the amount is below one unit on that network
        """
        config = self.registry.config(network)
        units = to_base_units(amount, config.decimals)
        if units <= 0:
            raise ValidationError(
                f"Amount {amount} is below one unit on {config.name}",
                ErrorCode.INVALID_AMOUNT,
                {"network": config.name, "decimals": config.decimals},
            )
        return units

    async def _run(self, request: TransferRequest, prepare: Preparer) -> ExecutionOutcome:
        config = self.registry.config(request.network)
        amount_units = self.amount_units(request.amount, request.network)

        async with self._submit_lock:
            prepared = await self._prepare_with_failover(request, amount_units, prepare)
            if isinstance(prepared, TransferFailure):
                return prepared
            return await self._submit_and_confirm(request, config, prepared)

    async def _prepare_with_failover(
        self,
        request: TransferRequest,
        amount_units: int,
        prepare: Preparer,
    ) -> Union[PreparedTransfer, TransferFailure]:
        network = request.network
        while True:
            conn = self.registry.get_connection(network)
            if conn.write is None:
                raise ConfigError("No operating account configured", ErrorCode.MISSING_OPERATOR_KEY)
            try:
                return await prepare(conn, request, amount_units)
            except RPCResponseError as e:
                logger.info(
                    f"Transfer rejected before submission on {network}",
                    extra={"context": {"network": network, "token": request.token, "error": e.message}},
                )
                return self._failure(network, ErrorKind.REVERTED, f"Transaction rejected by the network: {e.message}")
            except ENDPOINT_FAILURES as e:
                logger.warning(
                    f"Pre-submission read failed on {network} via {conn.endpoint}",
                    extra={"context": {"network": network, "error_code": e.code.value, "error": e.message}},
                )
                if not self.registry.report_failure(network):
                    return self._failure(
                        network,
                        ErrorKind.NETWORK_UNREACHABLE,
                        f"All {network} endpoints failed",
                    )

    async def _prepare_p2p(
        self,
        conn: Connection,
        request: TransferRequest,
        amount_units: int,
    ) -> Union[PreparedTransfer, TransferFailure]:
        config = conn.config
        nonce, balance, allowance = await asyncio.gather(
            conn.router.get_nonce(request.sender),
            conn.token.balance_of(request.sender),
            conn.token.allowance(request.sender, config.router_address),
        )

        if balance < amount_units:
            return self._failure(
                config.name,
                ErrorKind.INSUFFICIENT_BALANCE,
                f"Balance {self._human(balance, config)} is below {format_amount(request.amount)} {config.symbol}",
            )
        if allowance < amount_units:
            return self._failure(
                config.name,
                ErrorKind.INSUFFICIENT_ALLOWANCE,
                f"Allowance {self._human(allowance, config)} is below {format_amount(request.amount)} {config.symbol}",
            )

        fee_units, _ = await conn.router.calculate_fee(amount_units)
        data = encode_execute_p2p(request.sender, request.recipient, amount_units, nonce, request.token)
        signed = await self._estimate_and_sign(conn, data)
        return PreparedTransfer(signed=signed, fee_units=fee_units, amount_units=amount_units)

    async def _prepare_grant(
        self,
        conn: Connection,
        request: TransferRequest,
        amount_units: int,
    ) -> Union[PreparedTransfer, TransferFailure]:
        config = conn.config
        float_units = await conn.token.balance_of(config.router_address)
        if float_units < amount_units:
            return self._failure(
                config.name,
                ErrorKind.CONTRACT_UNDERFUNDED,
                f"Router float {self._human(float_units, config)} is below {format_amount(request.amount)} {config.symbol}",
            )

        fee_units, _ = await conn.router.calculate_fee(amount_units)
        data = encode_execute_grant(request.recipient, amount_units, request.token)
        signed = await self._estimate_and_sign(conn, data)
        return PreparedTransfer(signed=signed, fee_units=fee_units, amount_units=amount_units)

    async def _estimate_and_sign(self, conn: Connection, data: str) -> SignedTransfer:
        """Append builder code if configured, estimate gas (+margin), sign."""
        if conn.config.use_builder_code:
            data = append_builder_code(data, self.settings.builder_code)

        router = conn.config.router_address
        estimate = await conn.read.estimate_gas({"from": conn.write.address, "to": router, "data": data})
        gas = add_margin(estimate, self.settings.gas_margin_divisor)
        return await conn.write.sign(router, data, gas)

    async def _submit_and_confirm(
        self,
        request: TransferRequest,
        config: NetworkConfig,
        prepared: PreparedTransfer,
    ) -> ExecutionOutcome:
        network = config.name
        conn = self.registry.get_connection(network)
        tx_hash = prepared.signed.tx_hash

        try:
            tx_hash = await conn.write.broadcast(prepared.signed)
        except RPCResponseError as e:
            if not already_submitted(e):
                return self._failure(
                    network,
                    ErrorKind.REVERTED,
                    f"Transaction rejected by the network: {e.message}",
                    tx_hash=tx_hash,
                )
            logger.warning(
                f"Node already holds {tx_hash} on {network}; confirming by receipt",
                extra={"context": {"network": network, "tx_hash": tx_hash, "error": e.message}},
            )
        except InfraError as e:
            self.registry.report_failure(network)
            conn = self.registry.get_connection(network)
            logger.warning(
                f"Broadcast of {tx_hash} on {network} failed; confirming by receipt via {conn.endpoint}",
                extra={"context": {"network": network, "tx_hash": tx_hash, "error_code": e.code.value}},
            )
        else:
            logger.info(
                f"Transfer submitted on {network}: {tx_hash}",
                extra={"context": {
                    "network": network,
                    "tx_hash": tx_hash,
                    "token": request.token,
                    "nonce": prepared.signed.nonce,
                    "gas": prepared.signed.gas,
                }},
            )

        return await self._confirm(request, config, conn, prepared, tx_hash)

    async def _confirm(
        self,
        request: TransferRequest,
        config: NetworkConfig,
        conn: Connection,
        prepared: PreparedTransfer,
        tx_hash: str,
    ) -> ExecutionOutcome:
        network = config.name
        try:
            receipt = await conn.read.wait_for_receipt(
                tx_hash,
                timeout_seconds=self.settings.receipt_timeout_seconds,
                poll_interval_ms=self.settings.receipt_poll_interval_ms,
            )
        except ReceiptTimeoutError:
            return self._failure(
                network,
                ErrorKind.NETWORK_UNREACHABLE,
                f"Not confirmed within {self.settings.receipt_timeout_seconds}s",
                tx_hash=tx_hash,
            )
        except InfraError:
            self.registry.report_failure(network)
            return self._failure(
                network,
                ErrorKind.NETWORK_UNREACHABLE,
                "Confirmation status unknown",
                tx_hash=tx_hash,
            )
        except RPCResponseError:
            return self._failure(
                network,
                ErrorKind.NETWORK_UNREACHABLE,
                "Confirmation status unknown",
                tx_hash=tx_hash,
            )

        if not receipt_succeeded(receipt):
            return self._failure(network, ErrorKind.REVERTED, "Transaction reverted on-chain", tx_hash=tx_hash)

        return TransferSuccess(
            network=network,
            tx_hash=tx_hash,
            fee=from_base_units(prepared.fee_units, config.decimals),
            amount=request.amount,
            amount_units=prepared.amount_units,
            symbol=config.symbol,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _failure(
        self,
        network: str,
        kind: ErrorKind,
        detail: str,
        tx_hash: Optional[str] = None,
    ) -> TransferFailure:
        return failure(network, kind, detail, tx_hash=tx_hash, limit=self.settings.max_detail_length)

    @staticmethod
    def _human(units: int, config: NetworkConfig) -> str:
        return f"{format_amount(from_base_units(units, config.decimals))} {config.symbol}"
