"""
execution/funds.py - Pre-flight balance and allowance checks.

FundsVerifier never raises for a network that cannot be read: a read failure
advances that network's endpoint cursor, the check is attempted once more on
the new endpoint, and if that fails too an unreachable (all-false) status is
returned. A cross-network scan therefore always completes.
"""

import asyncio
from decimal import Decimal
from typing import List, Optional, Tuple

from chains.registry import NetworkRegistry
from core.constants import FUNDS_CHECK_ATTEMPTS
from core.exceptions import ABIDecodeError, InfraError, RouterError, RPCResponseError
from core.logging import get_logger
from core.math import Number, from_base_units, to_base_units
from core.models import FundsStatus

logger = get_logger("monirouter.execution.funds")

# Read failures that count against the endpoint
READ_FAILURES = (InfraError, RPCResponseError, ABIDecodeError)


class FundsVerifier:
    """Balance / allowance reads for one sender across configured networks."""

    def __init__(self, registry: NetworkRegistry, attempts: int = FUNDS_CHECK_ATTEMPTS):
        self.registry = registry
        self.attempts = max(1, attempts)

    async def _read_funds(self, address: str, network: str) -> Tuple[int, int]:
        conn = self.registry.get_connection(network)
        balance, allowance = await asyncio.gather(
            conn.token.balance_of(address),
            conn.token.allowance(address, conn.config.router_address),
        )
        return balance, allowance

    async def check_funds(self, address: str, amount: Number, network: str) -> FundsStatus:
        """
        Compare `address`'s balance and router allowance against `amount`.

        The comparison is done in the network's integer units. An amount
        below one unit on this network is never covered.

        Returns:
            FundsStatus (reachable=False if every attempt failed)
        """
        config = self.registry.config(network)
        amount_units = to_base_units(amount, config.decimals)

        for attempt in range(1, self.attempts + 1):
            try:
                balance, allowance = await self._read_funds(address, network)
            except READ_FAILURES as e:
                logger.warning(
                    f"Funds check failed on {network} (attempt {attempt}/{self.attempts})",
                    extra={"context": {"network": network, "error_code": e.code.value, "error": e.message}},
                )
                if attempt < self.attempts:
                    self.registry.report_failure(network)
                continue

            return FundsStatus(
                network=network,
                has_balance=amount_units > 0 and balance >= amount_units,
                has_allowance=amount_units > 0 and allowance >= amount_units,
                balance=from_base_units(balance, config.decimals),
                allowance=from_base_units(allowance, config.decimals),
                symbol=config.symbol,
            )

        return FundsStatus.unreachable(network, config.symbol)

    async def scan_alternates(
        self,
        address: str,
        amount: Number,
        exclude_network: Optional[str] = None,
    ) -> List[FundsStatus]:
        """
        Check every configured network except `exclude_network`, concurrently.

        Results are returned in registry (configuration) order.
        """
        networks = [n for n in self.registry.networks if n != exclude_network]
        if not networks:
            return []
        results = await asyncio.gather(
            *(self.check_funds(address, amount, network) for network in networks)
        )
        logger.debug(
            f"Scanned {len(results)} alternate networks",
            extra={"context": {
                "exclude_network": exclude_network,
                "viable": [s.network for s in results if s.is_viable],
            }},
        )
        return list(results)

    # Name used by chat-layer collaborators
    check_funds_across_networks = scan_alternates

    async def get_balance(self, address: str, network: str) -> Tuple[Decimal, str]:
        """
        Token balance of `address` on `network` in human units.

        Raises:
            RouterError: If the balance cannot be read after failover
        """
        config = self.registry.config(network)
        last_error: Optional[RouterError] = None

        for attempt in range(1, self.attempts + 1):
            conn = self.registry.get_connection(network)
            try:
                balance = await conn.token.balance_of(address)
            except READ_FAILURES as e:
                last_error = e
                if attempt < self.attempts:
                    self.registry.report_failure(network)
                continue
            return from_base_units(balance, config.decimals), config.symbol

        raise last_error
