"""
execution/router.py - Cross-Chain Router.

Runs one logical transfer through the route state machine:

    TRYING(preferred) --funds failure--> SCANNING(alternates)
        --viable alternate--> REROUTING(chosen) --allowance ok--> TRYING(chosen)

Only INSUFFICIENT_BALANCE / INSUFFICIENT_ALLOWANCE on the preferred network
start a scan. Every other outcome is terminal. The alternate is chosen by
`select_alternate`, a pure function of the scan result; no state-mutating
call is ever made on a network that was not selected.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from core.constants import FUNDS_FAILURE_KINDS, ErrorKind, TransferType
from core.format_money import format_amount
from core.logging import get_logger, log_transfer
from core.models import (
    ExecutionOutcome,
    FundsStatus,
    LedgerEntry,
    TransferFailure,
    TransferRequest,
    TransferSuccess,
    bound_detail,
)
from execution.executor import TransferExecutor
from execution.funds import FundsVerifier
from execution.ledger import LedgerSink
from execution.state_machine import RouteState, RouteStateMachine

logger = get_logger("monirouter.execution.router")


@dataclass(frozen=True)
class AlternateSelection:
    """Result of choosing among scanned networks."""
    chosen: Optional[FundsStatus] = None
    # First network with balance but without allowance
    balance_only: Optional[FundsStatus] = None


# =============================================================================
# TRANSITION FUNCTIONS
# =============================================================================

def should_scan(outcome: ExecutionOutcome, reroute: bool = True) -> bool:
    """TRYING -> SCANNING only for a funds failure with rerouting enabled."""
    return (
        reroute
        and isinstance(outcome, TransferFailure)
        and outcome.kind in FUNDS_FAILURE_KINDS
    )


def select_alternate(statuses: Sequence[FundsStatus]) -> AlternateSelection:
    """
    Pick the first network (in scan order) with balance AND allowance.

    A balance-only network is kept as a fallback report, never selected.
    """
    balance_only = None
    for status in statuses:
        if status.is_viable:
            return AlternateSelection(chosen=status)
        if status.has_balance and balance_only is None:
            balance_only = status
    return AlternateSelection(balance_only=balance_only)


def no_alternate_outcome(
    original: TransferFailure,
    selection: AlternateSelection,
) -> TransferFailure:
    """SCANNING -> FAILED: needs-authorization or the annotated original."""
    if selection.balance_only is not None:
        alt = selection.balance_only
        return TransferFailure(
            network=original.network,
            kind=ErrorKind.NEEDS_AUTHORIZATION,
            detail=bound_detail(
                f"{format_amount(alt.balance)} {alt.symbol} available on {alt.network} but the router is not authorized there"
            ),
            checked_all_networks=True,
            alternate=alt,
        )
    return replace(original, checked_all_networks=True)


def reverify_outcome(
    original: TransferFailure,
    status: FundsStatus,
) -> Optional[TransferFailure]:
    """
    REROUTING -> TRYING check.

    Returns None if the chosen network is still viable, else the terminal
    failure to report.
    """
    if status.is_viable:
        return None
    if status.has_balance:
        return no_alternate_outcome(original, AlternateSelection(balance_only=status))
    return replace(original, checked_all_networks=True)


# =============================================================================
# ROUTER
# =============================================================================

class CrossChainRouter:
    """
    Executes transfers with automatic cross-chain rerouting.

    Example:
        router = CrossChainRouter(executor, verifier, ledger=JsonlLedger("ledger.jsonl"))
        outcome = await router.route_and_execute(request)
        print(outcome.network, outcome.ok)
    """

    def __init__(
        self,
        executor: TransferExecutor,
        verifier: FundsVerifier,
        ledger: Optional[LedgerSink] = None,
    ):
        self.executor = executor
        self.verifier = verifier
        self.ledger = ledger

    async def route_and_execute(
        self,
        request: TransferRequest,
        reroute: bool = True,
    ) -> ExecutionOutcome:
        """
        Execute `request`, rerouting to an alternate network on funds failure.

        The returned outcome's `network` is the network actually used.
        Grants never reroute.
        """
        machine = RouteStateMachine(token=request.token, network=request.network)

        if request.transfer_type == TransferType.GRANT:
            outcome = await self.executor.execute_grant(request)
            return await self._finish(machine, request, outcome)

        outcome = await self.executor.execute(request)
        if not should_scan(outcome, reroute):
            return await self._finish(machine, request, outcome)

        machine.transition_to(RouteState.SCANNING, reason=outcome.kind.value)
        statuses = await self.verifier.scan_alternates(
            request.sender, request.amount, exclude_network=request.network
        )
        selection = select_alternate(statuses)

        if selection.chosen is None:
            return await self._finish(machine, request, no_alternate_outcome(outcome, selection))

        alternate = selection.chosen.network
        machine.transition_to(RouteState.REROUTING, reason="viable alternate", network=alternate)
        recheck = await self.verifier.check_funds(request.sender, request.amount, alternate)
        refused = reverify_outcome(outcome, recheck)
        if refused is not None:
            return await self._finish(machine, request, refused)

        machine.transition_to(RouteState.TRYING, reason="allowance confirmed")
        rerouted = request.on_network(alternate)
        logger.info(
            f"Rerouting {request.token} from {request.network} to {alternate}",
            extra={"context": {"token": request.token, "from": request.network, "to": alternate}},
        )
        outcome = await self.executor.execute(rerouted)
        if isinstance(outcome, TransferSuccess):
            outcome = replace(outcome, rerouted_from=request.network)
        return await self._finish(machine, rerouted, outcome)

    # Name used by chat-layer collaborators
    async def check_funds_across_networks(
        self,
        sender: str,
        amount,
        exclude_network: Optional[str] = None,
    ) -> List[FundsStatus]:
        return await self.verifier.scan_alternates(sender, amount, exclude_network)

    def check_amount(self, amount, network: str) -> int:
        """Integer units of `amount` on `network`; raises ValidationError below one unit."""
        return self.executor.amount_units(amount, network)

    async def _finish(
        self,
        machine: RouteStateMachine,
        request: TransferRequest,
        outcome: ExecutionOutcome,
    ) -> ExecutionOutcome:
        if isinstance(outcome, TransferSuccess):
            machine.transition_to(RouteState.SUCCEEDED)
            log_transfer(
                logger, request.token, outcome.network, outcome.status.value,
                tx_hash=outcome.tx_hash, fee=str(outcome.fee), rerouted_from=outcome.rerouted_from,
            )
        else:
            machine.transition_to(RouteState.FAILED, reason=outcome.kind.value)
            log_transfer(
                logger, request.token, outcome.network, outcome.status.value,
                tx_hash=outcome.tx_hash, error_kind=outcome.kind.value,
                checked_all_networks=outcome.checked_all_networks,
            )
        logger.debug("Route finished", extra={"context": machine.to_dict()})

        await self._record(request, outcome)
        return outcome

    async def _record(self, request: TransferRequest, outcome: ExecutionOutcome) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.record(LedgerEntry.from_outcome(request, outcome))
        except Exception as e:
            logger.error(
                f"Ledger write failed for {request.token}",
                extra={"context": {"token": request.token, "error": f"{type(e).__name__}: {e}"}},
            )
