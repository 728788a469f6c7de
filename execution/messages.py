"""
execution/messages.py - User-facing text for terminal outcomes.

Every outcome maps to exactly one message class. Messages are built from the
classified kind and the bounded detail only; transport errors never reach
users verbatim.
"""

from typing import Dict

from core.constants import ErrorKind
from core.format_money import format_amount, format_fee
from core.models import ExecutionOutcome, TransferFailure, TransferSuccess

SUCCESS_CLASS = "SUCCESS"

FAILURE_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INSUFFICIENT_BALANCE: "Insufficient balance on {network}.",
    ErrorKind.INSUFFICIENT_ALLOWANCE: (
        "Insufficient allowance to the router on {network}. "
        "Raise your allowance in MoniPay settings."
    ),
    ErrorKind.REVERTED: "Transaction failed on {network}.",
    ErrorKind.NETWORK_UNREACHABLE: "{network} is unreachable right now. Please try again later.",
    ErrorKind.CONTRACT_UNDERFUNDED: "The router on {network} does not hold enough funds for this payout.",
    ErrorKind.NEEDS_AUTHORIZATION: (
        "Funds found on {alternate}, but the router is not authorized there. "
        "Approve it on {alternate} and try again."
    ),
    ErrorKind.RECIPIENT_UNRESOLVED: "Recipient not found.",
}

# NETWORK_UNREACHABLE after signing: the transaction may still land
UNCONFIRMED_MESSAGE = "The payment on {network} was sent but is not confirmed yet. Check the transaction before retrying."


def message_class(outcome: ExecutionOutcome) -> str:
    """SUCCESS or the failure kind's value."""
    if isinstance(outcome, TransferSuccess):
        return SUCCESS_CLASS
    return outcome.kind.value


def describe_outcome(outcome: ExecutionOutcome) -> str:
    """Render an outcome as a single user-facing line."""
    if isinstance(outcome, TransferSuccess):
        text = (
            f"Sent {format_amount(outcome.net_amount)} {outcome.symbol} on {outcome.network} "
            f"(fee {format_fee(outcome.fee)}, tx {outcome.tx_hash[:18]}...)"
        )
        if outcome.rerouted_from:
            text += f" - rerouted from {outcome.rerouted_from}"
        return text

    return _describe_failure(outcome)


def _describe_failure(outcome: TransferFailure) -> str:
    alternate = outcome.alternate.network if outcome.alternate else outcome.network
    template = UNCONFIRMED_MESSAGE if outcome.unconfirmed else FAILURE_MESSAGES[outcome.kind]
    text = template.format(network=outcome.network, alternate=alternate)
    if outcome.kind == ErrorKind.INSUFFICIENT_BALANCE and outcome.checked_all_networks:
        text += " No other network has enough funds either."
    if outcome.tx_hash:
        text += f" (tx {outcome.tx_hash[:18]}...)"
    return text
