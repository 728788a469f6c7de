# PATH: execution/__init__.py
"""
Execution layer of the payment router.

- funds: pre-flight balance / allowance checks (FundsVerifier)
- executor: encode, sign, submit, classify (TransferExecutor)
- state_machine: route states and transitions
- router: cross-chain rerouting (CrossChainRouter)
- batch: sequential multi-recipient send
- ledger: append-only ledger sinks
- messages: user-facing text per outcome
"""

from execution.state_machine import (
    RouteState,
    RouteStateMachine,
    StateTransition,
    VALID_TRANSITIONS,
)
from execution.funds import FundsVerifier
from execution.executor import PreparedTransfer, TransferExecutor
from execution.router import (
    AlternateSelection,
    CrossChainRouter,
    no_alternate_outcome,
    reverify_outcome,
    select_alternate,
    should_scan,
)
from execution.ledger import InMemoryLedger, JsonlLedger, LedgerSink
from execution.batch import BatchItem, BatchResult, batch_token, send_batch
from execution.messages import describe_outcome, message_class

__all__ = [
    # State machine
    "RouteState",
    "RouteStateMachine",
    "StateTransition",
    "VALID_TRANSITIONS",
    # Funds / executor / router
    "FundsVerifier",
    "PreparedTransfer",
    "TransferExecutor",
    "AlternateSelection",
    "CrossChainRouter",
    "no_alternate_outcome",
    "reverify_outcome",
    "select_alternate",
    "should_scan",
    # Ledger
    "InMemoryLedger",
    "JsonlLedger",
    "LedgerSink",
    # Batch
    "BatchItem",
    "BatchResult",
    "batch_token",
    "send_batch",
    # Messages
    "describe_outcome",
    "message_class",
]
