"""
execution/batch.py - Multi-recipient send.

Recipients are processed strictly one after another in submission order;
the operating account's nonce is never shared by two in-flight submissions.
Each recipient gets its own idempotency token "{command_id}_{tag}".
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from core.constants import ErrorKind, TransferType
from core.logging import get_logger
from core.math import Number
from core.models import ExecutionOutcome, TransferRequest, TransferSuccess, failure
from execution.router import CrossChainRouter
from identity.resolver import IdentityResolver, normalize_tag

logger = get_logger("monirouter.execution.batch")


def batch_token(command_id: str, tag: str) -> str:
    return f"{command_id}_{tag}"


@dataclass(frozen=True)
class BatchItem:
    """Outcome for one recipient of a batch."""
    tag: str
    recipient: Optional[str]
    outcome: ExecutionOutcome


@dataclass
class BatchResult:
    """Per-recipient outcomes in submission order."""
    command_id: str
    items: List[BatchItem] = field(default_factory=list)

    @property
    def succeeded(self) -> List[BatchItem]:
        return [item for item in self.items if item.outcome.ok]

    @property
    def failed(self) -> List[BatchItem]:
        return [item for item in self.items if not item.outcome.ok]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.items) and not self.failed

    @property
    def total_net(self) -> Decimal:
        """Sum received by recipients after fees."""
        return sum(
            (item.outcome.net_amount for item in self.items if isinstance(item.outcome, TransferSuccess)),
            Decimal("0"),
        )

    def summary(self) -> str:
        return f"{len(self.succeeded)}/{len(self.items)} transfers completed"


def unique_tags(tags: Iterable[str]) -> List[str]:
    """Normalized tags, first occurrence wins."""
    seen = []
    for tag in tags:
        normalized = normalize_tag(tag)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


async def send_batch(
    router: CrossChainRouter,
    resolver: IdentityResolver,
    sender: str,
    tags: Iterable[str],
    amount: Number,
    command_id: str,
    network: str,
    reroute: bool = True,
) -> BatchResult:
    """
    Send `amount` to every tag in order.

    An unresolved tag, or one resolving to the sender, fails for that
    recipient only with RECIPIENT_UNRESOLVED; no chain call is made for it.
    """
    result = BatchResult(command_id=command_id)
    sender = sender.lower()

    for tag in unique_tags(tags):
        recipient = await resolver.resolve_recipient(tag)
        if recipient is None:
            result.items.append(BatchItem(
                tag, None, failure(network, ErrorKind.RECIPIENT_UNRESOLVED, f"@{tag} not found"),
            ))
            continue
        if recipient.lower() == sender:
            result.items.append(BatchItem(
                tag, recipient, failure(network, ErrorKind.RECIPIENT_UNRESOLVED, "Cannot send to yourself"),
            ))
            continue

        request = TransferRequest(
            sender=sender,
            recipient=recipient,
            amount=amount,
            token=batch_token(command_id, tag),
            network=network,
            transfer_type=TransferType.P2P,
        )
        outcome = await router.route_and_execute(request, reroute=reroute)
        result.items.append(BatchItem(tag, request.recipient, outcome))

    logger.info(
        f"Batch {command_id}: {result.summary()}",
        extra={"context": {
            "command_id": command_id,
            "network": network,
            "succeeded": len(result.succeeded),
            "failed": len(result.failed),
        }},
    )
    return result
