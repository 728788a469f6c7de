"""
distribution/distributor.py - Admission-Controlled Distributor.

ROUND CONTRACT:
===============

A round pays `amount` to each of the first `capacity` claimants.

  - Positions 1..N. An admitted claim takes the lowest free position before
    its transfer runs; a failed transfer returns the position to the pool.
  - Check-and-admit is serialized by the round's admission lock; transfers
    run outside it (the executor serializes submissions itself).
  - A claimant holds at most one position at a time.
  - The round ends for CAPACITY only once N transfers have succeeded.
  - Funds, allowance and router-float failures end the round; reverted or
    unreachable transfers only release the position.
  - A transfer that was signed but never confirmed (unreachable with a
    transaction hash) keeps its position: it may still be mined.
  - A claim whose transfer raises releases its position before the error
    propagates.
  - After the wall-clock deadline no further claims are admitted. Claims
    already running are never aborted.
===============
"""

import asyncio
import heapq
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional, Set, Tuple

from core.constants import ErrorKind, TransferType
from core.logging import get_logger
from core.math import Number
from core.models import ClaimAdmission, EngineSettings, ExecutionOutcome, TransferRequest
from core.validators import validate_amount
from distribution.tags import extract_recipient_tag
from execution.router import CrossChainRouter
from identity.resolver import IdentityResolver, normalize_tag

logger = get_logger("monirouter.distribution")


class EndReason(str, Enum):
    """Why a round stopped admitting claims."""
    CAPACITY = "CAPACITY"
    FUNDS_EXHAUSTED = "FUNDS_EXHAUSTED"
    ALLOWANCE_EXHAUSTED = "ALLOWANCE_EXHAUSTED"
    CONTRACT_UNDERFUNDED = "CONTRACT_UNDERFUNDED"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"


class ClaimRejection(str, Enum):
    """Why a claim was not admitted."""
    DUPLICATE = "DUPLICATE"
    FULL = "FULL"
    ROUND_CLOSED = "ROUND_CLOSED"
    NO_TAG = "NO_TAG"
    UNRESOLVED_RECIPIENT = "UNRESOLVED_RECIPIENT"
    SELF_CLAIM = "SELF_CLAIM"
    PREVIOUSLY_FAILED = "PREVIOUSLY_FAILED"


# Failures that end the whole round
ROUND_ENDING_KINDS: Dict[ErrorKind, EndReason] = {
    ErrorKind.INSUFFICIENT_BALANCE: EndReason.FUNDS_EXHAUSTED,
    ErrorKind.INSUFFICIENT_ALLOWANCE: EndReason.ALLOWANCE_EXHAUSTED,
    ErrorKind.NEEDS_AUTHORIZATION: EndReason.ALLOWANCE_EXHAUSTED,
    ErrorKind.CONTRACT_UNDERFUNDED: EndReason.CONTRACT_UNDERFUNDED,
}


@dataclass(frozen=True)
class ClaimResult:
    """Answer to one claim: either an admission (with outcome) or a rejection."""
    claimant_id: str
    recipient_tag: Optional[str]
    admission: Optional[ClaimAdmission] = None
    rejection: Optional[ClaimRejection] = None

    @property
    def admitted(self) -> bool:
        return self.admission is not None

    @property
    def succeeded(self) -> bool:
        return self.admission is not None and self.admission.succeeded


@dataclass
class RoundSummary:
    """Final state of a round."""
    round_id: str
    capacity: int
    end_reason: Optional[EndReason]
    winners: List[ClaimAdmission] = field(default_factory=list)
    unconfirmed: List[ClaimAdmission] = field(default_factory=list)

    @property
    def claimed(self) -> int:
        return len(self.winners)

    @property
    def total_net(self) -> Decimal:
        return sum((w.outcome.net_amount for w in self.winners), Decimal("0"))


class DistributionRound:
    """
    One "first N claims" round.

    Example:
        round_ = distributor.start(sender, "5", capacity=3, network="base")
        result = await round_.on_claim("discord:123", "alice")
    """

    def __init__(
        self,
        router: CrossChainRouter,
        resolver: IdentityResolver,
        sender: str,
        amount: Number,
        capacity: int,
        network: str,
        round_id: str,
        duration_seconds: float,
        retry_failed_claimants: bool = False,
        transfer_type: TransferType = TransferType.P2P,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.router = router
        self.resolver = resolver
        self.sender = sender.lower()
        self.amount = validate_amount(amount)
        self.capacity = capacity
        self.network = network
        self.round_id = round_id
        self.retry_failed_claimants = retry_failed_claimants
        self.transfer_type = transfer_type
        self._clock = clock
        self.deadline = clock() + duration_seconds

        self._lock = asyncio.Lock()
        self._free_positions: List[int] = list(range(1, capacity + 1))
        heapq.heapify(self._free_positions)
        self._holding: Dict[str, int] = {}
        self._winners: Dict[str, ClaimAdmission] = {}
        self._unconfirmed: Dict[str, ClaimAdmission] = {}
        self._failed: Set[str] = set()
        self._end_reason: Optional[EndReason] = None
        self._ended = asyncio.Event()

    # =========================================================================
    # State accessors
    # =========================================================================

    @property
    def end_reason(self) -> Optional[EndReason]:
        return self._end_reason

    @property
    def is_open(self) -> bool:
        return self._end_reason is None

    @property
    def admitted_count(self) -> int:
        """Claims currently holding a position (in flight or succeeded)."""
        return len(self._holding)

    @property
    def winners(self) -> List[ClaimAdmission]:
        """Successful admissions ordered by position."""
        return sorted(self._winners.values(), key=lambda a: a.position)

    @property
    def unconfirmed(self) -> List[ClaimAdmission]:
        """Admissions whose transfer was signed but never confirmed; they keep their position."""
        return sorted(self._unconfirmed.values(), key=lambda a: a.position)

    def summary(self) -> RoundSummary:
        return RoundSummary(
            round_id=self.round_id,
            capacity=self.capacity,
            end_reason=self._end_reason,
            winners=self.winners,
            unconfirmed=self.unconfirmed,
        )

    def claim_token(self, claimant_id: str) -> str:
        return f"giveaway_{self.round_id}_{claimant_id}"

    # =========================================================================
    # Claims
    # =========================================================================

    async def on_claim(self, claimant_id: str, recipient_tag: Optional[str]) -> ClaimResult:
        """
        Admit (and execute) a claim, or reject it.

        Returns once the claim's transfer has a terminal outcome.
        """
        claimant_id = str(claimant_id)
        tag = normalize_tag(recipient_tag) if recipient_tag else None

        if not self._refresh_open():
            return self._reject(claimant_id, tag, ClaimRejection.ROUND_CLOSED)
        if not tag:
            return self._reject(claimant_id, tag, ClaimRejection.NO_TAG)

        recipient = await self.resolver.resolve_recipient(tag)
        if recipient is None:
            return self._reject(claimant_id, tag, ClaimRejection.UNRESOLVED_RECIPIENT)
        if recipient.lower() == self.sender:
            return self._reject(claimant_id, tag, ClaimRejection.SELF_CLAIM)

        async with self._lock:
            rejection = self._admission_check(claimant_id)
            if rejection is not None:
                return self._reject(claimant_id, tag, rejection)
            position = heapq.heappop(self._free_positions)
            self._holding[claimant_id] = position

        logger.info(
            f"Round {self.round_id}: admitted {claimant_id} at position {position}",
            extra={"context": {"round_id": self.round_id, "claimant_id": claimant_id, "position": position}},
        )

        request = TransferRequest(
            sender=self.sender,
            recipient=recipient,
            amount=self.amount,
            token=self.claim_token(claimant_id),
            network=self.network,
            transfer_type=self.transfer_type,
        )
        try:
            outcome = await self.router.route_and_execute(request, reroute=False)
        except BaseException:
            async with self._lock:
                self._release(claimant_id, position)
            raise

        async with self._lock:
            if outcome.ok:
                admission = self._admission(claimant_id, tag, position, outcome)
                self._winners[claimant_id] = admission
                if len(self._winners) >= self.capacity:
                    self._end(EndReason.CAPACITY)
            elif outcome.unconfirmed:
                # Position stays held: the transfer may still be mined
                admission = self._admission(claimant_id, tag, position, outcome)
                self._unconfirmed[claimant_id] = admission
                logger.warning(
                    f"Round {self.round_id}: {claimant_id} keeps position {position} pending {outcome.tx_hash}",
                    extra={"context": {
                        "round_id": self.round_id,
                        "claimant_id": claimant_id,
                        "position": position,
                        "tx_hash": outcome.tx_hash,
                    }},
                )
            else:
                self._release(claimant_id, position)
                admission = self._admission(claimant_id, tag, position, outcome)
                end_reason = ROUND_ENDING_KINDS.get(outcome.kind)
                if end_reason is not None:
                    self._end(end_reason)

        return ClaimResult(claimant_id=claimant_id, recipient_tag=tag, admission=admission)

    def _admission_check(self, claimant_id: str) -> Optional[ClaimRejection]:
        """Must be called with the admission lock held."""
        if not self._refresh_open():
            return ClaimRejection.ROUND_CLOSED
        if claimant_id in self._holding:
            return ClaimRejection.DUPLICATE
        if claimant_id in self._failed and not self.retry_failed_claimants:
            return ClaimRejection.PREVIOUSLY_FAILED
        if not self._free_positions:
            return ClaimRejection.FULL
        return None

    def _release(self, claimant_id: str, position: int) -> None:
        del self._holding[claimant_id]
        heapq.heappush(self._free_positions, position)
        if not self.retry_failed_claimants:
            self._failed.add(claimant_id)
        logger.info(
            f"Round {self.round_id}: released position {position} held by {claimant_id}",
            extra={"context": {"round_id": self.round_id, "claimant_id": claimant_id, "position": position}},
        )

    def _admission(
        self,
        claimant_id: str,
        tag: str,
        position: int,
        outcome: ExecutionOutcome,
    ) -> ClaimAdmission:
        return ClaimAdmission(
            claimant_id=claimant_id,
            recipient_tag=tag,
            position=position,
            outcome=outcome,
            admitted_count=len(self._holding),
            capacity=self.capacity,
        )

    def _reject(self, claimant_id: str, tag: Optional[str], reason: ClaimRejection) -> ClaimResult:
        logger.debug(
            f"Round {self.round_id}: rejected {claimant_id} ({reason.value})",
            extra={"context": {"round_id": self.round_id, "claimant_id": claimant_id, "reason": reason.value}},
        )
        return ClaimResult(claimant_id=claimant_id, recipient_tag=tag, rejection=reason)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _refresh_open(self) -> bool:
        if self._end_reason is None and self._clock() >= self.deadline:
            self._end(EndReason.TIMEOUT)
        return self._end_reason is None

    def _end(self, reason: EndReason) -> None:
        if self._end_reason is not None:
            return
        self._end_reason = reason
        self._ended.set()
        logger.info(
            f"Round {self.round_id} ended: {reason.value} ({len(self._winners)}/{self.capacity})",
            extra={"context": {
                "round_id": self.round_id,
                "end_reason": reason.value,
                "claimed": len(self._winners),
                "capacity": self.capacity,
            }},
        )

    def close(self, reason: EndReason = EndReason.CANCELLED) -> None:
        """Stop admitting claims. In-flight claims still complete."""
        self._end(reason)

    async def run(self, claims: AsyncIterator[Tuple[str, str]]) -> RoundSummary:
        """
        Consume (claimant_id, message_text) pairs until the round ends.

        Each claim is handled in its own task so admission decisions and
        transfers for different claimants overlap. Returns after every
        admitted claim has a terminal outcome. A claim that raises is
        logged; its position has already been returned to the pool.
        """
        iterator = claims.__aiter__()
        tasks: List[Tuple[str, asyncio.Task]] = []

        try:
            while self._refresh_open():
                remaining = self.deadline - self._clock()
                next_claim = asyncio.ensure_future(iterator.__anext__())
                ended = asyncio.ensure_future(self._ended.wait())
                done, _ = await asyncio.wait(
                    {next_claim, ended},
                    timeout=max(0.0, remaining),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                ended.cancel()
                if next_claim not in done:
                    next_claim.cancel()
                    continue
                try:
                    claimant_id, text = next_claim.result()
                except StopAsyncIteration:
                    break
                task = asyncio.ensure_future(self.on_claim(claimant_id, extract_recipient_tag(text)))
                tasks.append((str(claimant_id), task))
        finally:
            if tasks:
                results = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)
                for (claimant_id, _), result in zip(tasks, results):
                    if isinstance(result, Exception):
                        logger.error(
                            f"Round {self.round_id}: claim from {claimant_id} failed: {result}",
                            extra={"context": {
                                "round_id": self.round_id,
                                "claimant_id": claimant_id,
                                "error": f"{type(result).__name__}: {result}",
                            }},
                        )

        return self.summary()


class Distributor:
    """Starts distribution rounds against a shared router."""

    def __init__(
        self,
        router: CrossChainRouter,
        resolver: IdentityResolver,
        settings: Optional[EngineSettings] = None,
    ):
        self.router = router
        self.resolver = resolver
        self.settings = settings or EngineSettings()

    def start(
        self,
        sender: str,
        amount: Number,
        capacity: int,
        network: str,
        duration_seconds: Optional[float] = None,
        round_id: Optional[str] = None,
        transfer_type: TransferType = TransferType.P2P,
    ) -> DistributionRound:
        """
        Open a round after checking `amount` is at least one unit on `network`.

        Raises:
            ValidationError: Amount not positive or below one unit
            ConfigError: Unknown network
        """
        self.router.check_amount(validate_amount(amount), network)
        round_id = round_id or uuid.uuid4().hex[:12]
        duration = self.settings.giveaway_duration_seconds if duration_seconds is None else duration_seconds
        logger.info(
            f"Round {round_id} started: {capacity} x {amount} on {network}",
            extra={"context": {"round_id": round_id, "capacity": capacity, "amount": str(amount), "network": network}},
        )
        return DistributionRound(
            router=self.router,
            resolver=self.resolver,
            sender=sender,
            amount=amount,
            capacity=capacity,
            network=network,
            round_id=round_id,
            duration_seconds=duration,
            retry_failed_claimants=self.settings.retry_failed_claimants,
            transfer_type=transfer_type,
        )
