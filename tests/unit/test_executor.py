"""
tests/unit/test_executor.py - Transfer executor: phases, classification, failover.
"""

import asyncio
from decimal import Decimal

import pytest
from eth_account import Account
from eth_utils import keccak, to_hex

from chains.abi import builder_code_suffix
from core.constants import ErrorCode, ErrorKind, LedgerStatus, OutcomeStatus, TransferType
from core.exceptions import ConfigError, ValidationError
from core.models import EngineSettings, TransferRequest, TransferSuccess
from fakes import (
    ALICE,
    BOB,
    CAROL,
    FAST_SETTINGS,
    OPERATOR,
    RPCNode,
    make_engine,
    make_http_engine,
    network_config,
)


def p2p(amount="15", network="xnet", token="msg_1_bob", recipient=BOB):
    return TransferRequest(sender=ALICE, recipient=recipient, amount=amount, token=token, network=network)


def grant(amount="5", network="xnet", token="campaign_1"):
    return TransferRequest(
        sender=OPERATOR, recipient=BOB, amount=amount, token=token,
        network=network, transfer_type=TransferType.GRANT,
    )


@pytest.fixture
def engine():
    return make_engine([
        network_config("xnet", endpoints=2, salt="a"),
        network_config("bnet", endpoints=1, use_builder_code=True, salt="b"),
    ])


class TestP2P:

    @pytest.mark.asyncio
    async def test_success(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        outcome = await engine.executor.execute(p2p())

        assert isinstance(outcome, TransferSuccess)
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.network == "xnet"
        assert outcome.amount_units == 15_000_000
        assert outcome.fee == Decimal("0.15")
        assert outcome.net_amount == Decimal("14.85")

        (submission,) = engine.chain.submissions
        assert submission.method == "executeP2P"
        sender, recipient, amount, nonce, command_id = submission.args
        assert (amount, nonce, command_id) == (15_000_000, 0, "msg_1_bob")
        assert submission.tx_hash == outcome.tx_hash
        assert engine.chain["xnet"].balance(BOB) == 14_850_000

    @pytest.mark.asyncio
    async def test_insufficient_balance_never_submits(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="10", allowance="20")
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.INSUFFICIENT_BALANCE
        assert outcome.tx_hash is None
        assert engine.chain.submissions == []
        assert engine.chain.estimates == []

    @pytest.mark.asyncio
    async def test_insufficient_allowance_never_submits(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="10")
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.INSUFFICIENT_ALLOWANCE
        assert engine.chain.submissions == []

    @pytest.mark.asyncio
    async def test_estimate_rejection_is_reverted(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        engine.chain["xnet"].estimate_error = "execution reverted: duplicate command"
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.REVERTED
        assert outcome.tx_hash is None
        assert engine.chain.submissions == []
        assert engine.registry.cursor_position("xnet") == 0

    @pytest.mark.asyncio
    async def test_onchain_revert_carries_hash(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        engine.chain["xnet"].revert_next = 1
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.REVERTED
        assert outcome.tx_hash == engine.chain.submissions[0].tx_hash
        assert engine.chain["xnet"].balance(ALICE) == 20_000_000

    @pytest.mark.asyncio
    async def test_below_one_unit_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.executor.execute(p2p(amount="0.0000001"))

    @pytest.mark.asyncio
    async def test_grant_request_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.executor.execute(grant())

    @pytest.mark.asyncio
    async def test_requires_operating_account(self):
        engine = make_engine([network_config("xnet")], with_account=False)
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        with pytest.raises(ConfigError) as exc_info:
            await engine.executor.execute(p2p())
        assert exc_info.value.code == ErrorCode.MISSING_OPERATOR_KEY


class TestBuilderCode:

    @pytest.mark.asyncio
    async def test_appended_on_flagged_network(self, engine):
        engine.chain["bnet"].fund(ALICE, balance="20", allowance="20")
        outcome = await engine.executor.execute(p2p(network="bnet"))
        assert outcome.ok
        (submission,) = engine.chain.submissions
        assert submission.builder_suffix == builder_code_suffix(FAST_SETTINGS.builder_code)
        assert engine.chain.estimates[0]["data"] == submission.calldata

    @pytest.mark.asyncio
    async def test_absent_elsewhere(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        await engine.executor.execute(p2p())
        assert engine.chain.submissions[0].builder_suffix is None


class TestEndpointFailures:

    @pytest.mark.asyncio
    async def test_read_failure_moves_to_next_endpoint(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        engine.chain.down.add("https://xnet-0.example")
        outcome = await engine.executor.execute(p2p())
        assert outcome.ok
        assert engine.chain.submissions[0].endpoint == "https://xnet-1.example"

    @pytest.mark.asyncio
    async def test_all_endpoints_down(self, engine):
        engine.chain.down.update({"https://xnet-0.example", "https://xnet-1.example"})
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.NETWORK_UNREACHABLE
        assert "All xnet endpoints failed" in outcome.detail
        assert outcome.tx_hash is None

    @pytest.mark.asyncio
    async def test_broadcast_failure_keeps_hash_and_does_not_retry(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        engine.chain.broadcast_down.add("https://xnet-0.example")
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.NETWORK_UNREACHABLE
        assert outcome.tx_hash is not None
        assert engine.chain.submissions == []
        assert engine.registry.cursor_position("xnet") == 1

    @pytest.mark.asyncio
    async def test_receipt_failure_after_broadcast(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="20", allowance="20")
        engine.chain.receipt_down.add("https://xnet-0.example")
        outcome = await engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.NETWORK_UNREACHABLE
        assert outcome.tx_hash == engine.chain.submissions[0].tx_hash
        assert len(engine.chain.submissions) == 1


class TestGrant:

    @pytest.mark.asyncio
    async def test_paid_from_router_float(self, engine):
        engine.chain["xnet"].fund_router("100")
        outcome = await engine.executor.execute_grant(grant())
        assert outcome.ok
        (submission,) = engine.chain.submissions
        assert submission.method == "executeGrant"
        assert submission.args[1:] == (5_000_000, "campaign_1")

    @pytest.mark.asyncio
    async def test_underfunded_router(self, engine):
        engine.chain["xnet"].fund_router("1")
        outcome = await engine.executor.execute_grant(grant())
        assert outcome.kind == ErrorKind.CONTRACT_UNDERFUNDED
        assert engine.chain.submissions == []

    @pytest.mark.asyncio
    async def test_p2p_request_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.executor.execute_grant(p2p())


class TestSerialization:

    @pytest.mark.asyncio
    async def test_concurrent_transfers_use_sequential_nonces(self, engine):
        engine.chain["xnet"].fund(ALICE, balance="100", allowance="100")
        first, second = await asyncio.gather(
            engine.executor.execute(p2p(amount="10", token="msg_1_bob")),
            engine.executor.execute(p2p(amount="10", token="msg_1_carol", recipient=CAROL)),
        )
        assert first.ok and second.ok
        nonces = [s.args[3] for s in engine.chain.submissions]
        assert nonces == [0, 1]


class TestSubmissionOverRPC:
    """Real provider and signer against a scripted JSON-RPC node."""

    SETTINGS = EngineSettings(rpc_retry_delay_ms=0, receipt_poll_interval_ms=0, receipt_timeout_seconds=0)

    @pytest.fixture
    def node(self):
        return RPCNode(chain_id=8453)

    @pytest.fixture
    def http_engine(self, node):
        config = network_config("xnet", endpoints=2, chain_id=8453)
        return make_http_engine(config, node, Account.create(), settings=self.SETTINGS)

    @pytest.mark.asyncio
    async def test_success(self, node, http_engine):
        outcome = await http_engine.executor.execute(p2p())
        assert outcome.ok
        (raw,) = node.raw_sent
        assert outcome.tx_hash == to_hex(keccak(hexstr=raw))
        assert outcome.fee == Decimal("0.15")

    @pytest.mark.asyncio
    async def test_accepted_broadcast_that_timed_out_is_delivered(self, node, http_engine):
        node.send_script = ["timeout", "already known"]
        outcome = await http_engine.router.route_and_execute(p2p())

        assert len(node.raw_sent) == 1
        assert outcome.ok, outcome
        assert outcome.tx_hash == to_hex(keccak(hexstr=node.raw_sent[0]))
        (entry,) = http_engine.ledger.entries
        assert entry.status == LedgerStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_lost_broadcast_is_unconfirmed(self, node, http_engine):
        node.send_script = ["drop"]
        outcome = await http_engine.executor.execute(p2p())

        assert len(node.raw_sent) == 1
        assert outcome.kind == ErrorKind.NETWORK_UNREACHABLE
        assert outcome.unconfirmed
        assert outcome.tx_hash == to_hex(keccak(hexstr=node.raw_sent[0]))
        assert http_engine.registry.cursor_position("xnet") == 1

    @pytest.mark.asyncio
    async def test_unconfirmed_broadcast_recorded_as_unconfirmed(self, node, http_engine):
        node.send_script = ["drop"]
        outcome = await http_engine.router.route_and_execute(p2p())
        (entry,) = http_engine.ledger.entries
        assert entry.status == LedgerStatus.UNCONFIRMED
        assert entry.tx_hash == outcome.tx_hash

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [
        "already known",
        "known transaction: 0xabc",
        "nonce too low: next nonce 1, tx nonce 0",
    ])
    async def test_already_accepted_is_confirmed_by_receipt(self, node, http_engine, message):
        node.send_script = [f"mined:{message}"]
        outcome = await http_engine.executor.execute(p2p())

        assert outcome.ok, outcome
        assert len(node.raw_sent) == 1
        assert outcome.tx_hash == to_hex(keccak(hexstr=node.raw_sent[0]))

    @pytest.mark.asyncio
    async def test_nonce_taken_by_another_transaction(self, node, http_engine):
        node.send_script = ["nonce too low"]
        outcome = await http_engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.NETWORK_UNREACHABLE
        assert outcome.tx_hash == to_hex(keccak(hexstr=node.raw_sent[0]))

    @pytest.mark.asyncio
    async def test_rejected_broadcast_carries_local_hash(self, node, http_engine):
        node.send_script = ["insufficient funds for gas * price + value"]
        outcome = await http_engine.executor.execute(p2p())
        assert outcome.kind == ErrorKind.REVERTED
        assert outcome.tx_hash == to_hex(keccak(hexstr=node.raw_sent[0]))
        assert "insufficient funds for gas" in outcome.detail
