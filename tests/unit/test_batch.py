"""
tests/unit/test_batch.py - Multi-recipient sends.
"""

from decimal import Decimal

import pytest

from core.constants import ErrorKind
from execution.batch import batch_token, send_batch, unique_tags
from fakes import ALICE, BOB, CAROL, DAVE, make_engine, network_config
from identity.resolver import DirectoryResolver


@pytest.fixture
def engine():
    engine = make_engine([network_config("xnet", salt="a"), network_config("ynet", salt="b")])
    engine.chain["xnet"].fund(ALICE, balance="100", allowance="100")
    return engine


@pytest.fixture
def resolver():
    return DirectoryResolver(tags={"alice": ALICE, "bob": BOB, "carol": CAROL, "dave": DAVE})


def test_unique_tags_keeps_first_occurrence():
    assert unique_tags(["@Bob", "carol", "bob", " @carol ", "", "dave"]) == ["bob", "carol", "dave"]


def test_batch_token():
    assert batch_token("msg_9", "bob") == "msg_9_bob"


@pytest.mark.asyncio
async def test_sequential_in_submission_order(engine, resolver):
    result = await send_batch(
        engine.router, resolver, ALICE, ["@carol", "@bob", "@dave"], "2", "msg_9", "xnet",
    )
    assert result.all_succeeded
    assert [item.tag for item in result.items] == ["carol", "bob", "dave"]
    tokens = [s.args[4] for s in engine.chain.submissions]
    assert tokens == ["msg_9_carol", "msg_9_bob", "msg_9_dave"]
    assert [s.args[3] for s in engine.chain.submissions] == [0, 1, 2]
    assert result.total_net == Decimal("5.94")
    assert result.summary() == "3/3 transfers completed"


@pytest.mark.asyncio
async def test_unresolved_and_self_fail_individually(engine, resolver):
    result = await send_batch(
        engine.router, resolver, ALICE, ["nobody", "alice", "bob"], "2", "msg_10", "xnet",
    )
    kinds = [None if item.outcome.ok else item.outcome.kind for item in result.items]
    assert kinds == [ErrorKind.RECIPIENT_UNRESOLVED, ErrorKind.RECIPIENT_UNRESOLVED, None]
    assert result.items[0].recipient is None
    assert len(result.failed) == 2
    assert not result.all_succeeded
    assert len(engine.chain.submissions) == 1


@pytest.mark.asyncio
async def test_duplicate_tags_sent_once(engine, resolver):
    result = await send_batch(engine.router, resolver, ALICE, ["bob", "@BOB"], "1", "msg_11", "xnet")
    assert len(result.items) == 1
    assert len(engine.chain.submissions) == 1


@pytest.mark.asyncio
async def test_running_out_mid_batch(resolver):
    engine = make_engine([network_config("xnet")])
    engine.chain["xnet"].fund(ALICE, balance="3", allowance="100")
    result = await send_batch(engine.router, resolver, ALICE, ["bob", "carol"], "2", "msg_12", "xnet")
    assert result.items[0].outcome.ok
    assert result.items[1].outcome.kind == ErrorKind.INSUFFICIENT_BALANCE
    assert result.items[1].outcome.checked_all_networks
