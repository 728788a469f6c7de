"""
tests/unit/test_signer.py - Operating-account signing against a JSON-RPC node.
"""

import pytest
from eth_account import Account
from eth_utils import keccak, to_checksum_address, to_hex

from chains.providers import RPCProvider
from chains.signer import TransactionSigner
from fakes import RPCNode

URL = "https://base-0.example"
ROUTER = "0x" + "a1" * 20
CALLDATA = "0x12345678" + "00" * 32


@pytest.fixture
def account():
    return Account.create()


def make_signer(node: RPCNode, account, chain_id: int = 8453) -> TransactionSigner:
    provider = RPCProvider("base", URL, retry_delay_ms=0, client=node.client())
    return TransactionSigner(provider, account, chain_id)


class TestSign:

    @pytest.mark.asyncio
    async def test_legacy_transaction_fields(self, account):
        node = RPCNode(chain_id=8453, gas_price=2_500_000, nonce=7)
        signed = await make_signer(node, account).sign(ROUTER, CALLDATA, gas=120_000)

        assert signed.nonce == 7
        assert signed.gas == 120_000
        expected = account.sign_transaction({
            "to": to_checksum_address(ROUTER),
            "value": 0,
            "data": CALLDATA,
            "gas": 120_000,
            "gasPrice": 2_500_000,
            "nonce": 7,
            "chainId": 8453,
        })
        assert signed.raw == to_hex(expected.raw_transaction)

    @pytest.mark.asyncio
    async def test_nonce_read_with_pending_tag(self, account):
        node = RPCNode(nonce=3)
        await make_signer(node, account).sign(ROUTER, CALLDATA, gas=100_000)
        (count,) = [r for r in node.requests if r["method"] == "eth_getTransactionCount"]
        assert count["params"] == [account.address, "pending"]

    @pytest.mark.asyncio
    async def test_hash_matches_raw_transaction(self, account):
        signed = await make_signer(RPCNode(), account).sign(ROUTER, CALLDATA, gas=100_000)
        assert signed.tx_hash == to_hex(keccak(hexstr=signed.raw))
        assert signed.raw.startswith("0x")
        assert Account.recover_transaction(signed.raw) == account.address

    @pytest.mark.asyncio
    async def test_chain_id_is_bound(self, account):
        node = RPCNode()
        on_base = await make_signer(node, account, chain_id=8453).sign(ROUTER, CALLDATA, gas=100_000)
        on_other = await make_signer(node, account, chain_id=56).sign(ROUTER, CALLDATA, gas=100_000)
        assert on_base.raw != on_other.raw
        assert on_base.tx_hash != on_other.tx_hash


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_sends_raw_and_returns_hash(self, account):
        node = RPCNode()
        signer = make_signer(node, account)
        signed = await signer.sign(ROUTER, CALLDATA, gas=100_000)

        tx_hash = await signer.broadcast(signed)

        assert node.raw_sent == [signed.raw]
        assert tx_hash == signed.tx_hash
        assert tx_hash in node.receipts
