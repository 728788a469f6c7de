"""
chains/signer.py - Write handle for the shared operating account.

Signing and broadcasting are separate steps so the caller holds the
transaction hash even when the broadcast itself fails.
"""

from dataclasses import dataclass

from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address, to_hex

from chains.providers import RPCProvider


@dataclass(frozen=True)
class SignedTransfer:
    """A signed, not yet broadcast, transaction."""
    tx_hash: str
    raw: str
    nonce: int
    gas: int


class TransactionSigner:
    """
    Signs legacy (gasPrice) transactions with the operating account.

    The account nonce is read with the "pending" tag at signing time; callers
    serialize signing and broadcasting per account.
    """

    def __init__(self, provider: RPCProvider, account: LocalAccount, chain_id: int):
        self.provider = provider
        self.account = account
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self.account.address

    async def sign(self, to: str, data: str, gas: int) -> SignedTransfer:
        """Build and sign a call to `to` with calldata `data`."""
        nonce = await self.provider.get_transaction_count(self.address, "pending")
        gas_price = await self.provider.get_gas_price()

        tx = {
            "to": to_checksum_address(to),
            "value": 0,
            "data": data,
            "gas": gas,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        signed = self.account.sign_transaction(tx)
        return SignedTransfer(
            tx_hash=to_hex(signed.hash),
            raw=to_hex(signed.raw_transaction),
            nonce=nonce,
            gas=gas,
        )

    async def broadcast(self, signed: SignedTransfer) -> str:
        """Send a signed transaction; returns the hash reported by the node."""
        tx_hash = await self.provider.send_raw_transaction(signed.raw)
        return tx_hash or signed.tx_hash
