"""
chains/contracts.py - Thin read wrappers over the token and router contracts.
"""

from chains.abi import (
    decode_fee,
    decode_uint,
    encode_allowance,
    encode_balance_of,
    encode_calculate_fee,
    encode_get_nonce,
)
from chains.providers import RPCProvider


class TokenContract:
    """ERC-20 view calls."""

    def __init__(self, provider: RPCProvider, address: str):
        self.provider = provider
        self.address = address

    async def balance_of(self, owner: str) -> int:
        result = await self.provider.eth_call(self.address, encode_balance_of(owner))
        return decode_uint(result)

    async def allowance(self, owner: str, spender: str) -> int:
        result = await self.provider.eth_call(self.address, encode_allowance(owner, spender))
        return decode_uint(result)


class RouterContract:
    """Router view calls. Write payloads are built in chains.abi."""

    def __init__(self, provider: RPCProvider, address: str):
        self.provider = provider
        self.address = address

    async def get_nonce(self, user: str) -> int:
        """Per-sender replay-protection counter."""
        result = await self.provider.eth_call(self.address, encode_get_nonce(user))
        return decode_uint(result)

    async def calculate_fee(self, amount_units: int) -> tuple[int, int]:
        """Fee quote for `amount_units`: (fee, netAmount)."""
        result = await self.provider.eth_call(self.address, encode_calculate_fee(amount_units))
        return decode_fee(result)
