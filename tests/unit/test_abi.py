"""
tests/unit/test_abi.py - Calldata encoding and builder code suffix.
"""

import pytest
from eth_abi import decode, encode

from chains.abi import (
    EXECUTE_P2P_TYPES,
    SELECTOR_ALLOWANCE,
    SELECTOR_BALANCE_OF,
    SELECTOR_EXECUTE_P2P,
    append_builder_code,
    builder_code_suffix,
    decode_fee,
    decode_uint,
    encode_balance_of,
    encode_execute_p2p,
)
from core.exceptions import ABIDecodeError, ConfigError

ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20


class TestSelectors:

    def test_erc20_selectors(self):
        assert SELECTOR_BALANCE_OF == "0x70a08231"
        assert SELECTOR_ALLOWANCE == "0xdd62ed3e"

    def test_balance_of_layout(self):
        data = encode_balance_of(ALICE)
        assert data.startswith(SELECTOR_BALANCE_OF)
        assert len(data) == 10 + 64
        assert data.endswith("11" * 20)

    def test_execute_p2p_carries_command_id(self):
        data = encode_execute_p2p(ALICE, BOB, 15_000_000, 7, "msg_42_bob")
        assert data.startswith(SELECTOR_EXECUTE_P2P)
        sender, recipient, amount, nonce, command_id = decode(
            EXECUTE_P2P_TYPES, bytes.fromhex(data[10:])
        )
        assert sender.lower() == ALICE
        assert recipient.lower() == BOB
        assert (amount, nonce, command_id) == (15_000_000, 7, "msg_42_bob")


class TestDecoding:

    def test_decode_uint(self):
        assert decode_uint("0x" + encode(["uint256"], [10**18]).hex()) == 10**18

    def test_decode_fee(self):
        raw = "0x" + encode(["uint256", "uint256"], [150_000, 14_850_000]).hex()
        assert decode_fee(raw) == (150_000, 14_850_000)

    @pytest.mark.parametrize("raw", ["", "0x", "0x1234"])
    def test_bad_results_raise(self, raw):
        with pytest.raises(ABIDecodeError):
            decode_uint(raw)


class TestBuilderCode:

    def test_suffix_format(self):
        suffix = builder_code_suffix("bc_qt9yxo1d")
        assert suffix.startswith("8021")
        assert suffix.endswith("8021")
        assert len(suffix) == 4 + 64 + 4
        payload = bytes.fromhex(suffix[4:-4])
        assert payload.rstrip(b"\x00") == b"bc_qt9yxo1d"

    def test_exactly_32_bytes_fits(self):
        assert len(builder_code_suffix("x" * 32)) == 72

    def test_too_long(self):
        with pytest.raises(ConfigError):
            builder_code_suffix("x" * 33)

    def test_appended_after_call(self):
        data = encode_balance_of(ALICE)
        tagged = append_builder_code(data, "bc_qt9yxo1d")
        assert tagged.startswith(data)
        assert tagged[len(data):] == builder_code_suffix("bc_qt9yxo1d")

    def test_not_appended_to_non_hex(self):
        assert append_builder_code("", "bc") == ""
        assert append_builder_code("deadbeef", "bc") == "deadbeef"
