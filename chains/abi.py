"""
chains/abi.py - ABI encoding for the router and ERC-20 calls.

Only the functions the engine calls are covered:

    ERC20   balanceOf(address) -> uint256
            allowance(address owner, address spender) -> uint256
    Router  getNonce(address user) -> uint256
            calculateFee(uint256 amount) -> (uint256 fee, uint256 netAmount)
            executeP2P(address from, address to, uint256 amount,
                       uint256 nonce, string commandId) -> bool
            executeGrant(address to, uint256 amount, string campaignId) -> bool

Builder code (ERC-8021): "8021" + 32-byte zero-padded UTF-8 code + "8021",
appended after the encoded call.
"""

from eth_abi import decode, encode
from eth_utils import decode_hex, function_signature_to_4byte_selector, to_checksum_address

from core.constants import BUILDER_CODE_MARKER, BUILDER_CODE_PAYLOAD_BYTES
from core.exceptions import ABIDecodeError, ConfigError

SIG_BALANCE_OF = "balanceOf(address)"
SIG_ALLOWANCE = "allowance(address,address)"
SIG_GET_NONCE = "getNonce(address)"
SIG_CALCULATE_FEE = "calculateFee(uint256)"
SIG_EXECUTE_P2P = "executeP2P(address,address,uint256,uint256,string)"
SIG_EXECUTE_GRANT = "executeGrant(address,uint256,string)"

EXECUTE_P2P_TYPES = ["address", "address", "uint256", "uint256", "string"]
EXECUTE_GRANT_TYPES = ["address", "uint256", "string"]


def selector(signature: str) -> str:
    """0x-prefixed 4-byte function selector."""
    return "0x" + function_signature_to_4byte_selector(signature).hex()


SELECTOR_BALANCE_OF = selector(SIG_BALANCE_OF)
SELECTOR_ALLOWANCE = selector(SIG_ALLOWANCE)
SELECTOR_GET_NONCE = selector(SIG_GET_NONCE)
SELECTOR_CALCULATE_FEE = selector(SIG_CALCULATE_FEE)
SELECTOR_EXECUTE_P2P = selector(SIG_EXECUTE_P2P)
SELECTOR_EXECUTE_GRANT = selector(SIG_EXECUTE_GRANT)


def encode_call(signature: str, arg_types: list[str], args: list) -> str:
    """Selector + ABI-encoded arguments as a 0x hex string."""
    return selector(signature) + encode(arg_types, args).hex()


def encode_balance_of(owner: str) -> str:
    return encode_call(SIG_BALANCE_OF, ["address"], [to_checksum_address(owner)])


def encode_allowance(owner: str, spender: str) -> str:
    return encode_call(
        SIG_ALLOWANCE,
        ["address", "address"],
        [to_checksum_address(owner), to_checksum_address(spender)],
    )


def encode_get_nonce(user: str) -> str:
    return encode_call(SIG_GET_NONCE, ["address"], [to_checksum_address(user)])


def encode_calculate_fee(amount_units: int) -> str:
    return encode_call(SIG_CALCULATE_FEE, ["uint256"], [amount_units])


def encode_execute_p2p(
    sender: str,
    recipient: str,
    amount_units: int,
    nonce: int,
    command_id: str,
) -> str:
    """Encode executeP2P(from, to, amount, nonce, commandId)."""
    return encode_call(
        SIG_EXECUTE_P2P,
        EXECUTE_P2P_TYPES,
        [to_checksum_address(sender), to_checksum_address(recipient), amount_units, nonce, command_id],
    )


def encode_execute_grant(recipient: str, amount_units: int, campaign_id: str) -> str:
    """Encode executeGrant(to, amount, campaignId)."""
    return encode_call(
        SIG_EXECUTE_GRANT,
        EXECUTE_GRANT_TYPES,
        [to_checksum_address(recipient), amount_units, campaign_id],
    )


# =============================================================================
# DECODING
# =============================================================================

def _decode(types: list[str], hex_result: str) -> tuple:
    if not hex_result or hex_result == "0x":
        raise ABIDecodeError("Empty call result", details={"types": types})
    try:
        return decode(types, decode_hex(hex_result))
    except Exception as e:
        raise ABIDecodeError(
            f"Cannot decode {types}: {type(e).__name__}",
            details={"raw": hex_result[:100]},
        )


def decode_uint(hex_result: str) -> int:
    """Decode a single uint256 return value."""
    return _decode(["uint256"], hex_result)[0]


def decode_fee(hex_result: str) -> tuple[int, int]:
    """Decode calculateFee -> (fee, netAmount)."""
    fee, net_amount = _decode(["uint256", "uint256"], hex_result)
    return fee, net_amount


# =============================================================================
# BUILDER CODE
# =============================================================================

def builder_code_suffix(code: str) -> str:
    """
    Fixed-format attribution suffix.

    Raises:
        ConfigError: If the code does not fit in 32 bytes
    """
    raw = code.encode("utf-8")
    if len(raw) > BUILDER_CODE_PAYLOAD_BYTES:
        raise ConfigError(f"Builder code longer than {BUILDER_CODE_PAYLOAD_BYTES} bytes")
    padded = raw.ljust(BUILDER_CODE_PAYLOAD_BYTES, b"\x00")
    return f"{BUILDER_CODE_MARKER}{padded.hex()}{BUILDER_CODE_MARKER}"


def append_builder_code(calldata: str, code: str) -> str:
    """Append the attribution suffix to already-encoded calldata."""
    if not calldata or not calldata.startswith("0x"):
        return calldata
    return calldata + builder_code_suffix(code)
