# PATH: tests/unit/test_error_codes.py
"""
Unit tests for the ErrorCode / ErrorKind contract.

Ensures every ErrorCode.X / ErrorKind.X referenced in the codebase exists in
its enum, and that exceptions carry the right codes.
"""

import re
import unittest
from pathlib import Path
from typing import Set

from core.constants import FUNDS_FAILURE_KINDS, ErrorCode, ErrorKind
from core.exceptions import (
    ABIDecodeError,
    ConfigError,
    InfraError,
    ReceiptTimeoutError,
    RouterError,
    RPCError,
    RPCResponseError,
    RPCTimeoutError,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent


class TestEnumUsageContract(unittest.TestCase):
    """Test that all enum usages in the codebase are valid."""

    SCAN_PATTERNS = [
        "core/**/*.py",
        "chains/**/*.py",
        "config/**/*.py",
        "execution/**/*.py",
        "distribution/**/*.py",
        "identity/**/*.py",
        "jobs/**/*.py",
    ]

    def find_usages(self, enum_name: str) -> Set[str]:
        usages = set()
        files_scanned = 0
        for pattern in self.SCAN_PATTERNS:
            for filepath in PROJECT_ROOT.glob(pattern):
                if "__pycache__" in str(filepath):
                    continue
                content = filepath.read_text(encoding="utf-8")
                usages.update(re.findall(rf"{enum_name}\.([A-Z_]+)\b", content))
                files_scanned += 1
        self.assertGreater(files_scanned, 0, "No files scanned!")
        return usages

    def test_all_errorcode_usages_exist(self):
        invalid = self.find_usages("ErrorCode") - {code.name for code in ErrorCode}
        self.assertEqual(invalid, set(), f"Invalid ErrorCode usages found: {invalid}")

    def test_all_errorkind_usages_exist(self):
        invalid = self.find_usages("ErrorKind") - {kind.name for kind in ErrorKind}
        self.assertEqual(invalid, set(), f"Invalid ErrorKind usages found: {invalid}")

    def test_values_are_upper_snake_case(self):
        for enum in (ErrorCode, ErrorKind):
            for member in enum:
                self.assertRegex(member.value, r"^[A-Z][A-Z0-9_]+$")
                self.assertEqual(member.name, member.value)

    def test_funds_failures_are_reroutable_kinds(self):
        self.assertEqual(
            FUNDS_FAILURE_KINDS,
            {ErrorKind.INSUFFICIENT_BALANCE, ErrorKind.INSUFFICIENT_ALLOWANCE},
        )


class TestExceptionCodes(unittest.TestCase):

    def test_transport_errors_are_infra(self):
        for exc in (RPCError("x"), RPCTimeoutError("x"), ReceiptTimeoutError("x", "0xabc")):
            self.assertIsInstance(exc, InfraError)

    def test_node_rejection_is_not_infra(self):
        exc = RPCResponseError("execution reverted", rpc_code=3)
        self.assertNotIsInstance(exc, InfraError)
        self.assertEqual(exc.code, ErrorCode.RPC_ERROR_RESPONSE)
        self.assertEqual(exc.rpc_code, 3)

    def test_receipt_timeout_keeps_hash(self):
        exc = ReceiptTimeoutError("slow", "0xabc", details={"network": "base"})
        self.assertEqual(exc.tx_hash, "0xabc")
        self.assertEqual(exc.details, {"tx_hash": "0xabc", "network": "base"})

    def test_str_includes_code(self):
        self.assertEqual(str(ABIDecodeError("bad")), "[ABI_DECODE_ERROR] bad")
        self.assertEqual(ConfigError("x").code, ErrorCode.CONFIG_INVALID)

    def test_base_defaults(self):
        exc = RouterError("boom")
        self.assertEqual(exc.code, ErrorCode.UNKNOWN)
        self.assertEqual(exc.details, {})


if __name__ == "__main__":
    unittest.main()
