"""
chains - Network access for the payment router.

- providers.py: single-endpoint JSON-RPC client with bounded retry
- registry.py: network configs, endpoint cursors, connections
- abi.py: router / ERC-20 calldata encoding and builder code suffix
- contracts.py: token and router view-call wrappers
- signer.py: operating-account transaction signing
"""

from chains.providers import RPCProvider, RPCResponse, RPCStats, receipt_succeeded
from chains.registry import Connection, EndpointCursor, NetworkRegistry
from chains.contracts import RouterContract, TokenContract
from chains.signer import SignedTransfer, TransactionSigner

__all__ = [
    "Connection",
    "EndpointCursor",
    "NetworkRegistry",
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    "RouterContract",
    "SignedTransfer",
    "TokenContract",
    "TransactionSigner",
    "receipt_succeeded",
]
