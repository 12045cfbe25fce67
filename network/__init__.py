"""
NFT Machine Minter - Network Layer

Fullnode REST client and the chain gateway used by the collection coordinator.
"""

from .rpc import (
    AptosRestClient,
    NodeConfig,
    NodeError,
    NodeConnectionError,
    NodeNotFoundError,
    NodeTimeoutError
)
from .gateway import ChainGateway, TransactionReceipt, encode_argument

__all__ = [
    "AptosRestClient",
    "NodeConfig",
    "NodeError",
    "NodeConnectionError",
    "NodeNotFoundError",
    "NodeTimeoutError",
    "ChainGateway",
    "TransactionReceipt",
    "encode_argument"
]
