"""
NFT Machine Minter - Node REST Client

This module provides a REST client for the chain's fullnode API with
connection pooling, configuration management and error translation.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


DEFAULT_NODE_URL = "https://fullnode.devnet.aptoslabs.com/v1"
DEFAULT_FAUCET_URL = "https://faucet.devnet.aptoslabs.com"

PENDING_TRANSACTION = "pending_transaction"


class NodeError(Exception):
    """Base exception for node API errors."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: Optional[str] = None,
        vm_error_code: Optional[int] = None
    ):
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        self.vm_error_code = vm_error_code
        super().__init__(f"Node Error {status_code}: {message}")


class NodeConnectionError(NodeError):
    """Exception for node connection failures."""
    pass


class NodeTimeoutError(NodeError):
    """Exception for node timeout errors."""
    pass


class NodeNotFoundError(NodeError):
    """Exception for missing accounts, resources or transactions."""
    pass


@dataclass
class NodeConfig:
    """Configuration for the fullnode REST connection."""
    node_url: str = DEFAULT_NODE_URL
    faucet_url: Optional[str] = DEFAULT_FAUCET_URL
    timeout: int = 30
    max_retries: int = 3
    backoff_factor: float = 0.5
    wait_timeout: float = 60.0
    poll_interval: float = 1.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.node_url or not self.node_url.startswith(("http://", "https://")):
            raise ValueError(f"Node URL must be an http(s) URL: {self.node_url!r}")

        self.node_url = self.node_url.rstrip("/")
        if self.faucet_url:
            self.faucet_url = self.faucet_url.rstrip("/")

        if self.timeout <= 0:
            raise ValueError("Timeout must be positive")

        if self.wait_timeout <= 0 or self.poll_interval <= 0:
            raise ValueError("Wait timeout and poll interval must be positive")

    @classmethod
    def from_env(cls) -> 'NodeConfig':
        """Create node config from environment variables."""
        return cls(
            node_url=os.getenv("APTOS_NODE_URL", DEFAULT_NODE_URL),
            faucet_url=os.getenv("APTOS_FAUCET_URL", DEFAULT_FAUCET_URL) or None,
            timeout=int(os.getenv("APTOS_NODE_TIMEOUT", "30")),
            max_retries=int(os.getenv("APTOS_NODE_MAX_RETRIES", "3")),
            wait_timeout=float(os.getenv("APTOS_WAIT_TIMEOUT", "60")),
        )


class AptosRestClient:
    """
    Fullnode REST client covering the endpoints the minting workflow needs.
    """

    def __init__(self, config: Optional[NodeConfig] = None):
        """
        Initialize REST client.

        Args:
            config: Node configuration (uses environment if None)
        """
        self.config = config or NodeConfig.from_env()
        self.logger = logging.getLogger(__name__)

        self.session = requests.Session()

        # Only reads are retried at the HTTP level; submissions are never replayed
        retry_strategy = Retry(
            total=self.config.max_retries,
            backoff_factor=self.config.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=10)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update({"User-Agent": "nft-minter/1.0"})

        self._stats = {
            "total_requests": 0,
            "failed_requests": 0,
            "total_time": 0.0,
            "last_request_time": None
        }
        self._stats_lock = threading.Lock()

    def _request(
        self,
        method: str,
        path: str,
        base_url: Optional[str] = None,
        **kwargs
    ) -> Any:
        """
        Make a REST request and return the decoded JSON body.

        Raises:
            NodeNotFoundError: HTTP 404
            NodeError: Any other non-2xx response
            NodeTimeoutError / NodeConnectionError: Transport failures
        """
        url = f"{base_url or self.config.node_url}{path}"
        start_time = time.time()

        try:
            response = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
        except requests.exceptions.Timeout:
            self._record(start_time, failed=True)
            raise NodeTimeoutError(-1, f"Request timed out after {self.config.timeout}s")
        except requests.exceptions.ConnectionError as e:
            self._record(start_time, failed=True)
            raise NodeConnectionError(-1, f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            self._record(start_time, failed=True)
            raise NodeError(-1, f"Request failed: {e}")

        if response.status_code >= 400:
            self._record(start_time, failed=True)
            raise self._error_from_response(response)

        self._record(start_time)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise NodeError(response.status_code, f"Invalid JSON response: {e}")

    def _error_from_response(self, response: requests.Response) -> NodeError:
        message = response.reason or "request failed"
        error_code = None
        vm_error_code = None

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("message", message)
            error_code = body.get("error_code")
            vm_error_code = body.get("vm_error_code")

        error_cls = NodeNotFoundError if response.status_code == 404 else NodeError
        return error_cls(response.status_code, message, error_code, vm_error_code)

    def _record(self, start_time: float, failed: bool = False) -> None:
        with self._stats_lock:
            self._stats["total_requests"] += 1
            self._stats["total_time"] += time.time() - start_time
            self._stats["last_request_time"] = datetime.now(timezone.utc)
            if failed:
                self._stats["failed_requests"] += 1

    # Ledger and account methods

    def get_ledger_info(self) -> Dict[str, Any]:
        return self._request("GET", "/")

    def get_account(self, address: str) -> Dict[str, Any]:
        return self._request("GET", f"/accounts/{address}")

    def get_sequence_number(self, address: str) -> int:
        """Get the next sequence number of an account."""
        return int(self.get_account(address)["sequence_number"])

    def get_account_resources(self, address: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/accounts/{address}/resources")

    def get_account_resource(self, address: str, resource_type: str) -> Dict[str, Any]:
        return self._request("GET", f"/accounts/{address}/resource/{resource_type}")

    def get_account_module(self, address: str, module_name: str) -> Dict[str, Any]:
        return self._request("GET", f"/accounts/{address}/module/{module_name}")

    # Transaction methods

    def encode_submission(self, request: Dict[str, Any]) -> bytes:
        """Ask the node for the signing message of an unsigned transaction."""
        encoded = self._request("POST", "/transactions/encode_submission", json=request)
        if not isinstance(encoded, str):
            raise NodeError(200, f"Unexpected signing message: {encoded!r}")
        try:
            return bytes.fromhex(encoded[2:] if encoded.startswith("0x") else encoded)
        except ValueError:
            raise NodeError(200, f"Signing message is not hex: {encoded!r}")

    def submit_transaction(self, signed_request: Dict[str, Any]) -> Dict[str, Any]:
        """Submit a signed transaction; returns the pending transaction."""
        return self._request("POST", "/transactions", json=signed_request)

    def get_transaction_by_hash(self, tx_hash: str) -> Dict[str, Any]:
        return self._request("GET", f"/transactions/by_hash/{tx_hash}")

    def wait_for_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """
        Block until the transaction leaves the pending state.

        Returns:
            The committed transaction

        Raises:
            NodeTimeoutError: Still pending after `wait_timeout` seconds
        """
        deadline = time.time() + self.config.wait_timeout

        try:
            transaction = self._request("GET", f"/transactions/wait_by_hash/{tx_hash}")
        except NodeNotFoundError:
            transaction = None

        while transaction is None or transaction.get("type") == PENDING_TRANSACTION:
            if time.time() >= deadline:
                raise NodeTimeoutError(
                    -1, f"Transaction {tx_hash} still pending after {self.config.wait_timeout}s"
                )
            time.sleep(self.config.poll_interval)
            try:
                transaction = self.get_transaction_by_hash(tx_hash)
            except NodeNotFoundError:
                transaction = None

        return transaction

    # Faucet

    def fund_account(self, address: str, amount: int) -> List[str]:
        """Request faucet funds; returns the faucet transaction hashes."""
        if not self.config.faucet_url:
            raise NodeError(-1, "No faucet URL configured")

        hashes = self._request(
            "POST",
            "/mint",
            base_url=self.config.faucet_url,
            params={"address": address, "amount": amount}
        )
        return list(hashes or [])

    # Client management methods

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        with self._stats_lock:
            stats = self._stats.copy()

        total = stats["total_requests"]
        return {
            **stats,
            "average_request_time": stats["total_time"] / total if total > 0 else 0,
            "node_url": self.config.node_url
        }

    def close(self):
        """Close the REST client."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
