"""
RPC provider pool with failover for HyperEVM.

- Health checks via a raw eth_chainId request (requests, short timeout)
- Failover to the next healthy endpoint on errors or wrong chain id
- Cool-down before an unhealthy endpoint is re-checked
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

import requests
from web3 import Web3

from .errors import RPCProviderError

logger = logging.getLogger(__name__)

# Default timeout for RPC calls
DEFAULT_RPC_TIMEOUT = 10  # seconds

# Health check timeout (shorter for quick failover)
HEALTH_CHECK_TIMEOUT = 3  # seconds


class ProviderManager:
    """
    Manages a pool of RPC endpoints for one chain with automatic failover.

    Endpoints are tried in order starting from the last one that worked. An
    endpoint that fails is skipped until health_check_interval has passed.
    """

    def __init__(
        self,
        rpc_urls: List[str],
        chain_id: int,
        timeout: int = DEFAULT_RPC_TIMEOUT,
        health_check_interval: int = 60,
    ) -> None:
        self.rpc_urls = [url for url in rpc_urls if url]
        if not self.rpc_urls:
            raise RPCProviderError("No RPC URLs provided to ProviderManager.")

        self.chain_id = chain_id
        self.timeout = timeout
        self.health_check_interval = health_check_interval

        self._endpoint_status: Dict[str, dict] = {
            url: {"healthy": True, "last_check": 0.0, "failure_count": 0, "last_error": None}
            for url in self.rpc_urls
        }
        self._current_index = 0
        self._web3_instance: Optional[Web3] = None

    def _is_endpoint_healthy(self, url: str) -> bool:
        status = self._endpoint_status[url]
        if not status["healthy"]:
            if time.time() - status["last_check"] >= self.health_check_interval:
                return self._check_endpoint_health(url)
        return status["healthy"]

    def _record_failure(self, url: str, error: str) -> None:
        status = self._endpoint_status[url]
        status["healthy"] = False
        status["last_check"] = time.time()
        status["failure_count"] += 1
        status["last_error"] = error

    def _check_endpoint_health(self, url: str) -> bool:
        """Return True if the endpoint answers eth_chainId with the expected chain."""
        try:
            payload = {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []}
            response = requests.post(url, json=payload, timeout=HEALTH_CHECK_TIMEOUT)
        except requests.exceptions.Timeout:
            self._record_failure(url, "Timeout")
            logger.warning(f"RPC {url} health check timed out")
            return False
        except requests.exceptions.RequestException as e:
            self._record_failure(url, str(e))
            logger.warning(f"RPC {url} health check failed: {e}")
            return False

        if response.status_code != 200:
            self._record_failure(url, f"HTTP {response.status_code}")
            return False

        try:
            chain_id_hex = response.json().get("result")
        except ValueError:
            chain_id_hex = None
        if not chain_id_hex:
            self._record_failure(url, "Missing result in eth_chainId response")
            return False

        expected = hex(self.chain_id)
        if chain_id_hex.lower() != expected.lower():
            self._record_failure(url, f"Wrong chain id {chain_id_hex}")
            logger.warning(f"RPC {url} returned wrong chain_id: {chain_id_hex} (expected {expected})")
            return False

        status = self._endpoint_status[url]
        status.update(healthy=True, last_check=time.time(), failure_count=0, last_error=None)
        return True

    def _find_healthy_endpoint(self) -> Optional[str]:
        for i in range(len(self.rpc_urls)):
            idx = (self._current_index + i) % len(self.rpc_urls)
            url = self.rpc_urls[idx]
            if self._is_endpoint_healthy(url):
                self._current_index = idx
                return url

        logger.warning("No endpoints marked healthy, attempting to re-check all...")
        for idx, url in enumerate(self.rpc_urls):
            if self._check_endpoint_health(url):
                self._current_index = idx
                return url
        return None

    def _connect(self, url: str) -> Web3:
        return Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": self.timeout}))

    def get_web3(self, force_refresh: bool = False) -> Web3:
        """
        Get a Web3 instance connected to a healthy RPC endpoint.

        Raises:
            RPCProviderError: If no healthy endpoints are available
        """
        if self._web3_instance is not None and not force_refresh:
            if self._is_endpoint_healthy(self.rpc_urls[self._current_index]):
                return self._web3_instance

        for _ in range(len(self.rpc_urls)):
            url = self._find_healthy_endpoint()
            if url is None:
                break

            web3 = self._connect(url)
            if not web3.is_connected():
                self._record_failure(url, "web3.is_connected() returned False")
                continue

            chain_id = web3.eth.chain_id
            if chain_id != self.chain_id:
                self._record_failure(url, f"Wrong chain id {chain_id}")
                continue

            logger.info(f"Connected to RPC: {url} (chain_id={chain_id})")
            self._web3_instance = web3
            return web3

        raise RPCProviderError(
            f"No healthy RPC endpoints available. Last errors: "
            f"{[(url, self._endpoint_status[url]['last_error']) for url in self.rpc_urls]}"
        )

    def mark_endpoint_unhealthy(self, url: str, error: Optional[str] = None) -> None:
        """Mark an endpoint unhealthy (e.g. after a failed call) and drop it if current."""
        if url not in self._endpoint_status:
            return
        self._record_failure(url, error or "Manually marked unhealthy")
        logger.warning(f"Marked RPC {url} as unhealthy: {error}")
        if self.rpc_urls[self._current_index] == url:
            self._web3_instance = None

    def get_status(self) -> Dict[str, dict]:
        return {
            url: {
                "healthy": status["healthy"],
                "failure_count": status["failure_count"],
                "last_error": status["last_error"],
            }
            for url, status in self._endpoint_status.items()
        }
