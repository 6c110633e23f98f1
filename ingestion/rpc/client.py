"""
ingestion/rpc/client.py

SolanaRpcClient: blocking JSON-RPC client for the backing Solana endpoint.
"""
import base64
import itertools
import logging
import time
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """JSON-RPC or transport failure. Message carries upstream text verbatim."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def sanitize_rpc_url(url: str) -> str:
    """Hide API keys embedded in the URL path for logging."""
    idx = url.find("://")
    if idx != -1:
        after_scheme = url[idx + 3:]
        path_idx = after_scheme.find('/')
        if path_idx != -1:
            return f"{url[:idx]}://{after_scheme[:path_idx]}/***"
    return url


class SolanaRpcClient:
    """
    Thin JSON-RPC client over requests.Session.

    Features:
    - Exponential backoff on 429 / 500 (HTTP status or JSON-RPC error code)
    - Typed helpers for the methods the proxy serves
    - Safe for use from several worker threads (one Session, no per-call state)
    """

    DEFAULT_TIMEOUT = 30           # seconds
    DEFAULT_COMMITMENT = "confirmed"
    RETRYABLE_STATUS = (429, 500)

    def __init__(
        self,
        rpc_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 5,
        initial_delay_ms: float = 100.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize SolanaRpcClient.

        Args:
            rpc_url: Solana RPC endpoint URL
            timeout: Request timeout in seconds
            max_retries: Max retries for rate-limit / server errors
            initial_delay_ms: Initial delay for exponential backoff (ms)
            session: Optional pre-built requests.Session
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._max_retries = max_retries
        self._initial_delay_ms = initial_delay_ms
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

        # Metrics
        self._http_calls = 0
        self._retries = 0

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Execute one JSON-RPC call and return its "result" member.

        Raises:
            RpcError: On JSON-RPC error or when retries are exhausted
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        delay_ms = self._initial_delay_ms
        for attempt in range(self._max_retries + 1):
            try:
                response = self._session.post(self.rpc_url, json=payload, timeout=self.timeout)
                self._http_calls += 1
            except requests.RequestException as e:
                if attempt < self._max_retries:
                    logger.warning(f"[rpc] {method} transport error, retrying: {e}")
                    self._backoff(delay_ms)
                    delay_ms *= 2
                    continue
                raise RpcError(str(e))

            if response.status_code in self.RETRYABLE_STATUS and attempt < self._max_retries:
                logger.warning(f"[rpc] {method} got HTTP {response.status_code}, backing off {delay_ms:.0f}ms")
                self._backoff(delay_ms)
                delay_ms *= 2
                continue

            try:
                body = response.json()
            except ValueError:
                raise RpcError(f"HTTP {response.status_code}: non-JSON response", code=response.status_code)

            error = body.get("error") if isinstance(body, dict) else None
            if error:
                code = error.get("code") if isinstance(error, dict) else None
                if code == 429 and attempt < self._max_retries:
                    self._backoff(delay_ms)
                    delay_ms *= 2
                    continue
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                raise RpcError(message, code=code)

            if response.status_code >= 400:
                raise RpcError(f"HTTP {response.status_code}", code=response.status_code)

            return body.get("result")

        raise RpcError(f"{method} failed after {self._max_retries} retries")

    def _backoff(self, delay_ms: float) -> None:
        self._retries += 1
        time.sleep(delay_ms / 1000.0)

    @staticmethod
    def _commitment_config(commitment: Optional[str]) -> Dict[str, Any]:
        return {"commitment": commitment or SolanaRpcClient.DEFAULT_COMMITMENT}

    def get_account_info(self, pubkey: str, commitment: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the raw account value (base64 data) or None if absent."""
        config = self._commitment_config(commitment)
        config["encoding"] = "base64"
        result = self.call("getAccountInfo", [pubkey, config])
        return result.get("value") if isinstance(result, dict) else None

    def get_account_bytes(self, pubkey: str, commitment: Optional[str] = None) -> Optional[bytes]:
        """Return decoded account data bytes, or None if the account does not exist."""
        value = self.get_account_info(pubkey, commitment=commitment)
        if value is None:
            return None
        return decode_account_data(value.get("data"))

    def get_multiple_accounts(self, pubkeys: List[str], commitment: Optional[str] = None) -> List[Optional[Dict[str, Any]]]:
        config = self._commitment_config(commitment)
        config["encoding"] = "base64"
        result = self.call("getMultipleAccounts", [pubkeys, config])
        return result.get("value", []) if isinstance(result, dict) else []

    def get_balance(self, pubkey: str, commitment: Optional[str] = None) -> int:
        result = self.call("getBalance", [pubkey, self._commitment_config(commitment)])
        return result.get("value", 0) if isinstance(result, dict) else int(result or 0)

    def get_transaction(self, signature: str, commitment: Optional[str] = None) -> Any:
        config = self._commitment_config(commitment)
        config["encoding"] = "json"
        config["maxSupportedTransactionVersion"] = 0
        return self.call("getTransaction", [signature, config])

    def get_token_account_balance(self, pubkey: str, commitment: Optional[str] = None) -> Any:
        result = self.call("getTokenAccountBalance", [pubkey, self._commitment_config(commitment)])
        return result.get("value") if isinstance(result, dict) else result

    def get_block_height(self, commitment: Optional[str] = None) -> int:
        return self.call("getBlockHeight", [self._commitment_config(commitment)])

    def get_health(self) -> bool:
        """True when the node reports "ok"; any error counts as unhealthy."""
        try:
            return self.call("getHealth") == "ok"
        except RpcError as e:
            logger.debug(f"[rpc] Health probe failed: {e}")
            return False

    def get_metrics(self) -> Dict[str, int]:
        return {
            "http_calls": self._http_calls,
            "retries": self._retries,
        }

    def close(self) -> None:
        self._session.close()


def decode_account_data(data: Any) -> bytes:
    """Decode the "data" member of an account value ([payload, "base64"])."""
    if isinstance(data, list) and len(data) >= 1:
        payload = data[0]
        encoding = data[1] if len(data) > 1 else "base64"
        if encoding != "base64":
            raise RpcError(f"Unsupported account data encoding: {encoding}")
        return base64.b64decode(payload)
    if isinstance(data, str):
        return base64.b64decode(data)
    raise RpcError(f"Unexpected account data shape: {type(data).__name__}")
