"""
executor/methods.py

MethodExecutor: runs one query against the backing RPC.

Per-query problems (bad parameters, RPC errors) become a failed
QueryResult; nothing here raises for them. Upstream error text is passed
through verbatim.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey
from solders.signature import Signature

from ingestion.rpc.client import RpcError, SolanaRpcClient, decode_account_data
from .types import Query, QueryResult, RpcMethod

logger = logging.getLogger(__name__)


def account_summary(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Reduce an RPC account value to the fields the proxy returns."""
    if value is None:
        return None
    try:
        data_length = len(decode_account_data(value.get("data")))
    except (RpcError, ValueError):
        data_length = value.get("space", 0)
    return {
        "lamports": value.get("lamports"),
        "owner": value.get("owner"),
        "executable": value.get("executable"),
        "rentEpoch": value.get("rentEpoch"),
        "dataLength": data_length,
    }


def parse_pubkey(value: str) -> Tuple[Optional[Pubkey], Optional[str]]:
    try:
        return Pubkey.from_string(value), None
    except ValueError as e:
        return None, str(e)


class MethodExecutor:
    """
    Dispatches a Query to the matching RPC helper.

    Safe to call from several worker threads at once.
    """

    def __init__(self, rpc_client: SolanaRpcClient):
        self._rpc = rpc_client
        self._handlers: Dict[RpcMethod, Callable[[Query], QueryResult]] = {
            RpcMethod.GET_BALANCE: self._get_balance,
            RpcMethod.GET_ACCOUNT_INFO: self._get_account_info,
            RpcMethod.GET_TRANSACTION: self._get_transaction,
            RpcMethod.GET_TOKEN_ACCOUNT_BALANCE: self._get_token_account_balance,
            RpcMethod.GET_BLOCK_HEIGHT: self._get_block_height,
            RpcMethod.GET_MULTIPLE_ACCOUNTS: self._get_multiple_accounts,
        }

    def execute(self, query: Query) -> QueryResult:
        logger.debug(f"[executor] Executing query {query.id} ({query.method})")
        handler = self._handlers.get(query.method)
        if handler is None:
            return QueryResult.fail(query.id, f"Unsupported method: {query.method}")
        return handler(query)

    def check_health(self) -> bool:
        return self._rpc.get_health()

    def _get_balance(self, query: Query) -> QueryResult:
        if query.pubkey is None:
            return QueryResult.fail(query.id, "Missing pubkey parameter")
        pubkey, err = parse_pubkey(query.pubkey)
        if pubkey is None:
            return QueryResult.fail(query.id, f"Invalid pubkey '{query.pubkey}': {err}")

        try:
            balance = self._rpc.get_balance(str(pubkey), commitment=str(query.effective_commitment()))
        except RpcError as e:
            logger.warning(f"[executor] getBalance failed for {query.id}: {e}")
            return QueryResult.fail(query.id, str(e))

        logger.debug(f"[executor] getBalance {query.id} -> {balance}")
        return QueryResult.ok(query.id, {"lamports": balance})

    def _get_account_info(self, query: Query) -> QueryResult:
        if query.pubkey is None:
            return QueryResult.fail(query.id, "Missing pubkey parameter")
        pubkey, err = parse_pubkey(query.pubkey)
        if pubkey is None:
            return QueryResult.fail(query.id, f"Invalid pubkey '{query.pubkey}': {err}")

        try:
            value = self._rpc.get_account_info(str(pubkey), commitment=str(query.effective_commitment()))
        except RpcError as e:
            if "AccountNotFound" in str(e):
                return QueryResult.ok(query.id, None)
            logger.warning(f"[executor] getAccountInfo failed for {query.id}: {e}")
            return QueryResult.fail(query.id, str(e))

        return QueryResult.ok(query.id, account_summary(value))

    def _get_transaction(self, query: Query) -> QueryResult:
        signature = query.primary_param()
        if signature is None:
            return QueryResult.fail(query.id, "Missing transaction signature")
        try:
            Signature.from_string(signature)
        except ValueError as e:
            logger.warning(f"[executor] Invalid signature {signature}: {e}")
            return QueryResult.fail(query.id, f"Invalid signature: {e}")

        try:
            tx = self._rpc.get_transaction(signature, commitment=str(query.effective_commitment()))
        except RpcError as e:
            logger.warning(f"[executor] getTransaction failed for {signature}: {e}")
            return QueryResult.fail(query.id, f"RPC error: {e}")
        return QueryResult.ok(query.id, tx)

    def _get_token_account_balance(self, query: Query) -> QueryResult:
        target = query.primary_param()
        if target is None:
            return QueryResult.fail(query.id, "Missing token account pubkey")
        pubkey, err = parse_pubkey(target)
        if pubkey is None:
            return QueryResult.fail(query.id, f"Invalid pubkey: {err}")

        try:
            balance = self._rpc.get_token_account_balance(str(pubkey), commitment=str(query.effective_commitment()))
        except RpcError as e:
            logger.warning(f"[executor] getTokenAccountBalance failed for {target}: {e}")
            return QueryResult.fail(query.id, f"RPC error: {e}")
        return QueryResult.ok(query.id, balance)

    def _get_block_height(self, query: Query) -> QueryResult:
        try:
            height = self._rpc.get_block_height(commitment=str(query.effective_commitment()))
        except RpcError as e:
            logger.warning(f"[executor] getBlockHeight failed: {e}")
            return QueryResult.fail(query.id, f"RPC error: {e}")
        return QueryResult.ok(query.id, height)

    def _get_multiple_accounts(self, query: Query) -> QueryResult:
        if query.params is None:
            return QueryResult.fail(query.id, "Missing pubkeys parameter")
        if isinstance(query.params, str):
            targets: List[str] = [query.params]
        elif isinstance(query.params, list):
            targets = [p for p in query.params if isinstance(p, str)]
        else:
            return QueryResult.fail(query.id, "Invalid params format, expected array of strings")

        if not targets:
            return QueryResult.fail(query.id, "Empty pubkeys array")

        for target in targets:
            pubkey, err = parse_pubkey(target)
            if pubkey is None:
                logger.warning(f"[executor] Invalid pubkey {target}: {err}")
                return QueryResult.fail(query.id, f"Invalid pubkey '{target}': {err}")

        try:
            values = self._rpc.get_multiple_accounts(targets, commitment=str(query.effective_commitment()))
        except RpcError as e:
            logger.warning(f"[executor] getMultipleAccounts failed ({len(targets)} pubkeys): {e}")
            return QueryResult.fail(query.id, f"RPC error: {e}")

        return QueryResult.ok(query.id, [account_summary(v) for v in values])
