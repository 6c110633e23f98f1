"""
ingestion/rpc package

Blocking JSON-RPC access to the backing Solana endpoint.
"""
from .client import RpcError, SolanaRpcClient, decode_account_data, sanitize_rpc_url

__all__ = [
    'RpcError',
    'SolanaRpcClient',
    'decode_account_data',
    'sanitize_rpc_url',
]
