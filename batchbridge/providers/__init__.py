from .relay import RelayProvider
from .routescan import RoutescanError, RoutescanProvider
from .rpc import JsonRpcClient, RpcError

__all__ = ["RelayProvider", "RoutescanError", "RoutescanProvider", "JsonRpcClient", "RpcError"]
