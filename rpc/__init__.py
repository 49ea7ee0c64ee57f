"""RPC module for talking to an Ethereum JSON-RPC provider.

Every network gets its own EthereumRPC instance bound to that network's
provider URL; there is no shared module-level client.
"""
import requests
from typing import Any, Dict, List, Optional

class RPCError(Exception):
    """Base exception for RPC errors"""
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"RPC Error [{code}] in {method}: {message}" if code else message)

class NodeConnectionError(RPCError):
    """Raised when connection to the provider fails"""
    pass

class NodeAuthError(RPCError):
    """Raised when the provider rejects our credentials"""
    pass

class JSONRPCError(RPCError):
    """Error object returned by the provider

    Common error codes:
    -32700 - Parse error
    -32600 - Invalid request
    -32601 - Method not found
    -32602 - Invalid params
    -32603 - Internal error
    -32005 - Limit exceeded (too many results / rate limited)
    """
    ERROR_MESSAGES = {
        -32700: "Parse error",
        -32600: "Invalid request",
        -32601: "Method not found",
        -32602: "Invalid params",
        -32603: "Internal error",
        -32005: "Limit exceeded",
    }

    def __init__(self, message: str, code: int, method: str):
        standard_msg = self.ERROR_MESSAGES.get(code, "Unknown error")
        full_msg = f"{standard_msg} - {message}" if message != standard_msg else message
        super().__init__(full_msg, code, method)

class RPCMethod:
    """Descriptor class for RPC methods"""
    def __init__(self, method_name: str):
        self.method_name = method_name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self

        def caller(*args) -> Any:
            return obj._call_method(self.method_name, *args)

        return caller

class EthereumRPC:
    """Ethereum JSON-RPC client for a single provider"""

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers['content-type'] = 'application/json'
        self._request_id = 0

    def _get_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _call_method(self, method: str, *args) -> Any:
        """Make an RPC call to the provider

        Args:
            method: RPC method name
            *args: Method arguments

        Returns:
            The ``result`` member of the response

        Raises:
            NodeConnectionError: Connection to provider failed
            NodeAuthError: Authentication failed
            JSONRPCError: Provider returned an error object
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(args),
            "id": self._get_request_id()
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)

            if response.status_code in (401, 403):
                raise NodeAuthError(f"Provider rejected request with HTTP {response.status_code}")

            # Try to parse response even if status code is error
            result = response.json()

            if 'error' in result and result['error'] is not None:
                error = result['error']
                raise JSONRPCError(
                    error.get('message', 'Unknown error'),
                    error.get('code', -32603),
                    method
                )

            response.raise_for_status()

            return result['result']

        except requests.exceptions.Timeout as e:
            raise NodeConnectionError(
                f"Request timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise NodeConnectionError(
                f"Failed to connect to provider at {self.url}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise NodeConnectionError(
                f"Request failed: {str(e)}"
            ) from e
        except (KeyError, ValueError) as e:
            raise NodeConnectionError(
                f"Invalid response format: {str(e)}"
            ) from e

    eth_blockNumber = RPCMethod('eth_blockNumber')
    eth_chainId = RPCMethod('eth_chainId')
    eth_getBlockByNumber = RPCMethod('eth_getBlockByNumber')
    eth_getLogs = RPCMethod('eth_getLogs')
    net_version = RPCMethod('net_version')

    def get_block_number(self) -> int:
        """Current chain head."""
        return int(self.eth_blockNumber(), 16)

    def get_block_timestamp(self, block_number: int) -> int:
        """Unix timestamp of a block.

        Raises:
            RPCError: If the provider does not know the block
        """
        block = self.eth_getBlockByNumber(hex(block_number), False)
        if not block:
            raise RPCError(f"Block {block_number} not found", method='eth_getBlockByNumber')
        return int(block['timestamp'], 16)

    def get_logs(self, address: str, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        """Logs emitted by ``address`` in the inclusive block range."""
        return self.eth_getLogs({
            'address': address,
            'fromBlock': hex(from_block),
            'toBlock': hex(to_block),
        })

__all__ = [
    'RPCError',
    'NodeConnectionError',
    'NodeAuthError',
    'JSONRPCError',
    'EthereumRPC',
]
