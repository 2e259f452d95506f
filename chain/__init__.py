"""Chain module for talking to the chain event service.

The event service fronts an algod/indexer pair and exposes, over JSON-RPC,
the ARC-28 event log of an application, read-only ABI simulation and the
indexer lookups the sync pipeline needs. Clients are constructed explicitly
and handed to whoever needs them; there is no module-level instance.
"""
import itertools
import requests
from typing import Any, Dict, Optional

class ChainError(Exception):
    """Base exception for chain event service errors"""
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"RPC Error [{code}] in {method}: {message}" if code else message)

class NodeConnectionError(ChainError):
    """Raised when connection to the event service fails"""
    pass

class NodeAuthError(ChainError):
    """Raised when authentication failed"""
    pass

class ChainRPCError(ChainError):
    """Error object returned by the event service

    Common error codes:
    -32601 - Method not found
    -32602 - Invalid params
    -1     - Application not found
    -2     - Round not available yet
    """
    ERROR_MESSAGES = {
        -32601: "Method not found",
        -32602: "Invalid params",
        -1: "Application not found",
        -2: "Round not available yet",
    }

    def __init__(self, message: str, code: int, method: str):
        standard_msg = self.ERROR_MESSAGES.get(code, "Unknown error")
        full_msg = f"{standard_msg} - {message}" if message != standard_msg else message
        super().__init__(full_msg, code, method)

class EventDecodeError(ChainError):
    """Raised when an event tuple cannot be decoded into a record"""
    pass

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

class ChainRPC:
    """Chain event service JSON-RPC client"""

    def __init__(self, url: str, user: str = '', password: str = '', timeout: int = 10):
        """Initialize RPC client.

        Args:
            url: Event service endpoint
            user: Optional basic auth user
            password: Optional basic auth password
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout

        self.session = requests.Session()
        if user:
            self.session.auth = (user, password)
        self.session.headers['content-type'] = 'application/json'

        # Request ID counter, shared by the worker threads
        self._request_ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'ChainRPC':
        """Build a client from loaded settings"""
        return cls(
            settings['node_url'],
            settings.get('node_user', ''),
            settings.get('node_password', ''),
            settings.get('node_timeout', 10),
        )

    def _get_request_id(self) -> int:
        """Get unique request ID"""
        return next(self._request_ids)

    def _call_method(self, method: str, *args) -> Any:
        """Make RPC call to the event service

        Args:
            method: RPC method name
            *args: Method arguments

        Returns:
            Response result

        Raises:
            NodeConnectionError: Connection to the service failed
            NodeAuthError: Authentication failed
            ChainRPCError: Service returned an error object
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(args),
            "id": self._get_request_id()
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)

            if response.status_code == 401:
                raise NodeAuthError("Authentication failed - check node_user/node_password")

            # Try to parse response even if status code is error
            result = response.json()

            if 'error' in result and result['error'] is not None:
                error = result['error']
                raise ChainRPCError(
                    error.get('message', 'Unknown error'),
                    error.get('code', -1),
                    method
                )

            response.raise_for_status()

            return result['result']

        except requests.exceptions.Timeout as e:
            raise NodeConnectionError(
                f"Request timed out after {self.timeout} seconds", method=method
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise NodeConnectionError(
                f"Failed to connect to event service at {self.url}", method=method
            ) from e
        except requests.exceptions.HTTPError as e:
            raise NodeConnectionError(
                f"HTTP error occurred: {str(e)}", method=method
            ) from e
        except requests.exceptions.RequestException as e:
            raise NodeConnectionError(
                f"Request failed: {str(e)}", method=method
            ) from e
        except (KeyError, ValueError) as e:
            raise NodeConnectionError(
                f"Invalid response format: {str(e)}", method=method
            ) from e

    # Event log
    getevents = RPCMethod('getevents')

    # Read-only ABI simulation
    call = RPCMethod('call')

    # Indexer lookups
    getapplication = RPCMethod('getapplication')
    getaccountassets = RPCMethod('getaccountassets')

    # Chain tip and blocks
    getstatus = RPCMethod('getstatus')
    getblock = RPCMethod('getblock')

from .contract import (  # noqa: E402
    ContractClient,
    ApplicationInfo,
    ZERO_ADDRESS,
    decode_global_state,
    strip_null_bytes,
)

__all__ = [
    'ChainRPC',
    'ContractClient',
    'ApplicationInfo',
    'ChainError',
    'NodeConnectionError',
    'NodeAuthError',
    'ChainRPCError',
    'EventDecodeError',
    'ZERO_ADDRESS',
    'decode_global_state',
    'strip_null_bytes',
]
