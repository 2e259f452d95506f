"""Per-contract facade over the chain event service.

``ContractClient`` wraps the raw RPC methods with the ARC-72, ARC-200 and
MP-213 read-only accessors the handlers need. All methods are blocking;
callers run them through the sync retry policy.
"""
import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .events import ChainEvent, decode_event_groups

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAY5HFKQ"

INTERFACE_SELECTOR_ARC72 = "4e22a3ba"
INTERFACE_SELECTOR_MP = "ae4d14ad"

# Info() of the ARC-200 swap pool contracts
SWAP_INFO_RETURNS = (
    "((uint256,uint256),(uint256,uint256),(uint256,uint256,uint256,address,byte),"
    "(uint256,uint256),uint64,uint64)"
)


def strip_null_bytes(value: Optional[str]) -> str:
    """Remove the zero padding of fixed-width byte strings"""
    return (value or '').replace('\x00', '')


def decode_global_state(global_state: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Decode an indexer ``global-state`` list into ``{key, value}`` pairs.

    Keys are base64 text. Byte values become text when they decode as
    printable UTF-8, hex otherwise; uint values are kept as integers.
    """
    decoded = []
    for state in global_state or []:
        key = base64.b64decode(state.get('key', '')).decode('utf-8', errors='replace')
        value = state.get('value', {})
        if value.get('type') == 1:
            raw = base64.b64decode(value.get('bytes', ''))
            try:
                text = raw.decode('utf-8')
                decoded_value: Any = text if text.isprintable() else '0x' + raw.hex()
            except UnicodeDecodeError:
                decoded_value = '0x' + raw.hex()
        else:
            decoded_value = value.get('uint', 0)
        decoded.append({'key': key, 'value': decoded_value})
    return decoded


class ApplicationInfo(BaseModel):
    """Indexer view of an application"""
    contract_id: int
    creator: Optional[str] = None
    create_round: int = 0
    global_state: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_indexer(cls, contract_id: int, payload: Dict[str, Any]) -> 'ApplicationInfo':
        app = payload.get('application', payload)
        params = app.get('params', {})
        return cls(
            contract_id=contract_id,
            creator=params.get('creator'),
            create_round=app.get('created-at-round') or 0,
            global_state=params.get('global-state') or [],
        )

    def has_state_key(self, key: str) -> bool:
        encoded = base64.b64encode(key.encode()).decode()
        return any(state.get('key') == encoded for state in self.global_state)


class ContractClient:
    """Read-only view of one application through the event service"""

    def __init__(self, rpc, contract_id: int):
        """Initialize the facade.

        Args:
            rpc: ChainRPC (or compatible) client
            contract_id: Application id
        """
        self.rpc = rpc
        self.contract_id = int(contract_id)

    def __repr__(self) -> str:
        return f"ContractClient({self.contract_id})"

    def simulate(self, method: str, args: Sequence[Any] = (), returns: str = 'void') -> Dict[str, Any]:
        """Run a read-only ABI call.

        Returns the raw ``{success, returnValue}`` result. Transport failures
        raise; an unsuccessful simulation does not.
        """
        result = self.rpc.call(self.contract_id, method, list(args), returns)
        return result or {'success': False}

    def _read(self, method: str, args: Sequence[Any] = (), returns: str = 'void') -> Any:
        result = self.simulate(method, args, returns)
        if not result.get('success'):
            logger.debug(f"[{self.contract_id}] {method}{tuple(args)} did not succeed")
            return None
        return result.get('returnValue')

    # Events

    def get_events(self, names: Sequence[str], min_round: int, max_round: int) -> Dict[str, List[ChainEvent]]:
        groups = self.rpc.getevents(self.contract_id, list(names), min_round, max_round)
        return decode_event_groups(groups, names)

    # Indexer

    def application_info(self) -> ApplicationInfo:
        return ApplicationInfo.from_indexer(self.contract_id, self.rpc.getapplication(self.contract_id))

    def account_assets(self) -> List[Dict[str, Any]]:
        return self.rpc.getaccountassets(self.contract_id) or []

    # Capability probes

    def supports_interface(self, selector: str, returns: str = 'bool') -> Optional[bool]:
        """Ask ``supportsInterface(byte[4])``; None when the call fails"""
        result = self.simulate('supportsInterface', [selector], returns)
        if not result.get('success'):
            return None
        value = result.get('returnValue')
        if isinstance(value, str):
            return value.lower() not in ('', '0', '00', '0x00', 'false')
        return bool(value)

    # ARC-72

    def total_supply(self) -> Optional[int]:
        value = self._read('arc72_totalSupply', returns='uint256')
        return None if value is None else int(value)

    def owner_of(self, token_id: int) -> Optional[str]:
        return self._read('arc72_ownerOf', [token_id], 'address')

    def get_approved(self, token_id: int) -> Optional[str]:
        return self._read('arc72_getApproved', [token_id], 'address')

    def token_uri(self, token_id: int) -> str:
        return strip_null_bytes(self._read('arc72_tokenURI', [token_id], 'byte[256]'))

    def token_by_index(self, index: int) -> Optional[int]:
        value = self._read('arc72_tokenByIndex', [index], 'uint256')
        return None if value is None else int(value)

    # ARC-200

    def name(self) -> str:
        return strip_null_bytes(self._read('arc200_name', returns='byte[32]'))

    def symbol(self) -> str:
        return strip_null_bytes(self._read('arc200_symbol', returns='byte[8]'))

    def decimals(self) -> Optional[int]:
        value = self._read('arc200_decimals', returns='uint8')
        return None if value is None else int(value)

    def fungible_total_supply(self) -> Optional[int]:
        value = self._read('arc200_totalSupply', returns='uint256')
        return None if value is None else int(value)

    def balance_of(self, account: str) -> Optional[int]:
        value = self._read('arc200_balanceOf', [account], 'uint256')
        return None if value is None else int(value)

    def allowance(self, owner: str, spender: str) -> Optional[int]:
        value = self._read('arc200_allowance', [owner, spender], 'uint256')
        return None if value is None else int(value)

    # Naming resolver

    def resolve_name(self, token_id: int) -> Optional[str]:
        """Resolve ``name(byte[32])`` on a naming resolver contract"""
        node = int(token_id).to_bytes(32, 'big').hex()
        value = self._read('name', [node], 'byte[256]')
        return strip_null_bytes(value) if value else None

    # Swap pools

    def swap_info(self) -> bool:
        """True when the contract answers the swap ``Info()`` read"""
        return bool(self.simulate("Info", [], SWAP_INFO_RETURNS).get("success"))
