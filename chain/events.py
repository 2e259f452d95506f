"""Named event records decoded from the event service's positional tuples.

Every ARC-28 event arrives as ``[transaction_id, round, timestamp, *args]``.
Tuples are decoded here, once, and the rest of the pipeline only sees the
records below.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from . import EventDecodeError

# ARC-72
ARC72_TRANSFER = 'arc72_Transfer'
ARC72_APPROVAL = 'arc72_Approval'

# ARC-200
ARC200_TRANSFER = 'arc200_Transfer'
ARC200_APPROVAL = 'arc200_Approval'

# MP-213 offers
MP_LIST = 'e_offer_ListEvent'
MP_ACCEPT = 'e_offer_AcceptEvent'
MP_DELETE = 'e_offer_DeleteListingEvent'


class ChainEvent(BaseModel):
    name: str
    transaction_id: str
    round: int
    timestamp: int
    # Position of the event inside its name group, as returned by the service
    position: int = 0


class NFTTransferEvent(ChainEvent):
    sender: str
    receiver: str
    token_id: int


class NFTApprovalEvent(ChainEvent):
    owner: str
    approved: str
    token_id: int


class FungibleTransferEvent(ChainEvent):
    sender: str
    receiver: str
    amount: int


class FungibleApprovalEvent(ChainEvent):
    owner: str
    spender: str
    amount: int


class NativePrice(BaseModel):
    """Price in the network's native currency"""
    kind: Literal['native'] = 'native'
    amount: int

    @property
    def currency(self) -> int:
        return 0


class TokenPrice(BaseModel):
    """Price in an ARC-200 token identified by its contract id"""
    kind: Literal['token'] = 'token'
    currency: int
    amount: int


ListPrice = Annotated[Union[NativePrice, TokenPrice], Field(discriminator='kind')]


def _hex_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text[2:] if text.lower().startswith('0x') else text, 16) if text else 0


def decode_list_price(raw: Any) -> Dict[str, Any]:
    """Decode the ``(byte,byte[40])`` list price payload.

    The first element is the tag: ``00`` carries a native price inline,
    anything else carries the token contract id and the price as separate
    hex fields.
    """
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        raise ValueError(f"unexpected list price payload: {raw!r}")
    tag = str(raw[0]).lower()
    if tag in ('00', '0', '0x00'):
        return {'kind': 'native', 'amount': int(raw[1])}
    if len(raw) < 3:
        raise ValueError(f"token price payload missing price field: {raw!r}")
    return {'kind': 'token', 'currency': _hex_int(raw[1]), 'amount': _hex_int(raw[2])}


class ListEvent(ChainEvent):
    listing_id: int
    contract_id: int
    token_id: int
    offerer: str
    price: ListPrice

    @field_validator('price', mode='before')
    @classmethod
    def _decode_price(cls, value):
        return decode_list_price(value)


class AcceptEvent(ChainEvent):
    listing_id: int
    sender: Optional[str] = None


class DeleteEvent(ChainEvent):
    listing_id: int
    sender: Optional[str] = None


# Event name -> (record type, names of the positional args after the header)
EVENT_LAYOUTS: Dict[str, tuple] = {
    ARC72_TRANSFER: (NFTTransferEvent, ('sender', 'receiver', 'token_id')),
    ARC72_APPROVAL: (NFTApprovalEvent, ('owner', 'approved', 'token_id')),
    ARC200_TRANSFER: (FungibleTransferEvent, ('sender', 'receiver', 'amount')),
    ARC200_APPROVAL: (FungibleApprovalEvent, ('owner', 'spender', 'amount')),
    MP_LIST: (ListEvent, ('listing_id', 'contract_id', 'token_id', 'offerer', 'price')),
    MP_ACCEPT: (AcceptEvent, ('listing_id', 'sender')),
    MP_DELETE: (DeleteEvent, ('listing_id', 'sender')),
}


def decode_event(name: str, row: Sequence[Any], position: int = 0) -> ChainEvent:
    """Decode one positional event tuple into its record type.

    Raises:
        EventDecodeError: Unknown event name or malformed tuple
    """
    if name not in EVENT_LAYOUTS:
        raise EventDecodeError(f"Unknown event {name}")
    model, arg_names = EVENT_LAYOUTS[name]

    if len(row) < 3:
        raise EventDecodeError(f"Event {name} tuple too short: {row!r}")
    transaction_id, round_, timestamp, *args = row
    fields: Dict[str, Any] = {
        'name': name,
        'transaction_id': transaction_id,
        'round': round_,
        'timestamp': timestamp,
        'position': position,
    }
    fields.update(zip(arg_names, args))

    try:
        return model(**fields)
    except ValidationError as e:
        raise EventDecodeError(f"Malformed {name} event {row!r}: {e}") from e


def decode_event_groups(
    groups: List[Dict[str, Any]],
    names: Sequence[str],
) -> Dict[str, List[ChainEvent]]:
    """Decode the service's ``[{name, events}]`` groups.

    Every requested name is present in the result, empty when the service
    returned nothing for it.
    """
    decoded: Dict[str, List[ChainEvent]] = {name: [] for name in names}
    for group in groups or []:
        name = group.get('name')
        if name not in decoded:
            continue
        decoded[name] = [
            decode_event(name, row, position)
            for position, row in enumerate(group.get('events') or [])
        ]
    return decoded


def ordered(events: Dict[str, List[ChainEvent]], precedence: Sequence[str]) -> List[ChainEvent]:
    """Merge event groups into application order.

    Events are ordered by round, then by the position of their name in
    ``precedence`` (a transfer before an approval, a listing before its
    accept or delete), then by their position in the service's response.
    """
    rank = {name: index for index, name in enumerate(precedence)}
    merged = [event for name in precedence for event in events.get(name, [])]
    return sorted(merged, key=lambda e: (e.round, rank[e.name], e.position))


