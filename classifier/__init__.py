"""Contract classifier.

Determines what kind of application a contract id is by probing capability
markers in a fixed order. Each probe answers AFFIRMED, DENIED or
INDETERMINATE; a transport failure makes a probe INDETERMINATE, which
counts as DENIED for that probe. Classification never raises.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from chain import ChainError, ContractClient
from chain.contract import INTERFACE_SELECTOR_ARC72, INTERFACE_SELECTOR_MP

logger = logging.getLogger(__name__)


class ContractType(str, Enum):
    ARC72 = "arc72"
    ARC200 = "arc200"
    MP = "mp"
    LPT = "lpt"
    UNKNOWN = "unknown"


class ProbeResult(str, Enum):
    AFFIRMED = "affirmed"
    DENIED = "denied"
    INDETERMINATE = "indeterminate"


def _interface_probe(selector: str) -> Callable[[ContractClient], ProbeResult]:
    def probe(client: ContractClient) -> ProbeResult:
        # Deployed contracts return either a bool or a single byte
        for returns in ('bool', 'byte'):
            if client.supports_interface(selector, returns):
                return ProbeResult.AFFIRMED
        return ProbeResult.DENIED
    probe.__name__ = f"supports_{selector}"
    return probe


def probe_arc200(client: ContractClient) -> ProbeResult:
    """arc200_name() only succeeds on fungible token contracts"""
    if client.simulate('arc200_name', [], 'byte[32]').get('success'):
        return ProbeResult.AFFIRMED
    return ProbeResult.DENIED


def probe_liquidity_pool(client: ContractClient) -> ProbeResult:
    """Swap pools answer Info(), legacy pools keep a ratio and hold no assets"""
    if client.swap_info():
        return ProbeResult.AFFIRMED
    info = client.application_info()
    if info.has_state_key('ratio') and not client.account_assets():
        return ProbeResult.AFFIRMED
    return ProbeResult.DENIED


Probe = Callable[[ContractClient], ProbeResult]

# Checked in order; the first affirmed probe decides the kind
PROBES: List[Tuple[Probe, ContractType]] = [
    (_interface_probe(INTERFACE_SELECTOR_ARC72), ContractType.ARC72),
    (_interface_probe(INTERFACE_SELECTOR_MP), ContractType.MP),
    (probe_arc200, ContractType.ARC200),
]

# Applied after a kind is affirmed; an affirmed refinement replaces it
REFINEMENTS: Dict[ContractType, List[Tuple[Probe, ContractType]]] = {
    ContractType.ARC200: [(probe_liquidity_pool, ContractType.LPT)],
}


class ContractClassifier:
    """Classifies contracts and caches the result per contract id."""

    def __init__(self, rpc, probes=None, refinements=None):
        """Initialize the classifier.

        Args:
            rpc: Chain event service client
            probes: Ordered (probe, kind) pairs, defaults to PROBES
            refinements: Kind -> ordered (probe, kind) pairs, defaults to REFINEMENTS
        """
        self.rpc = rpc
        self.probes = PROBES if probes is None else probes
        self.refinements = REFINEMENTS if refinements is None else refinements
        self._cache: Dict[int, ContractType] = {}

    def cached(self, contract_id: int) -> Optional[ContractType]:
        return self._cache.get(contract_id)

    def remember(self, contract_id: int, kind: ContractType) -> None:
        self._cache[contract_id] = kind

    async def _run(self, probe: Probe, client: ContractClient) -> ProbeResult:
        try:
            return await asyncio.to_thread(probe, client)
        except ChainError as e:
            logger.debug(f"[{client.contract_id}] probe {probe.__name__} indeterminate: {e}")
            return ProbeResult.INDETERMINATE

    async def _first_affirmed(
        self,
        pairs: List[Tuple[Probe, ContractType]],
        client: ContractClient,
    ) -> Tuple[Optional[ContractType], bool]:
        indeterminate = False
        for probe, kind in pairs:
            result = await self._run(probe, client)
            if result is ProbeResult.AFFIRMED:
                return kind, indeterminate
            if result is ProbeResult.INDETERMINATE:
                indeterminate = True
        return None, indeterminate

    async def classify(self, contract_id: int) -> ContractType:
        """Return the kind of ``contract_id``.

        Results are cached for the lifetime of the process, except an
        UNKNOWN reached while some probe was indeterminate, or a kind whose
        refinement could not be answered. Those are probed again next time.
        """
        if contract_id in self._cache:
            return self._cache[contract_id]

        client = ContractClient(self.rpc, contract_id)
        kind, indeterminate = await self._first_affirmed(self.probes, client)

        definite = True
        if kind is None:
            kind = ContractType.UNKNOWN
            definite = not indeterminate
        else:
            refined, unanswered = await self._first_affirmed(self.refinements.get(kind, []), client)
            if refined is not None:
                kind = refined
            elif unanswered:
                definite = False

        if definite:
            self._cache[contract_id] = kind
        logger.info(f"Classified contract {contract_id} as {kind.value}")
        return kind


__all__ = [
    'ContractClassifier',
    'ContractType',
    'ProbeResult',
    'PROBES',
    'REFINEMENTS',
]
