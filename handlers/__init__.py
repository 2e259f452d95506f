"""Event handlers, one per contract kind.

Each handler applies a contract's events for a round window to the
materialized store; the sync coordinator picks the handler from the
classified contract kind.
"""
from typing import Any, Dict

from classifier import ContractType

from .base import EventHandler
from .fungible import FungibleHandler, LiquidityPoolHandler
from .marketplace import MarketplaceHandler
from .metadata import MetadataFetcher
from .nft import NFTHandler

def build_handlers(store, retry, settings: Dict[str, Any]) -> Dict[ContractType, EventHandler]:
    """Handlers for every indexable contract kind, configured from settings"""
    metadata = MetadataFetcher(settings['ipfs_gateway'], settings['metadata_timeout'])
    return {
        ContractType.ARC72: NFTHandler(
            store,
            retry,
            metadata=metadata,
            resolver_contract_id=settings['resolver_contract_id'],
            skip_mint_contracts=settings['skip_mint_contracts'],
        ),
        ContractType.ARC200: FungibleHandler(store, retry),
        ContractType.LPT: LiquidityPoolHandler(store, retry),
        ContractType.MP: MarketplaceHandler(store, retry),
    }

__all__ = [
    'build_handlers',
    'EventHandler',
    'FungibleHandler',
    'LiquidityPoolHandler',
    'MarketplaceHandler',
    'MetadataFetcher',
    'NFTHandler',
]
