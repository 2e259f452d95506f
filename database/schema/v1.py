"""Schema v1 - Initial database schema.

This version includes tables for:
- ARC-72 collections, tokens and transfer history
- ARC-200 contracts, balances, allowances and transfer history
- MP-213 offer listings and their accept/delete records
- Per-contract sync watermarks
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'collections',
            'columns': [
                {'name': 'contract_id', 'type': 'INT8', 'primary_key': True},
                {'name': 'total_supply', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'create_round', 'type': 'INT8'},
                {'name': 'creator', 'type': 'TEXT'},
                {'name': 'global_state', 'type': 'TEXT'},
                {'name': 'last_sync_round', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_collections_creator', 'columns': ['creator']}
            ]
        },
        {
            'name': 'tokens',
            'columns': [
                {'name': 'contract_id', 'type': 'INT8'},
                {'name': 'token_id', 'type': 'TEXT'},
                {'name': 'token_index', 'type': 'INT8'},
                {'name': 'owner', 'type': 'TEXT'},
                {'name': 'approved', 'type': 'TEXT'},
                {'name': 'metadata_uri', 'type': 'TEXT'},
                {'name': 'metadata', 'type': 'TEXT'},
                {'name': 'mint_round', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['contract_id', 'token_id'],
            'indexes': [
                {'name': 'idx_tokens_owner', 'columns': ['owner']},
                {'name': 'idx_tokens_approved', 'columns': ['approved']}
            ]
        },
        {
            'name': 'nft_transfers',
            'columns': [
                {'name': 'transaction_id', 'type': 'TEXT'},
                {'name': 'contract_id', 'type': 'INT8'},
                {'name': 'token_id', 'type': 'TEXT'},
                {'name': 'round', 'type': 'INT8', 'nullable': False},
                {'name': 'from_addr', 'type': 'TEXT', 'nullable': False},
                {'name': 'to_addr', 'type': 'TEXT', 'nullable': False},
                {'name': 'timestamp', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['transaction_id', 'contract_id', 'token_id'],
            'indexes': [
                {'name': 'idx_nft_transfers_contract_round', 'columns': ['contract_id', 'round']},
                {'name': 'idx_nft_transfers_from', 'columns': ['from_addr']},
                {'name': 'idx_nft_transfers_to', 'columns': ['to_addr']}
            ]
        },
        {
            'name': 'fungible_contracts',
            'columns': [
                {'name': 'contract_id', 'type': 'INT8', 'primary_key': True},
                {'name': 'name', 'type': 'TEXT'},
                {'name': 'symbol', 'type': 'TEXT'},
                {'name': 'decimals', 'type': 'INT8'},
                {'name': 'total_supply', 'type': 'TEXT', 'nullable': False, 'default': "'0'"},
                {'name': 'create_round', 'type': 'INT8'},
                {'name': 'creator', 'type': 'TEXT'},
                {'name': 'is_liquidity_pool', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_fungible_contracts_symbol', 'columns': ['symbol']}
            ]
        },
        {
            'name': 'account_balances',
            'columns': [
                {'name': 'contract_id', 'type': 'INT8'},
                {'name': 'account_id', 'type': 'TEXT'},
                {'name': 'balance', 'type': 'TEXT', 'nullable': False, 'default': "'0'"},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['contract_id', 'account_id'],
            'indexes': [
                {'name': 'idx_account_balances_account', 'columns': ['account_id']}
            ]
        },
        {
            'name': 'allowances',
            'columns': [
                {'name': 'contract_id', 'type': 'INT8'},
                {'name': 'owner', 'type': 'TEXT'},
                {'name': 'spender', 'type': 'TEXT'},
                {'name': 'amount', 'type': 'TEXT', 'nullable': False, 'default': "'0'"},
                {'name': 'round', 'type': 'INT8', 'nullable': False},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['contract_id', 'owner', 'spender'],
            'indexes': [
                {'name': 'idx_allowances_spender', 'columns': ['spender']}
            ]
        },
        {
            'name': 'fungible_transfers',
            'columns': [
                {'name': 'transaction_id', 'type': 'TEXT'},
                {'name': 'contract_id', 'type': 'INT8'},
                {'name': 'sender', 'type': 'TEXT'},
                {'name': 'receiver', 'type': 'TEXT'},
                {'name': 'amount', 'type': 'TEXT', 'nullable': False},
                {'name': 'round', 'type': 'INT8', 'nullable': False},
                {'name': 'timestamp', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['transaction_id', 'contract_id', 'sender', 'receiver'],
            'indexes': [
                {'name': 'idx_fungible_transfers_contract_round', 'columns': ['contract_id', 'round']},
                {'name': 'idx_fungible_transfers_sender', 'columns': ['sender']},
                {'name': 'idx_fungible_transfers_receiver', 'columns': ['receiver']}
            ]
        },
        {
            'name': 'offer_listings',
            'columns': [
                {'name': 'mp_contract_id', 'type': 'INT8'},
                {'name': 'mp_listing_id', 'type': 'INT8'},
                {'name': 'transaction_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'contract_id', 'type': 'INT8', 'nullable': False},
                {'name': 'token_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'offerer', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'DECIMAL', 'nullable': False},
                {'name': 'currency', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'create_round', 'type': 'INT8', 'nullable': False},
                {'name': 'create_timestamp', 'type': 'INT8'},
                {'name': 'accept_id', 'type': 'TEXT'},
                {'name': 'delete_id', 'type': 'TEXT'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['mp_contract_id', 'mp_listing_id'],
            'indexes': [
                {'name': 'idx_offer_listings_token', 'columns': ['contract_id', 'token_id']},
                {'name': 'idx_offer_listings_offerer', 'columns': ['offerer']},
                {
                    'name': 'idx_offer_listings_open',
                    'columns': ['mp_contract_id', 'create_round'],
                    'where': 'accept_id IS NULL AND delete_id IS NULL'
                }
            ]
        },
        {
            'name': 'offer_accepts',
            'columns': [
                {'name': 'transaction_id', 'type': 'TEXT'},
                {'name': 'mp_contract_id', 'type': 'INT8'},
                {'name': 'mp_listing_id', 'type': 'INT8'},
                {'name': 'contract_id', 'type': 'INT8', 'nullable': False},
                {'name': 'token_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'accepter', 'type': 'TEXT'},
                {'name': 'round', 'type': 'INT8', 'nullable': False},
                {'name': 'timestamp', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['transaction_id', 'mp_contract_id', 'mp_listing_id'],
            'foreign_keys': [
                {
                    'columns': ['mp_contract_id', 'mp_listing_id'],
                    'references': 'offer_listings(mp_contract_id, mp_listing_id)'
                }
            ]
        },
        {
            'name': 'offer_deletes',
            'columns': [
                {'name': 'transaction_id', 'type': 'TEXT'},
                {'name': 'mp_contract_id', 'type': 'INT8'},
                {'name': 'mp_listing_id', 'type': 'INT8'},
                {'name': 'contract_id', 'type': 'INT8', 'nullable': False},
                {'name': 'token_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'deleter', 'type': 'TEXT'},
                {'name': 'round', 'type': 'INT8', 'nullable': False},
                {'name': 'timestamp', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['transaction_id', 'mp_contract_id', 'mp_listing_id'],
            'foreign_keys': [
                {
                    'columns': ['mp_contract_id', 'mp_listing_id'],
                    'references': 'offer_listings(mp_contract_id, mp_listing_id)'
                }
            ]
        },
        {
            'name': 'contract_sync',
            'columns': [
                {'name': 'contract_id', 'type': 'INT8', 'primary_key': True},
                {'name': 'contract_type', 'type': 'TEXT'},
                {'name': 'last_sync_round', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_contract_sync_type', 'columns': ['contract_type']}
            ]
        }
    ]
}
