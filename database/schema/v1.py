"""Schema v1 - Initial database schema.

This version includes tables for:
- Networks followed by the event monitor
- Shops and their marketplace listing ids
- Marketplace events (append-only audit log)
- Orders reconciled from offer events
- External payments and discounts consulted while processing orders
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'networks',
            'columns': [
                {'name': 'network_id', 'type': 'INT8', 'primary_key': True},
                {'name': 'provider', 'type': 'TEXT', 'nullable': False},
                {'name': 'marketplace_contract', 'type': 'TEXT', 'nullable': False},
                {'name': 'marketplace_version', 'type': 'TEXT', 'nullable': False, 'default': "'001'"},
                {'name': 'active', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'config', 'type': 'JSONB', 'nullable': False, 'default': "'{}'"},
                {'name': 'last_block', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'shops',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'network_id', 'type': 'INT8', 'nullable': False},
                {'name': 'wallet_address', 'type': 'TEXT'},
                {'name': 'listing_id', 'type': 'TEXT'},
                {'name': 'auth_token', 'type': 'TEXT', 'nullable': False},
                {'name': 'config', 'type': 'JSONB', 'nullable': False, 'default': "'{}'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_shops_listing', 'columns': ['listing_id'], 'unique': True},
                {'name': 'idx_shops_wallet', 'columns': ['lower(wallet_address)']},
                {'name': 'idx_shops_auth_token', 'columns': ['auth_token'], 'unique': True}
            ]
        },
        {
            'name': 'events',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'network_id', 'type': 'INT8', 'nullable': False},
                {'name': 'contract_version', 'type': 'TEXT', 'nullable': False},
                {'name': 'shop_id', 'type': 'UUID'},
                {'name': 'address', 'type': 'TEXT', 'nullable': False},
                {'name': 'event_name', 'type': 'TEXT', 'nullable': False},
                {'name': 'listing_id', 'type': 'INT8'},
                {'name': 'offer_id', 'type': 'INT8'},
                {'name': 'party', 'type': 'TEXT'},
                {'name': 'ipfs_hash', 'type': 'TEXT'},
                {'name': 'topics', 'type': 'JSONB', 'nullable': False},
                {'name': 'data', 'type': 'TEXT', 'nullable': False},
                {'name': 'transaction_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'log_index', 'type': 'INT8', 'nullable': False},
                {'name': 'block_number', 'type': 'INT8', 'nullable': False},
                {'name': 'block_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'timestamp', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {
                    'name': 'idx_events_natural_key',
                    'columns': ['network_id', 'transaction_hash', 'log_index'],
                    'unique': True
                },
                {'name': 'idx_events_block', 'columns': ['network_id', 'block_number', 'log_index']},
                {'name': 'idx_events_shop', 'columns': ['shop_id']}
            ]
        },
        {
            'name': 'orders',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'network_id', 'type': 'INT8', 'nullable': False},
                {'name': 'shop_id', 'type': 'UUID', 'nullable': False},
                {'name': 'order_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'status_str', 'type': 'TEXT', 'nullable': False},
                {'name': 'data', 'type': 'JSONB', 'nullable': False},
                {'name': 'ipfs_hash', 'type': 'TEXT'},
                {'name': 'encrypted_ipfs_hash', 'type': 'TEXT'},
                {'name': 'payment_code', 'type': 'TEXT'},
                {'name': 'referrer', 'type': 'TEXT'},
                {'name': 'commission_pending', 'type': 'INT8'},
                {'name': 'created_block', 'type': 'INT8', 'nullable': False},
                {'name': 'updated_block', 'type': 'INT8', 'nullable': False},
                {'name': 'updated_log_index', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {
                    'name': 'idx_orders_offer',
                    'columns': ['network_id', 'shop_id', 'order_id'],
                    'unique': True
                },
                {'name': 'idx_orders_payment_code', 'columns': ['payment_code']},
                {'name': 'idx_orders_status', 'columns': ['status_str']}
            ]
        },
        {
            'name': 'external_payments',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'payment_code', 'type': 'TEXT', 'nullable': False},
                {'name': 'payment_intent', 'type': 'TEXT'},
                {'name': 'amount', 'type': 'INT8'},
                {'name': 'data', 'type': 'JSONB'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_external_payments_code', 'columns': ['payment_code'], 'unique': True}
            ]
        },
        {
            'name': 'discounts',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'shop_id', 'type': 'UUID', 'nullable': False},
                {'name': 'code', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'active'"},
                {'name': 'discount_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'value', 'type': 'INT8', 'nullable': False},
                {'name': 'max_uses', 'type': 'INT8'},
                {'name': 'uses', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'start_time', 'type': 'TIMESTAMPTZ'},
                {'name': 'end_time', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_discounts_shop_code', 'columns': ['shop_id', 'lower(code)'], 'unique': True}
            ]
        }
    ],
    'migrations': []
}
