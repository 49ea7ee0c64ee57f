"""Orders module for shop orders driven by marketplace offer events.

An order is created by the first OfferCreated event of an offer and updated by
the OfferAccepted, OfferFinalized and OfferWithdrawn events that follow. Rows
are never deleted.
"""
import logging
from typing import Any, Dict, Optional

from asyncpg.pool import Pool
from asyncpg.exceptions import PostgresError, UniqueViolationError

from database import get_pool, DatabaseError
from .exceptions import (
    OrderError,
    OrderNotFoundError,
    ShopListingMissingError,
    MissingEncryptedDataError,
)
from .side_effects import StageResult, StageStatus, run_stage
from .reconciler import OrderReconciler

logger = logging.getLogger(__name__)

ORDER_COLUMNS = (
    'network_id',
    'shop_id',
    'order_id',
    'status_str',
    'data',
    'ipfs_hash',
    'encrypted_ipfs_hash',
    'payment_code',
    'referrer',
    'commission_pending',
    'created_block',
    'updated_block',
    'updated_log_index',
    'created_at',
)

UPDATABLE_COLUMNS = ('status_str', 'data', 'updated_block', 'updated_log_index')

class OrderManager:
    """Persistence for orders."""

    def __init__(self, pool: Optional[Pool] = None) -> None:
        """Initialize order manager.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_order(self, network_id: int, shop_id, order_id: str) -> Optional[Dict[str, Any]]:
        """Get an order by its natural key."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                SELECT * FROM orders
                WHERE network_id = $1 AND shop_id = $2 AND order_id = $3
                ''',
                network_id,
                shop_id,
                order_id
            )
        return dict(row) if row else None

    async def create_order(self, fields: Dict[str, Any], discounts=None) -> Dict[str, Any]:
        """Insert a new order.

        Args:
            fields: Column values, keys from ORDER_COLUMNS. created_at
                defaults to now when absent or None.
            discounts: Optional DiscountValidator. The order's discount is
                validated and consumed in the insert's transaction, and an
                invalid one is recorded as data.error.

        Raises:
            OrderError: If an order with the same key already exists
            DatabaseError: If the insert fails
        """
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    if discounts is not None:
                        valid, error = await discounts.validate(fields, mark_if_valid=True, conn=conn)
                        if not valid:
                            fields = {**fields, 'data': {**(fields.get('data') or {}), 'error': error}}

                    columns = [c for c in ORDER_COLUMNS if fields.get(c) is not None]
                    placeholders = ', '.join(f'${i}' for i in range(1, len(columns) + 1))
                    row = await conn.fetchrow(
                        f'''
                        INSERT INTO orders ({', '.join(columns)})
                        VALUES ({placeholders})
                        RETURNING *
                        ''',
                        *[fields[c] for c in columns]
                    )
        except UniqueViolationError as e:
            raise OrderError(f"Order {fields['order_id']} already exists") from e
        except PostgresError as e:
            logger.error(f"Database error creating order {fields.get('order_id')}: {e}")
            raise DatabaseError(f"Failed to create order: {e}") from e

        logger.info(f"Created order {row['order_id']} for shop {row['shop_id']}")
        return dict(row)

    async def update_order(self, id, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update the mutable columns of an order.

        Raises:
            OrderNotFoundError: If no order has this id
            DatabaseError: If the update fails
        """
        columns = [c for c in UPDATABLE_COLUMNS if c in fields]
        if not columns:
            raise OrderError("Nothing to update")
        assignments = ', '.join(f'{c} = ${i}' for i, c in enumerate(columns, start=2))

        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    UPDATE orders
                    SET {assignments}, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    id,
                    *[fields[c] for c in columns]
                )
        except PostgresError as e:
            logger.error(f"Database error updating order {id}: {e}")
            raise DatabaseError(f"Failed to update order: {e}") from e

        if not row:
            raise OrderNotFoundError(f"Order {id} not found")
        return dict(row)

__all__ = [
    'OrderManager',
    'OrderReconciler',
    'StageResult',
    'StageStatus',
    'run_stage',
    'OrderError',
    'OrderNotFoundError',
    'ShopListingMissingError',
    'MissingEncryptedDataError',
]
