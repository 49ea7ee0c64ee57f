"""Discount code validation for incoming orders."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from database import get_pool

logger = logging.getLogger(__name__)

def get_discount_code(data: Dict[str, Any]) -> Optional[str]:
    """Discount code carried by an order payload, if any."""
    discount_obj = data.get('discountObj') or {}
    code = discount_obj.get('code') or data.get('discountCode')
    return code.strip() if isinstance(code, str) and code.strip() else None

def compute_discount(discount: Dict[str, Any], sub_total: int) -> int:
    """Amount in minor currency units a discount takes off ``sub_total``."""
    if discount['discount_type'] == 'percentage':
        return (sub_total * discount['value']) // 100
    return min(discount['value'], sub_total)

class DiscountValidator:
    """Checks that the discount an order claims is one the shop offers."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def validate(self, order: Dict[str, Any], mark_if_valid: bool = False,
                       conn=None) -> Tuple[bool, Optional[str]]:
        """Validate the discount used by a prospective order.

        Args:
            order: Order fields about to be inserted (shop_id and data are read)
            mark_if_valid: Consume one use of the discount when it is valid
            conn: Connection to run on, so the use commits or rolls back with
                the caller's transaction. A pooled connection is used when omitted.

        Returns:
            (valid, error). Orders without a discount code are valid.
        """
        data = order.get('data') or {}
        code = get_discount_code(data)
        if not code:
            return True, None

        if conn is not None:
            return await self._validate(conn, order, data, code, mark_if_valid)

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await self._validate(conn, order, data, code, mark_if_valid)

    async def _validate(self, conn, order, data, code, mark_if_valid) -> Tuple[bool, Optional[str]]:
        async with conn.transaction():
            discount = await conn.fetchrow(
                '''
                SELECT * FROM discounts
                WHERE shop_id = $1 AND lower(code) = lower($2)
                FOR UPDATE
                ''',
                order['shop_id'],
                code
            )

            error = self._check(discount, data, code)
            if error:
                logger.warning(f"Order {order.get('order_id')}: {error}")
                return False, error

            if mark_if_valid:
                await conn.execute(
                    '''
                    UPDATE discounts
                    SET uses = uses + 1, updated_at = now()
                    WHERE id = $1
                    ''',
                    discount['id']
                )
                logger.info(f"Order {order.get('order_id')}: marked discount {code} as used")

        return True, None

    def _check(self, discount, data: Dict[str, Any], code: str) -> Optional[str]:
        if not discount:
            return f"Invalid discount code {code}"
        if discount['status'] != 'active':
            return f"Discount code {code} is not active"

        now = datetime.now(timezone.utc)
        if discount['start_time'] and now < discount['start_time']:
            return f"Discount code {code} is not active yet"
        if discount['end_time'] and now > discount['end_time']:
            return f"Discount code {code} has expired"
        if discount['max_uses'] is not None and discount['uses'] >= discount['max_uses']:
            return f"Discount code {code} has reached its usage limit"

        expected = compute_discount(discount, int(data.get('subTotal') or 0))
        claimed = int(data.get('discount') or 0)
        if claimed != expected:
            return f"Discount amount mismatch for {code}: expected {expected}, got {claimed}"
        return None

__all__ = ['DiscountValidator', 'compute_discount', 'get_discount_code']
