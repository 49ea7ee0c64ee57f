"""Payments module: external payment records and refunds.

External payments are written by the checkout flow when a buyer pays by card.
The row maps the offer's payment code to the gateway's payment reference,
which is what a refund needs.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import stripe

from database import get_pool
from ipfs import resolve_gateway

logger = logging.getLogger(__name__)

class PaymentError(Exception):
    """Base exception for payment operations."""
    pass

class RefundError(PaymentError):
    """Raised when the data a refund relies on is missing or corrupt."""
    pass

class ExternalPaymentManager:
    """Read access to external payment records."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_by_payment_code(self, payment_code: str) -> Optional[Dict[str, Any]]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                SELECT id, payment_code, payment_intent, amount
                FROM external_payments
                WHERE payment_code = $1
                ''',
                payment_code
            )
        return dict(row) if row else None

def refund_idempotency_key(order: Dict[str, Any]) -> str:
    """Stripe idempotency key shared by every refund attempt of an order."""
    return f"refund-{order['order_id']}"

class StripeRefundProcessor:
    """Reverses card payments through Stripe.

    ``refund`` returns None when the refund went through, or the reason string
    Stripe gave when it did not. Missing correlation data raises RefundError.
    """

    def __init__(self, payments: ExternalPaymentManager, ipfs, settings: Dict[str, Any]):
        self.payments = payments
        self.ipfs = ipfs
        self.settings = settings

    async def _get_payment_code(self, order: Dict[str, Any], shop_config: Dict[str, Any],
                                network_config: Dict[str, Any]) -> Optional[str]:
        if order.get('payment_code'):
            return order['payment_code']

        # Older orders only have the code inside the offer document
        gateway = resolve_gateway(shop_config, network_config, self.settings['ipfs_gateway'])
        logger.info(f"Fetching offer data with hash {order['ipfs_hash']}")
        offer = await self.ipfs.fetch_json(gateway, order['ipfs_hash'], self.settings['ipfs_timeout'])
        return offer.get('paymentCode')

    async def refund(self, shop: Dict[str, Any], shop_config: Dict[str, Any],
                     order: Dict[str, Any], network_config: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Refund the card payment behind an order.

        Raises:
            RefundError: If the external payment or its payment intent is missing,
                or the shop has no Stripe key
        """
        logger.info(f"Trying to refund Stripe payment for order {order['order_id']}")

        payment_code = await self._get_payment_code(order, shop_config, network_config or {})
        if not payment_code:
            raise RefundError(f"Order {order['order_id']} has no payment code")
        logger.info(f"Payment Code {payment_code}")

        external_payment = await self.payments.get_by_payment_code(payment_code)
        if not external_payment:
            raise RefundError(f"Failed loading external payment with code {payment_code}")

        payment_intent = external_payment.get('payment_intent')
        if not payment_intent:
            raise RefundError(
                f"Missing payment_intent in external payment with id {external_payment['id']}"
            )

        api_key = shop_config.get('stripeBackend')
        if not api_key:
            raise RefundError(f"Shop {shop['id']} has no Stripe key configured")

        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                payment_intent=payment_intent,
                api_key=api_key,
                idempotency_key=refund_idempotency_key(order)
            )
        except stripe.StripeError as e:
            reason = getattr(e, 'code', None) or getattr(e, 'user_message', None) or str(e)
            logger.error(f"Stripe refund for payment intent {payment_intent} failed: {reason}")
            return reason

        if refund.status in ('failed', 'canceled'):
            reason = getattr(refund, 'failure_reason', None) or refund.status
            logger.error(f"Stripe refund for payment intent {payment_intent} failed: {reason}")
            return reason

        logger.info(f"Payment intent {payment_intent} refunded ({refund.status})")
        return None

__all__ = [
    'ExternalPaymentManager',
    'StripeRefundProcessor',
    'PaymentError',
    'RefundError',
    'refund_idempotency_key',
]
