"""Printful auto-fulfillment.

Shops selling Printful products may ask for their orders to be passed on to
Printful as soon as they are paid. Only payload items that carry a Printful
variant id (``externalVariantId``) are sent; everything else is left for the
merchant.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

PRINTFUL_URL = 'https://api.printful.com'

class FulfillmentError(Exception):
    """Raised when Printful rejects or cannot receive an order."""
    pass

def build_recipient(user_info: Dict[str, Any]) -> Dict[str, Any]:
    name = ' '.join(p for p in (user_info.get('firstName'), user_info.get('lastName')) if p)
    return {
        'name': name,
        'address1': user_info.get('address1'),
        'address2': user_info.get('address2'),
        'city': user_info.get('city'),
        'state_code': user_info.get('provinceCode') or user_info.get('province'),
        'country_code': user_info.get('countryCode'),
        'zip': user_info.get('zip'),
        'phone': user_info.get('phone'),
        'email': user_info.get('email'),
    }

def build_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {'sync_variant_id': int(item['externalVariantId']), 'quantity': int(item.get('quantity') or 1)}
        for item in items
        if item.get('externalVariantId')
    ]

class PrintfulFulfiller:
    """Creates Printful orders for stored shop orders."""

    def __init__(self, base_url: str = PRINTFUL_URL, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post_order(self, api_key: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.base_url}/orders",
                json=payload,
                headers={'Authorization': f'Bearer {api_key}'},
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise FulfillmentError(f"Printful request failed: {e}") from e

        if response.status_code >= 400:
            raise FulfillmentError(
                f"Printful rejected order {payload['external_id']}: "
                f"{response.status_code} {response.text}"
            )
        return response.json().get('result') or {}

    async def fulfill(self, order: Dict[str, Any], shop_config: Dict[str, Any],
                      shop: Dict[str, Any]) -> bool:
        """Submit an order to Printful.

        Returns:
            False if the order has no Printful items, True once submitted

        Raises:
            FulfillmentError: If the shop has no API key or Printful refuses the order
        """
        api_key = shop_config.get('printful')
        if not api_key:
            raise FulfillmentError(f"Shop {shop['id']} has no Printful API key")

        data = order['data']
        items = build_items(data.get('items') or [])
        if not items:
            logger.info(f"Order {order['order_id']} has no Printful items")
            return False

        payload = {
            'external_id': order['order_id'],
            'recipient': build_recipient(data.get('userInfo') or {}),
            'items': items,
        }
        result = await asyncio.to_thread(self._post_order, api_key, payload)
        logger.info(f"Order {order['order_id']} sent to Printful as {result.get('id')}")
        return True

__all__ = ['PrintfulFulfiller', 'FulfillmentError', 'build_items', 'build_recipient']
