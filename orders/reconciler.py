"""Applies marketplace events to shops and orders.

Events come from an append-only log that can be replayed at any time, so every
handler here must be safe to run twice for the same event:

- ListingCreated assigns a listing id to a shop once, then only re-patches
  the staged config.
- OfferCreated creates an order only when none exists for the offer.
- Later offer events are applied only when they are newer than the last event
  applied to the order, and only along the allowed status transitions.
"""
import logging
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from events.abi import EventName
from events.ids import ListingID, OfferID
from ipfs import resolve_gateway
from notifications import format_total, item_titles
from shops import decode_shop_config, patch_staged_config
from .exceptions import (
    OrderNotFoundError,
    ShopListingMissingError,
    MissingEncryptedDataError,
)
from .side_effects import StageResult, run_stage

logger = logging.getLogger(__name__)

# Commission is half a percent of the sub total
COMMISSION_DIVISOR = 200

ALLOWED_TRANSITIONS = {
    EventName.OFFER_CREATED: {EventName.OFFER_ACCEPTED, EventName.OFFER_WITHDRAWN},
    EventName.OFFER_ACCEPTED: {EventName.OFFER_FINALIZED, EventName.OFFER_WITHDRAWN},
}

def event_position(event: Dict[str, Any]):
    return (event['block_number'], event['log_index'])

def order_position(order: Dict[str, Any]):
    return (order['updated_block'], order['updated_log_index'])

class OrderReconciler:
    """State machine turning marketplace events into shop and order changes.

    Collaborators are injected so each can be replaced independently:

    Args:
        shops: ShopManager
        orders: OrderManager
        ipfs: IPFSClient used to fetch offer documents
        decryptor: OfferDecryptor
        discounts: DiscountValidator
        refunds: StripeRefundProcessor
        email: EmailNotifier
        discord: DiscordNotifier
        fulfiller: PrintfulFulfiller
        settings: Validated settings dict
    """

    def __init__(self, shops, orders, ipfs, decryptor, discounts, refunds,
                 email, discord, fulfiller, settings: Dict[str, Any]):
        self.shops = shops
        self.orders = orders
        self.ipfs = ipfs
        self.decryptor = decryptor
        self.discounts = discounts
        self.refunds = refunds
        self.email = email
        self.discord = discord
        self.fulfiller = fulfiller
        self.settings = settings

        self._handlers = {
            EventName.LISTING_CREATED: self._handle_listing_created,
            EventName.OFFER_CREATED: self._handle_offer,
            EventName.OFFER_ACCEPTED: self._handle_offer,
            EventName.OFFER_FINALIZED: self._handle_offer,
            EventName.OFFER_WITHDRAWN: self._handle_offer,
        }

    async def process_event(
        self,
        event: Dict[str, Any],
        shop: Optional[Dict[str, Any]],
        network: Optional[Dict[str, Any]] = None,
        skip_email: bool = False,
        skip_discord: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Apply one stored event.

        Args:
            event: Stored event row
            shop: Shop owning the event's listing, or None
            network: Network row the event was emitted on
            skip_email: Do not send the new order email
            skip_discord: Do not post the new order to Discord

        Returns:
            The shop for ListingCreated, the order for offer events, or None
            when the event does not concern this service.

        Raises:
            ShopListingMissingError: Offer event for a shop without listing id
            OrderNotFoundError: Offer event other than OfferCreated for an unknown order
            MissingEncryptedDataError: Offer document without encrypted payload
            IPFSError: Offer document could not be fetched
            OfferDecryptionError: Offer payload could not be decrypted
            RefundError: Withdrawn card payment cannot be matched to a charge
            ShopConfigError: Staged shop config could not be patched
        """
        event_name = EventName(event['event_name'])
        handler = self._handlers.get(event_name)
        if handler is None:
            if event_name.is_offer_event:
                logger.info(
                    f"Ignoring {event_name.value} for listing {event.get('listing_id')} "
                    f"offer {event.get('offer_id')}"
                )
            else:
                logger.debug(f"Ignoring {event_name.value}")
            return None

        return await handler(
            event,
            shop,
            network or {},
            skip_email=skip_email,
            skip_discord=skip_discord
        )

    async def _handle_listing_created(self, event, shop, network, **kwargs):
        network_id = event['network_id']
        listing_id = str(ListingID(event['listing_id'], network_id, event['contract_version']))

        # Already assigned by an earlier pass; only the config patch may be missing
        owner = shop or await self.shops.get_shop_by_listing_id(listing_id)
        if owner:
            logger.info(f"Listing {listing_id} already belongs to shop {owner['id']}")
            patch_staged_config(self.settings['shop_cache_dir'], owner, owner['network_id'], listing_id)
            return owner

        pending = await self.shops.find_pending_shop(event['party'])
        if not pending:
            logger.info(f"No pending shop for wallet {event['party']}; ignoring listing {listing_id}")
            return None

        listing_id = str(ListingID(event['listing_id'], pending['network_id'], event['contract_version']))
        logger.info(f"Shop {pending['id']}: assigning listing {listing_id}")
        updated = await self.shops.set_listing_id(pending['id'], listing_id)
        patch_staged_config(self.settings['shop_cache_dir'], updated, updated['network_id'], listing_id)
        return updated

    async def _handle_offer(self, event, shop, network, skip_email=False, skip_discord=False):
        event_name = EventName(event['event_name'])
        if shop is None:
            logger.info(
                f"{event_name.value} for listing {event.get('listing_id')} is not associated with a shop"
            )
            return None

        if not shop.get('listing_id'):
            raise ShopListingMissingError(f"Shop {shop['id']} has no listing id")

        order_id = str(OfferID(shop['listing_id'], event['offer_id']))
        order = await self.orders.get_order(event['network_id'], shop['id'], order_id)

        if order is None:
            if event_name != EventName.OFFER_CREATED:
                raise OrderNotFoundError(f"{event_name.value}: order {order_id} not found")
            return await self._create_order(
                event, shop, network, order_id,
                skip_email=skip_email,
                skip_discord=skip_discord
            )

        return await self._update_order(event, event_name, shop, network, order)

    async def _update_order(self, event, event_name, shop, network, order):
        order_id = order['order_id']

        if event_position(event) <= order_position(order):
            logger.info(
                f"Order {order_id}: {event_name.value} at block {event['block_number']} "
                f"log {event['log_index']} already applied"
            )
            return order

        status = EventName(order['status_str'])
        if event_name not in ALLOWED_TRANSITIONS.get(status, ()):
            logger.warning(f"Order {order_id}: ignoring {event_name.value} after {status.value}")
            return order

        data = dict(order['data'] or {})
        if event_name == EventName.OFFER_WITHDRAWN and self._is_refundable(data):
            shop_config = decode_shop_config(shop)
            refund_error = await self.refunds.refund(
                shop, shop_config, order, (network.get('config') or {})
            )
            if refund_error:
                logger.warning(f"Order {order_id}: refund failed with {refund_error}")
                data['refundError'] = refund_error
            else:
                data.pop('refundError', None)

        updated = await self.orders.update_order(order['id'], {
            'status_str': event_name.value,
            'data': data,
            'updated_block': event['block_number'],
            'updated_log_index': event['log_index'],
        })
        logger.info(f"Order {order_id}: status set to {event_name.value}")
        return updated

    def _is_refundable(self, data: Dict[str, Any]) -> bool:
        method = (data.get('paymentMethod') or {}).get('id')
        return method in self.settings['refund_payment_methods']

    async def _create_order(self, event, shop, network, order_id, skip_email=False, skip_discord=False):
        shop_config = decode_shop_config(shop)
        network_config = network.get('config') or {}
        gateway = resolve_gateway(shop_config, network_config, self.settings['ipfs_gateway'])

        logger.info(f"Order {order_id}: fetching offer {event['ipfs_hash']} from {gateway}")
        offer = await self.ipfs.fetch_json(gateway, event['ipfs_hash'], self.settings['ipfs_timeout'])
        if not isinstance(offer, dict):
            offer = {}

        payment_code = offer.get('paymentCode')
        encrypted_hash = offer.get('encryptedData')
        if not encrypted_hash:
            raise MissingEncryptedDataError()

        data = dict(await self.decryptor(shop, shop_config, encrypted_hash, gateway))
        data['offerId'] = order_id
        data['tx'] = event['transaction_hash']

        referrer = None
        commission_pending = None
        if data.get('referrer'):
            try:
                checksummed = to_checksum_address(data['referrer'])
            except ValueError:
                logger.warning(f"Order {order_id}: invalid referrer {data['referrer']!r}")
            else:
                try:
                    sub_total = int(data.get('subTotal') or 0)
                except (TypeError, ValueError):
                    logger.warning(
                        f"Order {order_id}: no commission for referrer {checksummed}, "
                        f"invalid subTotal {data.get('subTotal')!r}"
                    )
                else:
                    referrer = checksummed
                    commission_pending = sub_total // COMMISSION_DIVISOR

        fields = {
            'network_id': event['network_id'],
            'shop_id': shop['id'],
            'order_id': order_id,
            'status_str': EventName.OFFER_CREATED.value,
            'data': data,
            'ipfs_hash': event['ipfs_hash'],
            'encrypted_ipfs_hash': encrypted_hash,
            'payment_code': payment_code,
            'referrer': referrer,
            'commission_pending': commission_pending,
            'created_block': event['block_number'],
            'updated_block': event['block_number'],
            'updated_log_index': event['log_index'],
            'created_at': event.get('timestamp'),
        }

        order = await self.orders.create_order(fields, discounts=self.discounts)

        results = [
            await self._fulfill(order, shop, shop_config),
            await self._send_email(order, shop, shop_config, network, skip_email),
            await self._send_discord(order, shop, network_config, skip_discord),
        ]
        order['side_effects'] = [result.to_dict() for result in results]
        return order

    async def _fulfill(self, order, shop, shop_config) -> StageResult:
        if not (shop_config.get('printful') and shop_config.get('printfulAutoFulfill')):
            return StageResult.skipped('printful', 'auto-fulfillment disabled')
        return await run_stage(
            'printful', order['order_id'],
            self.fulfiller.fulfill(order, shop_config, shop)
        )

    async def _send_email(self, order, shop, shop_config, network, skip_email) -> StageResult:
        if skip_email:
            return StageResult.skipped('email', 'skip_email set')
        return await run_stage(
            'email', order['order_id'],
            self.email.send_new_order(shop, shop_config, order['data'], network)
        )

    async def _send_discord(self, order, shop, network_config, skip_discord) -> StageResult:
        if skip_discord:
            return StageResult.skipped('discord', 'skip_discord set')
        webhook = network_config.get('discordWebhook')
        if not webhook:
            return StageResult.skipped('discord', 'no webhook configured')
        data = order['data']
        return await run_stage(
            'discord', order['order_id'],
            self.discord.send_new_order(
                webhook,
                order['order_id'],
                shop['name'],
                format_total(data.get('total')),
                item_titles(data)
            )
        )
