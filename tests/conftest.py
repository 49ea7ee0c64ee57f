"""Shared fixtures: in-memory managers and event factories."""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from config import default_settings
from events import EventName
from orders import OrderError, OrderNotFoundError, OrderReconciler
from shops import ShopError

WALLET = "0x627306090abaB3A6e1400e9345bC60c78a8BEf57"
REFERRER = "0xf17f52151ebef6c7334fad080c5704d77216b732"
OFFER_HASH = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
BLOCK_TIME = datetime(2021, 3, 1, 12, 0, tzinfo=timezone.utc)

def make_shop(**fields) -> Dict[str, Any]:
    shop = {
        'id': uuid.uuid4(),
        'name': 'Test Shop',
        'network_id': 1,
        'wallet_address': WALLET,
        'listing_id': '1-001-1',
        'auth_token': 'shop-token',
        'config': {'supportEmail': 'owner@shop.test'},
        'updated_at': BLOCK_TIME,
    }
    shop.update(fields)
    return shop

def make_event(name: EventName, block_number: int = 100, log_index: int = 0, **fields) -> Dict[str, Any]:
    event = {
        'id': uuid.uuid4(),
        'network_id': 1,
        'contract_version': '001',
        'event_name': name,
        'listing_id': 1,
        'offer_id': 0,
        'party': WALLET,
        'ipfs_hash': OFFER_HASH,
        'transaction_hash': '0x' + f'{block_number:x}{log_index:x}'.rjust(64, '0'),
        'block_number': block_number,
        'log_index': log_index,
        'timestamp': BLOCK_TIME,
    }
    event.update(fields)
    return event

def make_payload(**fields) -> Dict[str, Any]:
    payload = {
        'items': [{'title': 'Black T-Shirt', 'quantity': 1, 'price': 2500}],
        'subTotal': 2500,
        'total': 2999,
        'paymentMethod': {'id': 'stripe', 'label': 'Credit Card'},
        'userInfo': {'email': 'buyer@example.com', 'firstName': 'Ada'},
    }
    payload.update(fields)
    return payload

class FakeShopManager:
    def __init__(self, *shops):
        self.shops = list(shops)

    async def get_shop(self, shop_id):
        return next((s for s in self.shops if s['id'] == shop_id), None)

    async def get_shop_by_listing_id(self, listing_id):
        return next((s for s in self.shops if s['listing_id'] == listing_id), None)

    async def find_pending_shop(self, wallet_address):
        pending = [
            s for s in self.shops
            if s['wallet_address'].lower() == wallet_address.lower() and s['listing_id'] is None
        ]
        pending.sort(key=lambda s: s['updated_at'], reverse=True)
        return pending[0] if pending else None

    async def set_listing_id(self, shop_id, listing_id):
        shop = await self.get_shop(shop_id)
        if not shop:
            raise ShopError(f"Shop {shop_id} not found")
        shop['listing_id'] = listing_id
        return dict(shop)

class FakeOrderManager:
    """Keeps rows by id; returns copies the way the database would.

    An exception put in ``create_errors`` or ``update_errors`` is raised by the
    next call instead of writing, as a failed transaction would.
    """

    def __init__(self):
        self.rows: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.create_errors = []
        self.update_errors = []

    def all(self):
        return list(self.rows.values())

    async def get_order(self, network_id, shop_id, order_id) -> Optional[Dict[str, Any]]:
        for row in self.rows.values():
            if (row['network_id'], row['shop_id'], row['order_id']) == (network_id, shop_id, order_id):
                return copy.deepcopy(row)
        return None

    async def create_order(self, fields, discounts=None):
        if self.create_errors:
            raise self.create_errors.pop(0)
        if await self.get_order(fields['network_id'], fields['shop_id'], fields['order_id']):
            raise OrderError(f"Order {fields['order_id']} already exists")
        row = copy.deepcopy(fields)
        if discounts is not None:
            valid, error = await discounts.validate(fields, mark_if_valid=True)
            if not valid:
                row['data']['error'] = error
        row['id'] = uuid.uuid4()
        self.rows[row['id']] = row
        return copy.deepcopy(row)

    async def update_order(self, id, fields):
        if self.update_errors:
            raise self.update_errors.pop(0)
        if id not in self.rows:
            raise OrderNotFoundError(f"Order {id} not found")
        self.rows[id].update(copy.deepcopy(fields))
        return copy.deepcopy(self.rows[id])

class FakeIPFS:
    def __init__(self, documents=None):
        self.documents = documents or {}
        self.fetched = []

    async def fetch_json(self, gateway, ipfs_hash, timeout=None):
        self.fetched.append((gateway, ipfs_hash, timeout))
        return copy.deepcopy(self.documents[ipfs_hash])

class FakeDecryptor:
    def __init__(self, payloads=None):
        self.payloads = payloads or {}

    async def __call__(self, shop, shop_config, encrypted_hash, gateway):
        return copy.deepcopy(self.payloads[encrypted_hash])

@pytest.fixture
def settings(tmp_path):
    return default_settings(shop_cache_dir=str(tmp_path))

@pytest.fixture
def shop():
    return make_shop()

@pytest.fixture
def shops(shop):
    return FakeShopManager(shop)

@pytest.fixture
def orders():
    return FakeOrderManager()

@pytest.fixture
def ipfs():
    return FakeIPFS({OFFER_HASH: {'encryptedData': 'QmEncrypted', 'paymentCode': 'pay-123'}})

@pytest.fixture
def decryptor():
    return FakeDecryptor({'QmEncrypted': make_payload()})

@pytest.fixture
def discounts():
    validator = AsyncMock()
    validator.validate.return_value = (True, None)
    return validator

@pytest.fixture
def refunds():
    processor = AsyncMock()
    processor.refund.return_value = None
    return processor

@pytest.fixture
def notifiers():
    email = AsyncMock()
    email.send_new_order.return_value = True
    discord = AsyncMock()
    fulfiller = AsyncMock()
    fulfiller.fulfill.return_value = True
    return email, discord, fulfiller

@pytest_asyncio.fixture
async def reconciler(shops, orders, ipfs, decryptor, discounts, refunds, notifiers, settings):
    email, discord, fulfiller = notifiers
    return OrderReconciler(
        shops=shops,
        orders=orders,
        ipfs=ipfs,
        decryptor=decryptor,
        discounts=discounts,
        refunds=refunds,
        email=email,
        discord=discord,
        fulfiller=fulfiller,
        settings=settings
    )

@pytest.fixture
def network():
    return {
        'network_id': 1,
        'provider': 'http://localhost:8545',
        'marketplace_contract': '0x698ff47b84837d3971118a369c570172ee7e54c2',
        'marketplace_version': '001',
        'active': True,
        'config': {'discordWebhook': 'https://discord.test/webhook'},
        'last_block': 0,
    }

def later(dt: datetime, minutes: int) -> datetime:
    return dt + timedelta(minutes=minutes)

def mock_pool(conn):
    """Pool whose acquire() yields ``conn`` in an async with block."""
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool
