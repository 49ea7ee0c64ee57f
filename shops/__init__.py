"""Shops module.

Shops are created by onboarding. The event engine only reads them and, once per
shop, records the marketplace listing id that a ListingCreated event assigns.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from asyncpg.exceptions import PostgresError

from database import get_pool, DatabaseError

logger = logging.getLogger(__name__)

class ShopError(Exception):
    """Base exception for shop operations."""
    pass

class ShopConfigError(ShopError):
    """Raised when a shop's staged config.json cannot be read or written."""
    pass

def decode_shop_config(shop: Dict[str, Any]) -> Dict[str, Any]:
    """Return the shop's configuration as a dict.

    Args:
        shop: Shop row

    Raises:
        ShopConfigError: If the stored config is not a JSON object
    """
    config = shop.get('config')
    if config is None:
        return {}
    if isinstance(config, (str, bytes)):
        try:
            config = json.loads(config)
        except ValueError as e:
            raise ShopConfigError(f"Shop {shop.get('id')} has an unreadable config: {e}") from e
    if not isinstance(config, dict):
        raise ShopConfigError(f"Shop {shop.get('id')} config is not an object")
    return config

def staged_config_path(shop_cache_dir: str, shop: Dict[str, Any]) -> Path:
    """Location of the shop's config.json in the deploy staging area."""
    return Path(shop_cache_dir) / shop['auth_token'] / 'data' / 'config.json'

def patch_staged_config(shop_cache_dir: str, shop: Dict[str, Any], network_id: int, listing_id: str) -> Path:
    """Set ``networks[<network_id>].listingId`` in the shop's staged config.json.

    The file is replaced atomically so deploy tooling never reads a partial write.

    Raises:
        ShopConfigError: If the file is missing, unreadable or cannot be written
    """
    path = staged_config_path(shop_cache_dir, shop)
    logger.debug(f"Shop {shop['id']}: Loading config at {path}")

    try:
        shop_config = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ShopConfigError(f"Shop {shop['id']}: failed to load {path}: {e}") from e

    networks = shop_config.setdefault('networks', {})
    if not isinstance(networks, dict):
        raise ShopConfigError(f"Shop {shop['id']}: 'networks' in {path} is not an object")
    networks.setdefault(str(network_id), {})['listingId'] = listing_id

    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix='.config.', suffix='.json')
        with os.fdopen(fd, 'w') as f:
            json.dump(shop_config, f, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        raise ShopConfigError(f"Shop {shop['id']}: failed to write {path}: {e}") from e

    logger.info(f"Shop {shop['id']}: set listingId to {listing_id} in config at {path}")
    return path

class ShopManager:
    """Manager class for the shop lookups the event engine needs."""

    def __init__(self, pool=None):
        """Initialize the shop manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_shop(self, shop_id) -> Optional[Dict[str, Any]]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM shops WHERE id = $1', shop_id)
        return dict(row) if row else None

    async def get_shop_by_listing_id(self, listing_id: str) -> Optional[Dict[str, Any]]:
        """Shop owning a fully-qualified listing id, if any."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT * FROM shops WHERE listing_id = $1',
                listing_id
            )
        return dict(row) if row else None

    async def find_pending_shop(self, wallet_address: str) -> Optional[Dict[str, Any]]:
        """Most recently updated shop of a wallet that has no listing id yet.

        A merchant may create several shops with the same wallet; the latest
        one is the one waiting for the listing just created.
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                SELECT * FROM shops
                WHERE lower(wallet_address) = lower($1)
                AND listing_id IS NULL
                ORDER BY updated_at DESC
                LIMIT 1
                ''',
                wallet_address
            )
        return dict(row) if row else None

    async def set_listing_id(self, shop_id, listing_id: str) -> Dict[str, Any]:
        """Associate a fully-qualified listing id with a shop.

        Raises:
            ShopError: If the shop does not exist
            DatabaseError: If the update fails
        """
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    UPDATE shops
                    SET listing_id = $2, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    shop_id,
                    listing_id
                )
        except PostgresError as e:
            logger.error(f"Database error updating shop {shop_id}: {e}")
            raise DatabaseError(f"Failed to set listing id: {e}") from e

        if not row:
            raise ShopError(f"Shop {shop_id} not found")
        return dict(row)

__all__ = [
    'ShopManager',
    'ShopError',
    'ShopConfigError',
    'decode_shop_config',
    'staged_config_path',
    'patch_staged_config',
]
