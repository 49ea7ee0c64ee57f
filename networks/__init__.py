"""Networks module.

A network row describes one chain the engine follows: its JSON-RPC provider,
the marketplace contract address and version, per-network config (Discord
webhook, IPFS gateway) and the monitor's block cursor.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database import get_pool
from rpc import EthereumRPC

logger = logging.getLogger(__name__)

class NetworkError(Exception):
    """Base exception for network lookups."""
    pass

class NetworkNotFoundError(NetworkError):
    """Raised when an event arrives for a network we do not know."""
    pass

@dataclass
class NetworkContext:
    """Everything needed to process events of one network.

    Built per call and passed explicitly so events from different networks
    never share client state.
    """
    network: Dict[str, Any]
    rpc: EthereumRPC = field(repr=False)

    @property
    def network_id(self) -> int:
        return self.network['network_id']

    @classmethod
    def for_network(cls, network: Dict[str, Any]) -> 'NetworkContext':
        return cls(network=network, rpc=EthereumRPC(network['provider']))

class NetworkManager:
    """Reads networks and moves the monitor cursor."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_network(self, network_id: int) -> Dict[str, Any]:
        """Get a network by id.

        Raises:
            NetworkNotFoundError: If no row exists for ``network_id``
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT * FROM networks WHERE network_id = $1',
                network_id
            )
        if not row:
            raise NetworkNotFoundError(f"Unknown network {network_id}")
        return dict(row)

    async def get_active_networks(self) -> List[Dict[str, Any]]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT * FROM networks WHERE active = true ORDER BY network_id'
            )
        return [dict(row) for row in rows]

    async def set_last_block(self, network_id: int, block_number: int) -> None:
        """Record the last fully processed block for a network."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            await conn.execute(
                '''
                UPDATE networks
                SET last_block = $2, updated_at = now()
                WHERE network_id = $1
                ''',
                network_id,
                block_number
            )
        logger.debug(f"Network {network_id} cursor moved to block {block_number}")

__all__ = [
    'NetworkContext',
    'NetworkManager',
    'NetworkError',
    'NetworkNotFoundError',
]
