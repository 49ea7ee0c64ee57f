"""Event store: every observed marketplace log, stored once.

Rows are keyed by (network_id, transaction_hash, log_index). Recording a log
that is already stored returns the stored row, so replays converge on the same
record and never produce a second state transition.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from asyncpg.exceptions import PostgresError

from database import get_pool, DatabaseError
from .abi import EventName
from .models import RawLog

logger = logging.getLogger(__name__)

def _row_to_event(row) -> Dict[str, Any]:
    event = dict(row)
    event['event_name'] = EventName(event['event_name'])
    return event

class EventStore:
    """Persists decoded marketplace events."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_event(self, network_id: int, transaction_hash: str, log_index: int) -> Optional[Dict[str, Any]]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                SELECT * FROM events
                WHERE network_id = $1 AND transaction_hash = $2 AND log_index = $3
                ''',
                network_id,
                transaction_hash.lower(),
                log_index
            )
        return _row_to_event(row) if row else None

    async def record_event(
        self,
        raw_log: RawLog,
        decoded: Dict[str, Any],
        context,
        shop_id=None
    ) -> Dict[str, Any]:
        """Store a decoded log, or return the already stored row.

        Args:
            raw_log: The raw log entry
            decoded: Output of EventDecoder.decode for ``raw_log``
            context: NetworkContext used to read the block timestamp
            shop_id: Id of the shop the event's listing belongs to, if any

        Returns:
            The canonical stored event

        Raises:
            DatabaseError: If the insert fails
            RPCError: If the block timestamp cannot be read
        """
        existing = await self.get_event(
            raw_log.network_id, raw_log.transaction_hash, raw_log.log_index
        )
        if existing:
            logger.info(
                f"Event {raw_log.transaction_hash}:{raw_log.log_index} on network "
                f"{raw_log.network_id} already recorded"
            )
            if shop_id is not None and existing.get('shop_id') is None:
                return await self.set_shop_id(existing['id'], shop_id)
            return existing

        # RPC client is blocking
        block_time = await asyncio.to_thread(context.rpc.get_block_timestamp, raw_log.block_number)
        timestamp = datetime.fromtimestamp(block_time, tz=timezone.utc)

        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO events (
                        network_id, contract_version, shop_id, address,
                        event_name, listing_id, offer_id, party, ipfs_hash,
                        topics, data, transaction_hash, log_index,
                        block_number, block_hash, timestamp
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9,
                        $10, $11, $12, $13, $14, $15, $16
                    )
                    ON CONFLICT (network_id, transaction_hash, log_index)
                    DO UPDATE SET
                        shop_id = COALESCE(events.shop_id, EXCLUDED.shop_id),
                        updated_at = now()
                    RETURNING *
                    ''',
                    raw_log.network_id,
                    raw_log.contract_version,
                    shop_id,
                    raw_log.address,
                    decoded['event_name'].value,
                    decoded.get('listing_id'),
                    decoded.get('offer_id'),
                    decoded.get('party'),
                    decoded.get('ipfs_hash'),
                    raw_log.topics,
                    raw_log.data,
                    raw_log.transaction_hash,
                    raw_log.log_index,
                    raw_log.block_number,
                    raw_log.block_hash,
                    timestamp
                )
        except PostgresError as e:
            logger.error(f"Database error recording event {raw_log.transaction_hash}: {e}")
            raise DatabaseError(f"Failed to record event: {e}") from e

        logger.info(
            f"Recorded {decoded['event_name'].value} from tx {raw_log.transaction_hash} "
            f"(block {raw_log.block_number}, log {raw_log.log_index})"
        )
        return _row_to_event(row)

    async def set_shop_id(self, event_id, shop_id) -> Dict[str, Any]:
        """Attach a shop to an event stored before its listing was resolved."""
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    UPDATE events
                    SET shop_id = COALESCE(shop_id, $2), updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    event_id,
                    shop_id
                )
        except PostgresError as e:
            logger.error(f"Database error updating event {event_id}: {e}")
            raise DatabaseError(f"Failed to update event: {e}") from e

        logger.info(f"Event {event_id} attached to shop {shop_id}")
        return _row_to_event(row)

    async def get_events(
        self,
        network_id: int,
        from_block: int = 0,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Stored events of a network in chain order, for replay."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM events
                WHERE network_id = $1
                AND block_number >= $2
                AND ($3::INT8 IS NULL OR block_number <= $3::INT8)
                ORDER BY block_number, log_index
                ''',
                network_id,
                from_block,
                to_block
            )
        return [_row_to_event(row) for row in rows]
