"""Monitor module for following marketplace events on every active network.

This module provides:
- EventIngestor: the single entrypoint a raw log goes through
- EventMonitor: polls eth_getLogs per network and feeds the ingestor
- KeyedLock: serializes work on the same offer
- Replay of stored events through the reconciler
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import backoff

from database import CONNECTION_ERRORS, DatabaseError
from events import EventDecoder, EventStore, ListingID, RawLog
from ipfs import IPFSError
from networks import NetworkContext, NetworkManager
from rpc import NodeConnectionError

# Configure logging
logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (IPFSError, NodeConnectionError, DatabaseError) + CONNECTION_ERRORS

def is_permanent(e: Exception) -> bool:
    """Database errors are only worth retrying when the connection was the problem."""
    return isinstance(e, DatabaseError) and not isinstance(e.__cause__, CONNECTION_ERRORS)

def _log_retry(details):
    logger.warning(
        f"Retrying {details['target'].__name__} in {details['wait']:.1f}s "
        f"(attempt {details['tries']}): {details['exception']}"
    )

class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it."""

    def __init__(self):
        self._locks: Dict[Any, asyncio.Lock] = {}
        self._users: Dict[Any, int] = defaultdict(int)

    @asynccontextmanager
    async def acquire(self, key):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

class EventIngestor:
    """Validates, decodes, stores and applies one raw log."""

    def __init__(self, networks: NetworkManager, shops, store: EventStore, reconciler,
                 decoder: Optional[EventDecoder] = None, locks: Optional[KeyedLock] = None):
        self.networks = networks
        self.shops = shops
        self.store = store
        self.reconciler = reconciler
        self.decoder = decoder or EventDecoder()
        self.locks = locks or KeyedLock()

    async def find_shop(self, network_id: int, contract_version: str,
                        listing_id: Optional[int]) -> Optional[Dict[str, Any]]:
        if listing_id is None:
            return None
        return await self.shops.get_shop_by_listing_id(
            str(ListingID(listing_id, network_id, contract_version))
        )

    async def handle_log(
        self,
        network_id: int,
        contract_version: str,
        address: str,
        data: str,
        topics: List[str],
        transaction_hash: str,
        block_number: int,
        block_hash: str,
        log_index: int,
        skip_email: bool = False,
        skip_discord: bool = False,
        context: Optional[NetworkContext] = None
    ) -> Optional[Dict[str, Any]]:
        """Ingest one marketplace log.

        Args:
            network_id: Chain the log was emitted on
            contract_version: Marketplace contract version, e.g. '001'
            address: Emitting contract
            data: Hex encoded log data
            topics: Log topics
            transaction_hash: Transaction that emitted the log
            block_number: Block containing the transaction
            block_hash: Hash of that block
            log_index: Position of the log in the block
            skip_email: Do not send new order emails
            skip_discord: Do not post new orders to Discord
            context: Network context to reuse; loaded from the database when omitted

        Returns:
            Whatever the reconciler returns, or None for logs that are skipped

        Raises:
            pydantic.ValidationError: If the inputs are malformed
            NetworkNotFoundError: If the network is unknown
        """
        raw_log = RawLog(
            network_id=network_id,
            contract_version=contract_version,
            address=address,
            data=data,
            topics=topics,
            transaction_hash=transaction_hash,
            block_number=block_number,
            block_hash=block_hash,
            log_index=log_index,
        )

        if context is None:
            network = await self.networks.get_network(raw_log.network_id)
            context = NetworkContext.for_network(network)

        decoded = self.decoder.decode(raw_log.topics, raw_log.data)
        if decoded is None:
            logger.info(
                f"Skipping log {raw_log.transaction_hash}:{raw_log.log_index} "
                f"on network {raw_log.network_id}"
            )
            return None

        shop = await self.find_shop(raw_log.network_id, raw_log.contract_version, decoded['listing_id'])
        event = await self.store.record_event(raw_log, decoded, context, shop['id'] if shop else None)

        return await self.process(
            event, shop, context.network,
            skip_email=skip_email,
            skip_discord=skip_discord
        )

    async def process(self, event: Dict[str, Any], shop: Optional[Dict[str, Any]],
                      network: Dict[str, Any], skip_email: bool = False,
                      skip_discord: bool = False) -> Optional[Dict[str, Any]]:
        """Run a stored event through the reconciler, one at a time per offer."""
        key = (event['network_id'], event.get('listing_id'), event.get('offer_id'))
        async with self.locks.acquire(key):
            return await self.reconciler.process_event(
                event,
                shop,
                network=network,
                skip_email=skip_email,
                skip_discord=skip_discord
            )

class EventMonitor:
    """Polls every active network for marketplace logs."""

    def __init__(self, networks: NetworkManager, ingestor: EventIngestor,
                 store: EventStore, settings: Dict[str, Any]):
        """Initialize the event monitor.

        Args:
            networks: NetworkManager
            ingestor: EventIngestor every log goes through
            store: EventStore used for replays
            settings: Validated settings (poll_interval, min_confirmations,
                log_batch_size, max_ingest_attempts)
        """
        self.networks = networks
        self.ingestor = ingestor
        self.store = store
        self.poll_interval = settings['poll_interval']
        self.min_confirmations = settings['min_confirmations']
        self.batch_size = settings['log_batch_size']
        self.running = False
        self._stop_event = asyncio.Event()

        retry = backoff.on_exception(
            backoff.expo,
            TRANSIENT_ERRORS,
            max_tries=settings['max_ingest_attempts'],
            max_value=30,
            giveup=is_permanent,
            on_backoff=_log_retry
        )
        self._ingest = retry(self._ingest_log)
        self._fetch_logs = retry(self._get_logs)

    async def _get_logs(self, context: NetworkContext, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        logs = await asyncio.to_thread(
            context.rpc.get_logs, context.network['marketplace_contract'], from_block, to_block
        )
        return sorted(
            (log for log in logs if not log.get('removed')),
            key=lambda log: (int(log['blockNumber'], 16), int(log['logIndex'], 16))
        )

    async def _ingest_log(self, context: NetworkContext, log: Dict[str, Any]):
        raw_log = RawLog.from_rpc_log(context.network_id, context.network['marketplace_version'], log)
        return await self.ingestor.handle_log(**raw_log.model_dump(), context=context)

    async def poll_network(self, network: Dict[str, Any]) -> int:
        """Process the confirmed logs a network has produced since its cursor.

        The cursor only moves over blocks whose logs were all processed. A log
        that keeps failing stops the network's pass; it is retried on the next
        poll.

        Returns:
            Number of logs processed
        """
        network_id = network['network_id']
        context = NetworkContext.for_network(network)

        head = await asyncio.to_thread(context.rpc.get_block_number)
        safe_head = head - self.min_confirmations
        last_block = network.get('last_block') or 0
        processed = 0

        while last_block < safe_head and not self._stop_event.is_set():
            from_block = last_block + 1
            to_block = min(from_block + self.batch_size - 1, safe_head)
            logs = await self._fetch_logs(context, from_block, to_block)
            logger.debug(f"Network {network_id}: {len(logs)} logs in blocks {from_block}-{to_block}")

            for log in logs:
                block_number = int(log['blockNumber'], 16)
                try:
                    await self._ingest(context, log)
                except Exception as e:
                    logger.error(
                        f"Network {network_id}: failed processing log {log.get('transactionHash')}:"
                        f"{int(log['logIndex'], 16)} in block {block_number}: {e}",
                        exc_info=True
                    )
                    if block_number - 1 > last_block:
                        await self.networks.set_last_block(network_id, block_number - 1)
                        network['last_block'] = block_number - 1
                    return processed
                processed += 1

            await self.networks.set_last_block(network_id, to_block)
            network['last_block'] = last_block = to_block

        if processed:
            logger.info(f"Network {network_id}: processed {processed} logs up to block {last_block}")
        return processed

    async def poll_once(self) -> Dict[int, Any]:
        """Poll every active network concurrently."""
        networks = await self.networks.get_active_networks()
        results = await asyncio.gather(
            *(self.poll_network(network) for network in networks),
            return_exceptions=True
        )
        for network, result in zip(networks, results):
            if isinstance(result, Exception):
                logger.error(f"Network {network['network_id']}: poll failed: {result}")
        return {network['network_id']: result for network, result in zip(networks, results)}

    async def run(self) -> None:
        """Poll until stop() is called."""
        logger.info(f"Starting event monitor (poll interval {self.poll_interval}s)")
        self.running = True
        self._stop_event.clear()
        while self.running:
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Event monitor stopped")

    def stop(self):
        """Stop the event monitor."""
        logger.info("Stopping event monitor...")
        self.running = False
        self._stop_event.set()

    async def replay(self, network_id: int, from_block: int, to_block: Optional[int] = None,
                     skip_email: bool = True, skip_discord: bool = True) -> int:
        """Run stored events of a block range through the reconciler again.

        Notifications are skipped by default; the orders they announce already exist.

        Returns:
            Number of events replayed

        Raises:
            NetworkNotFoundError: If the network is unknown
        """
        network = await self.networks.get_network(network_id)
        events = await self.store.get_events(network_id, from_block, to_block)
        logger.info(f"Replaying {len(events)} events of network {network_id} from block {from_block}")

        for event in events:
            shop = await self.ingestor.find_shop(network_id, event['contract_version'], event.get('listing_id'))
            await self.ingestor.process(
                event, shop, network,
                skip_email=skip_email,
                skip_discord=skip_discord
            )
        return len(events)

__all__ = [
    'EventIngestor',
    'EventMonitor',
    'KeyedLock',
    'TRANSIENT_ERRORS',
    'is_permanent',
]
