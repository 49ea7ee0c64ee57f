"""Tests for the ingestion entrypoint and the log polling monitor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from config import default_settings
from conftest import OFFER_HASH, FakeShopManager, make_event, make_shop
from events import EventName, RawLog
from ipfs import IPFSError
from monitor import EventIngestor, EventMonitor, KeyedLock
from networks import NetworkContext, NetworkNotFoundError
from orders import OrderNotFoundError
from test_events import offer_log

TX_HASH = '0x' + 'ab' * 32
BLOCK_HASH = '0x' + 'cd' * 32

class FakeNetworkManager:
    def __init__(self, *networks):
        self.networks = {n['network_id']: n for n in networks}
        self.cursor_moves = []

    async def get_network(self, network_id):
        if network_id not in self.networks:
            raise NetworkNotFoundError(f"Unknown network {network_id}")
        return self.networks[network_id]

    async def get_active_networks(self):
        return [n for n in self.networks.values() if n['active']]

    async def set_last_block(self, network_id, block_number):
        self.cursor_moves.append((network_id, block_number))

class FakeEventStore:
    def __init__(self, events=None):
        self.recorded = []
        self.events = events or []

    async def record_event(self, raw_log, decoded, context, shop_id=None):
        self.recorded.append((raw_log, decoded, shop_id))
        return make_event(
            decoded['event_name'],
            raw_log.block_number,
            raw_log.log_index,
            listing_id=decoded['listing_id'],
            offer_id=decoded['offer_id'],
            ipfs_hash=decoded['ipfs_hash'],
            transaction_hash=raw_log.transaction_hash,
            shop_id=shop_id,
        )

    async def get_events(self, network_id, from_block=0, to_block=None):
        return [
            e for e in self.events
            if e['network_id'] == network_id and e['block_number'] >= from_block
            and (to_block is None or e['block_number'] <= to_block)
        ]

def rpc_log(block_number, log_index, tx_hash=TX_HASH):
    topics, data = offer_log()
    return {
        'address': '0x698ff47b84837d3971118a369c570172ee7e54c2',
        'topics': topics,
        'data': data,
        'blockNumber': hex(block_number),
        'blockHash': BLOCK_HASH,
        'transactionHash': tx_hash,
        'logIndex': hex(log_index),
        'removed': False,
    }

@pytest.fixture
def networks(network):
    return FakeNetworkManager(network)

@pytest.fixture
def store():
    return FakeEventStore()

@pytest.fixture
def listed_shop():
    return make_shop(listing_id='1-001-42')

@pytest.fixture
def process_event():
    return AsyncMock(return_value={'order_id': '1-001-42-3'})

@pytest.fixture
def ingestor(networks, listed_shop, store, process_event):
    reconciler = MagicMock()
    reconciler.process_event = process_event
    return EventIngestor(networks, FakeShopManager(listed_shop), store, reconciler)

def log_kwargs(**overrides):
    topics, data = offer_log()
    kwargs = {
        'network_id': 1,
        'contract_version': '001',
        'address': '0x698ff47b84837d3971118a369c570172ee7e54c2',
        'data': data,
        'topics': topics,
        'transaction_hash': TX_HASH,
        'block_number': 100,
        'block_hash': BLOCK_HASH,
        'log_index': 0,
    }
    kwargs.update(overrides)
    return kwargs

@pytest.mark.asyncio
async def test_handle_log_processes_event(ingestor, store, process_event, listed_shop, network):
    """Test that a log is stored and handed to the reconciler with its shop."""
    result = await ingestor.handle_log(**log_kwargs())

    assert result == {'order_id': '1-001-42-3'}
    raw_log, decoded, shop_id = store.recorded[0]
    assert decoded['event_name'] == EventName.OFFER_CREATED
    assert decoded['ipfs_hash'] == OFFER_HASH
    assert shop_id == listed_shop['id']

    args, kwargs = process_event.call_args
    assert args[0]['event_name'] == EventName.OFFER_CREATED
    assert args[1] is listed_shop
    assert kwargs == {'network': network, 'skip_email': False, 'skip_discord': False}

@pytest.mark.asyncio
async def test_handle_log_skips_unknown_event(ingestor, store, process_event):
    """Test that logs of unknown events are neither stored nor processed."""
    topics, data = offer_log()
    topics[0] = '0x' + '11' * 32

    assert await ingestor.handle_log(**log_kwargs(topics=topics)) is None
    assert store.recorded == []
    process_event.assert_not_called()

@pytest.mark.asyncio
async def test_handle_log_unknown_network(ingestor):
    with pytest.raises(NetworkNotFoundError):
        await ingestor.handle_log(**log_kwargs(network_id=99))

@pytest.mark.asyncio
async def test_handle_log_rejects_malformed_input(ingestor, store):
    with pytest.raises(ValidationError):
        await ingestor.handle_log(**log_kwargs(transaction_hash='not-a-hash'))
    assert store.recorded == []

@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key():
    """Test that work on one key runs one at a time while other keys proceed."""
    locks = KeyedLock()
    running = {'a': 0, 'b': 0}
    peak = {'a': 0, 'b': 0}

    async def work(key):
        async with locks.acquire(key):
            running[key] += 1
            peak[key] = max(peak[key], running[key])
            await asyncio.sleep(0.01)
            running[key] -= 1

    await asyncio.gather(work('a'), work('a'), work('a'), work('b'))

    assert peak == {'a': 1, 'b': 1}
    assert len(locks) == 0

@pytest.fixture
def rpc():
    client = MagicMock()
    client.get_block_number.return_value = 120
    return client

@pytest.fixture
def monitor(networks, store, network, rpc):
    ingestor = MagicMock()
    ingestor.handle_log = AsyncMock()
    monitor = EventMonitor(networks, ingestor, store, default_settings(max_ingest_attempts='2'))
    context = NetworkContext(network=network, rpc=rpc)
    with patch('monitor.NetworkContext.for_network', return_value=context):
        yield monitor

@pytest.mark.asyncio
async def test_poll_network_processes_logs_in_order(monitor, networks, network, rpc):
    """Test that confirmed logs are processed in chain order and the cursor advances."""
    network['last_block'] = 100
    rpc.get_logs.return_value = [rpc_log(104, 1), rpc_log(102, 0), rpc_log(104, 0)]

    processed = await monitor.poll_network(network)

    assert processed == 3
    rpc.get_logs.assert_called_once_with(network['marketplace_contract'], 101, 114)
    positions = [
        (call.kwargs['block_number'], call.kwargs['log_index'])
        for call in monitor.ingestor.handle_log.call_args_list
    ]
    assert positions == [(102, 0), (104, 0), (104, 1)]
    assert networks.cursor_moves == [(1, 114)]

@pytest.mark.asyncio
async def test_poll_network_batches(monitor, networks, network, rpc):
    monitor.batch_size = 10
    network['last_block'] = 90
    rpc.get_logs.return_value = []

    await monitor.poll_network(network)

    assert [c.args[1:] for c in rpc.get_logs.call_args_list] == [(91, 100), (101, 110), (111, 114)]
    assert networks.cursor_moves == [(1, 100), (1, 110), (1, 114)]

@pytest.mark.asyncio
async def test_poll_network_stops_before_failing_block(monitor, networks, network, rpc):
    """Test that a failing log leaves the cursor before its block."""
    network['last_block'] = 100
    rpc.get_logs.return_value = [rpc_log(102, 0), rpc_log(105, 0), rpc_log(106, 0)]
    monitor.ingestor.handle_log.side_effect = [None, OrderNotFoundError("missing"), None]

    processed = await monitor.poll_network(network)

    assert processed == 1
    assert monitor.ingestor.handle_log.await_count == 2
    assert networks.cursor_moves == [(1, 104)]

@pytest.mark.asyncio
async def test_poll_network_retries_transient_errors(monitor, networks, network, rpc):
    """Test that IPFS failures are retried before giving up on a log."""
    network['last_block'] = 100
    rpc.get_logs.return_value = [rpc_log(102, 0)]
    monitor.ingestor.handle_log.side_effect = [IPFSError("gateway timeout", OFFER_HASH), None]

    processed = await monitor.poll_network(network)

    assert processed == 1
    assert monitor.ingestor.handle_log.await_count == 2
    assert networks.cursor_moves == [(1, 114)]

@pytest.mark.asyncio
async def test_poll_network_waits_for_confirmations(monitor, networks, network, rpc):
    network['last_block'] = 114

    assert await monitor.poll_network(network) == 0
    rpc.get_logs.assert_not_called()
    assert networks.cursor_moves == []

@pytest.mark.asyncio
async def test_poll_once_isolates_network_failures(monitor, networks, network, rpc):
    rpc.get_block_number.side_effect = RuntimeError("provider down")

    results = await monitor.poll_once()

    assert isinstance(results[1], RuntimeError)

@pytest.mark.asyncio
async def test_replay_runs_stored_events(networks, store, network, process_event, listed_shop):
    """Test that replay re-applies stored events in range without notifications."""
    store.events = [
        make_event(EventName.OFFER_CREATED, 100, listing_id=42, offer_id=3),
        make_event(EventName.OFFER_ACCEPTED, 110, listing_id=42, offer_id=3),
        make_event(EventName.OFFER_FINALIZED, 130, listing_id=42, offer_id=3),
    ]
    reconciler = MagicMock()
    reconciler.process_event = process_event
    ingestor = EventIngestor(networks, FakeShopManager(listed_shop), store, reconciler)
    monitor = EventMonitor(networks, ingestor, store, default_settings())

    count = await monitor.replay(1, 100, 120)

    assert count == 2
    names = [c.args[0]['event_name'] for c in process_event.call_args_list]
    assert names == [EventName.OFFER_CREATED, EventName.OFFER_ACCEPTED]
    for call in process_event.call_args_list:
        assert call.args[1] is listed_shop
        assert call.kwargs['skip_email'] is True
        assert call.kwargs['skip_discord'] is True

@pytest.mark.asyncio
async def test_replay_unknown_network(networks, store):
    monitor = EventMonitor(networks, MagicMock(), store, default_settings())

    with pytest.raises(NetworkNotFoundError):
        await monitor.replay(99, 0)
