"""Tests for event decoding and fully-qualified ids."""

import pytest
from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from conftest import OFFER_HASH, WALLET
from events import (
    EventDecoder,
    EventName,
    ListingID,
    OfferID,
    RawLog,
    bytes32_to_ipfs_hash,
    ipfs_hash_to_bytes32,
)

def topic(value_type, value) -> str:
    return '0x' + encode([value_type], [value]).hex()

def signature_topic(signature: str) -> str:
    return '0x' + keccak(text=signature).hex()

def offer_log(name='OfferCreated', listing_id=42, offer_id=3, ipfs_hash=OFFER_HASH):
    topics = [
        signature_topic(f'{name}(address,uint256,uint256,bytes32)'),
        topic('address', WALLET),
        topic('uint256', listing_id),
        topic('uint256', offer_id),
    ]
    data = '0x' + encode(['bytes32'], [ipfs_hash_to_bytes32(ipfs_hash)]).hex()
    return topics, data

@pytest.fixture
def decoder():
    return EventDecoder()

def test_decode_offer_created(decoder):
    """Test decoding of an OfferCreated log."""
    topics, data = offer_log()

    event = decoder.decode(topics, data)

    assert event['event_name'] == EventName.OFFER_CREATED
    assert event['party'] == to_checksum_address(WALLET)
    assert event['listing_id'] == 42
    assert event['offer_id'] == 3
    assert event['ipfs_hash'] == OFFER_HASH

def test_decode_listing_created(decoder):
    """Test decoding of a ListingCreated log, which has no offer id."""
    topics = [
        signature_topic('ListingCreated(address,uint256,bytes32)'),
        topic('address', WALLET),
        topic('uint256', 7),
    ]
    data = '0x' + encode(['bytes32'], [ipfs_hash_to_bytes32(OFFER_HASH)]).hex()

    event = decoder.decode(topics, data)

    assert event['event_name'] == EventName.LISTING_CREATED
    assert event['listing_id'] == 7
    assert event['offer_id'] is None

def test_decode_offer_ruling_extra_argument(decoder):
    """Test that parameters beyond the common ones end up in args."""
    topics, _ = offer_log()
    topics[0] = signature_topic('OfferRuling(address,uint256,uint256,bytes32,uint256)')
    data = '0x' + encode(['bytes32', 'uint256'], [ipfs_hash_to_bytes32(OFFER_HASH), 2]).hex()

    event = decoder.decode(topics, data)

    assert event['event_name'] == EventName.OFFER_RULING
    assert event['args']['ruling'] == 2

def test_unknown_signature_is_skipped(decoder):
    """Test that logs of other events decode to None."""
    topics, data = offer_log()
    topics[0] = signature_topic('Transfer(address,address,uint256)')

    assert decoder.decode(topics, data) is None

def test_malformed_data_is_skipped(decoder):
    """Test that a known event with truncated data decodes to None."""
    topics, _ = offer_log()

    assert decoder.decode(topics, '0x1234') is None

def test_missing_topics_are_skipped(decoder):
    topics, data = offer_log()

    assert decoder.decode(topics[:2], data) is None
    assert decoder.decode([], data) is None

def test_non_hex_topic_is_skipped(decoder):
    _, data = offer_log()

    assert decoder.decode(['0xzz'], '0x') is None
    assert decoder.decode(['not a topic'], data) is None

def test_ipfs_hash_conversion():
    digest = ipfs_hash_to_bytes32(OFFER_HASH)

    assert len(digest) == 32
    assert bytes32_to_ipfs_hash(digest) == OFFER_HASH

def test_ipfs_hash_rejects_other_multihash():
    with pytest.raises(ValueError):
        ipfs_hash_to_bytes32('11111111111111111111111111111111')

def test_listing_and_offer_ids():
    listing = ListingID(42, 1)
    offer = OfferID(listing, 3)

    assert str(listing) == '1-001-42'
    assert str(offer) == '1-001-42-3'
    assert ListingID.parse('4-000-9') == ListingID(9, 4, '000')
    assert OfferID.parse('1-001-42-3') == offer
    assert OfferID('1-001-42', '3').listing == listing

@pytest.mark.parametrize('value', ['1-001', 'a-001-2', '1-001-2-3'])
def test_listing_id_parse_errors(value):
    with pytest.raises(ValueError):
        ListingID.parse(value)

def test_raw_log_from_rpc():
    """Test conversion of an eth_getLogs entry."""
    topics, data = offer_log()
    log = {
        'address': '0x698FF47B84837d3971118a369c570172EE7e54c2',
        'topics': topics,
        'data': data,
        'blockNumber': '0x10',
        'blockHash': '0x' + 'AB' * 32,
        'transactionHash': '0x' + 'CD' * 32,
        'logIndex': '0x2',
    }

    raw_log = RawLog.from_rpc_log(1, '001', log)

    assert raw_log.block_number == 16
    assert raw_log.log_index == 2
    assert raw_log.transaction_hash == '0x' + 'cd' * 32
    assert raw_log.address == '0x698ff47b84837d3971118a369c570172ee7e54c2'

def test_raw_log_rejects_negative_block():
    with pytest.raises(ValueError):
        RawLog(
            network_id=1,
            contract_version='001',
            address='0x' + '00' * 20,
            data='0x',
            topics=[],
            transaction_hash='0x' + '00' * 32,
            block_number=-1,
            block_hash='0x' + '00' * 32,
            log_index=0,
        )
