"""Decoding of raw marketplace logs into event records."""
import logging
from typing import Any, Dict, List, Optional, Sequence

import base58
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, keccak, to_checksum_address

from .abi import MARKETPLACE_ABI, EventName, event_signature

logger = logging.getLogger(__name__)

# sha2-256 multihash prefix (0x12 = sha2-256, 0x20 = 32 byte digest)
MULTIHASH_PREFIX = b'\x12\x20'

def bytes32_to_ipfs_hash(value: bytes) -> str:
    """Convert a bytes32 digest stored on-chain to a CIDv0 (``Qm...``)."""
    return base58.b58encode(MULTIHASH_PREFIX + value).decode('ascii')

def ipfs_hash_to_bytes32(ipfs_hash: str) -> bytes:
    """Inverse of :func:`bytes32_to_ipfs_hash`."""
    raw = base58.b58decode(ipfs_hash)
    if len(raw) != 34 or raw[:2] != MULTIHASH_PREFIX:
        raise ValueError(f"Not a sha2-256 CIDv0: {ipfs_hash}")
    return raw[2:]

def _as_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return decode_hex(value)

def _topic_hex(value) -> str:
    return '0x' + _as_bytes(value).hex()

class EventDecoder:
    """Maps a log's topic0 to the marketplace event that produced it."""

    def __init__(self, abi: Sequence[Dict[str, Any]] = MARKETPLACE_ABI):
        self._events: Dict[str, Dict[str, Any]] = {}
        for item in abi:
            if item.get('type') != 'event':
                continue
            topic = '0x' + keccak(text=event_signature(item)).hex()
            self._events[topic] = item

    def find_event_abi(self, topics: List[str]) -> Optional[Dict[str, Any]]:
        if not topics:
            return None
        try:
            signature = _topic_hex(topics[0])
        except (TypeError, ValueError):
            return None
        return self._events.get(signature.lower())

    def decode(self, topics: List[str], data: str) -> Optional[Dict[str, Any]]:
        """Decode a raw log.

        Args:
            topics: Log topics, topic0 being the event signature hash
            data: Hex encoded non-indexed parameters

        Returns:
            Dict with event_name, party, listing_id, offer_id, ipfs_hash and
            args (every decoded parameter), or None for logs that are not a
            known marketplace event or cannot be decoded.
        """
        event_abi = self.find_event_abi(topics)
        if event_abi is None:
            logger.warning(f"Unknown event with topic {topics[0] if topics else None}")
            return None

        indexed = [i for i in event_abi['inputs'] if i['indexed']]
        non_indexed = [i for i in event_abi['inputs'] if not i['indexed']]

        try:
            if len(topics) - 1 != len(indexed):
                raise DecodingError(
                    f"expected {len(indexed)} indexed topics, got {len(topics) - 1}"
                )

            args: Dict[str, Any] = {}
            for param, topic in zip(indexed, topics[1:]):
                (args[param['name']],) = decode([param['type']], _as_bytes(topic))

            values = decode([i['type'] for i in non_indexed], _as_bytes(data or '0x'))
            for param, value in zip(non_indexed, values):
                args[param['name']] = value
        except (DecodingError, ValueError) as e:
            logger.warning(f"Failed to decode {event_abi['name']} log: {e}")
            return None

        ipfs_hash = args.get('ipfsHash')
        event = {
            'event_name': EventName(event_abi['name']),
            'party': to_checksum_address(args['party']) if args.get('party') else None,
            'listing_id': args.get('listingID'),
            'offer_id': args.get('offerID'),
            'ipfs_hash': bytes32_to_ipfs_hash(ipfs_hash) if ipfs_hash else None,
            'args': args,
        }
        logger.debug(
            f"Decoded {event['event_name'].value} listing={event['listing_id']} "
            f"offer={event['offer_id']} party={event['party']}"
        )
        return event
