"""Marketplace events: ABI, decoding and the event store."""
from .abi import EventName, MARKETPLACE_ABI
from .decoder import EventDecoder, bytes32_to_ipfs_hash, ipfs_hash_to_bytes32
from .ids import ListingID, OfferID, DEFAULT_CONTRACT_VERSION
from .models import RawLog
from .store import EventStore

__all__ = [
    'EventName',
    'MARKETPLACE_ABI',
    'EventDecoder',
    'bytes32_to_ipfs_hash',
    'ipfs_hash_to_bytes32',
    'ListingID',
    'OfferID',
    'DEFAULT_CONTRACT_VERSION',
    'RawLog',
    'EventStore',
]
