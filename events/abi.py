"""Event ABI of the Origin marketplace contract (V00/V01)."""
from enum import Enum

class EventName(str, Enum):
    """Every event the marketplace contract emits."""
    MARKETPLACE_DATA = 'MarketplaceData'
    AFFILIATE_ADDED = 'AffiliateAdded'
    AFFILIATE_REMOVED = 'AffiliateRemoved'
    LISTING_CREATED = 'ListingCreated'
    LISTING_UPDATED = 'ListingUpdated'
    LISTING_WITHDRAWN = 'ListingWithdrawn'
    LISTING_ARBITRATED = 'ListingArbitrated'
    LISTING_DATA = 'ListingData'
    OFFER_CREATED = 'OfferCreated'
    OFFER_ACCEPTED = 'OfferAccepted'
    OFFER_FINALIZED = 'OfferFinalized'
    OFFER_WITHDRAWN = 'OfferWithdrawn'
    OFFER_FUNDS_ADDED = 'OfferFundsAdded'
    OFFER_DISPUTED = 'OfferDisputed'
    OFFER_RULING = 'OfferRuling'
    OFFER_DATA = 'OfferData'

    @property
    def is_offer_event(self) -> bool:
        return 'Offer' in self.value

def _input(name, type_, indexed):
    return {'name': name, 'type': type_, 'indexed': indexed}

def _party_event(name):
    return {
        'type': 'event',
        'name': name,
        'anonymous': False,
        'inputs': [
            _input('party', 'address', True),
            _input('ipfsHash', 'bytes32', False),
        ],
    }

def _listing_event(name):
    return {
        'type': 'event',
        'name': name,
        'anonymous': False,
        'inputs': [
            _input('party', 'address', True),
            _input('listingID', 'uint256', True),
            _input('ipfsHash', 'bytes32', False),
        ],
    }

def _offer_event(name, *extra):
    return {
        'type': 'event',
        'name': name,
        'anonymous': False,
        'inputs': [
            _input('party', 'address', True),
            _input('listingID', 'uint256', True),
            _input('offerID', 'uint256', True),
            _input('ipfsHash', 'bytes32', False),
        ] + list(extra),
    }

MARKETPLACE_ABI = [
    _party_event(EventName.MARKETPLACE_DATA.value),
    _party_event(EventName.AFFILIATE_ADDED.value),
    _party_event(EventName.AFFILIATE_REMOVED.value),
    _listing_event(EventName.LISTING_CREATED.value),
    _listing_event(EventName.LISTING_UPDATED.value),
    _listing_event(EventName.LISTING_WITHDRAWN.value),
    _listing_event(EventName.LISTING_ARBITRATED.value),
    _listing_event(EventName.LISTING_DATA.value),
    _offer_event(EventName.OFFER_CREATED.value),
    _offer_event(EventName.OFFER_ACCEPTED.value),
    _offer_event(EventName.OFFER_FINALIZED.value),
    _offer_event(EventName.OFFER_WITHDRAWN.value),
    _offer_event(EventName.OFFER_FUNDS_ADDED.value),
    _offer_event(EventName.OFFER_DISPUTED.value),
    _offer_event(EventName.OFFER_RULING.value, _input('ruling', 'uint256', False)),
    _offer_event(EventName.OFFER_DATA.value),
]

def event_signature(event_abi) -> str:
    """Canonical signature, e.g. ``OfferCreated(address,uint256,uint256,bytes32)``."""
    types = ','.join(i['type'] for i in event_abi['inputs'])
    return f"{event_abi['name']}({types})"
