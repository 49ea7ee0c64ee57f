"""Fully-qualified marketplace ids.

A listing id is ``<network>-<contract version>-<on-chain listing number>``,
an offer id appends ``-<offer number>``.
"""
from typing import Union

DEFAULT_CONTRACT_VERSION = '001'

class ListingID:
    def __init__(self, listing_id: Union[int, str], network_id: Union[int, str],
                 contract_version: str = DEFAULT_CONTRACT_VERSION):
        self.listing_id = int(listing_id)
        self.network_id = int(network_id)
        self.contract_version = contract_version

    def __str__(self) -> str:
        return f"{self.network_id}-{self.contract_version}-{self.listing_id}"

    def __repr__(self) -> str:
        return f"ListingID({str(self)!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, ListingID) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))

    @classmethod
    def parse(cls, value: str) -> 'ListingID':
        """Parse ``1-001-42``.

        Raises:
            ValueError: If the string is not a fully-qualified listing id
        """
        parts = value.split('-')
        if len(parts) != 3:
            raise ValueError(f"Invalid listing id {value!r}")
        network_id, contract_version, listing_id = parts
        return cls(listing_id, network_id, contract_version)

class OfferID:
    def __init__(self, listing: Union[ListingID, str], offer_id: Union[int, str]):
        self.listing = listing if isinstance(listing, ListingID) else ListingID.parse(listing)
        self.offer_id = int(offer_id)

    def __str__(self) -> str:
        return f"{self.listing}-{self.offer_id}"

    def __repr__(self) -> str:
        return f"OfferID({str(self)!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, OfferID) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))

    @classmethod
    def parse(cls, value: str) -> 'OfferID':
        """Parse ``1-001-42-7``.

        Raises:
            ValueError: If the string is not a fully-qualified offer id
        """
        listing, sep, offer_id = value.rpartition('-')
        if not sep:
            raise ValueError(f"Invalid offer id {value!r}")
        return cls(ListingID.parse(listing), offer_id)
