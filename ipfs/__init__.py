"""IPFS content fetching through an HTTP gateway."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60  # seconds

class IPFSError(Exception):
    """Raised when content cannot be fetched from the gateway."""
    def __init__(self, message: str, ipfs_hash: Optional[str] = None):
        self.ipfs_hash = ipfs_hash
        super().__init__(message)

class IPFSTimeoutError(IPFSError):
    """Raised when the gateway does not answer within the timeout."""
    pass

def resolve_gateway(shop_config: Dict[str, Any], network_config: Dict[str, Any], default: str) -> str:
    """Gateway to use for a shop: shop override, then network, then settings."""
    gateway = shop_config.get('ipfsGateway') or network_config.get('ipfsGateway') or default
    return gateway.rstrip('/')

class IPFSClient:
    """Reads content by hash from an IPFS HTTP gateway."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_text(self, gateway: str, ipfs_hash: str, timeout: float) -> str:
        url = f"{gateway.rstrip('/')}/ipfs/{ipfs_hash}"
        try:
            response = self.session.get(url, timeout=timeout)
            response.raise_for_status()
            return response.text
        except requests.exceptions.Timeout as e:
            raise IPFSTimeoutError(
                f"Timed out after {timeout}s fetching {ipfs_hash} from {gateway}",
                ipfs_hash
            ) from e
        except requests.exceptions.RequestException as e:
            raise IPFSError(f"Failed fetching {ipfs_hash} from {gateway}: {e}", ipfs_hash) from e

    async def fetch_text(self, gateway: str, ipfs_hash: str, timeout: Optional[float] = None) -> str:
        """Fetch raw content.

        Raises:
            IPFSTimeoutError: If the gateway does not answer in time
            IPFSError: On any other failure
        """
        timeout = timeout or self.timeout
        logger.info(f"Fetching {ipfs_hash} from {gateway}")
        return await asyncio.to_thread(self._get_text, gateway, ipfs_hash, timeout)

    async def fetch_json(self, gateway: str, ipfs_hash: str, timeout: Optional[float] = None) -> Any:
        """Fetch and parse JSON content.

        Raises:
            IPFSError: If fetching fails or the content is not JSON
        """
        text = await self.fetch_text(gateway, ipfs_hash, timeout)
        try:
            return json.loads(text)
        except ValueError as e:
            raise IPFSError(f"Content {ipfs_hash} is not valid JSON: {e}", ipfs_hash) from e

__all__ = ['IPFSClient', 'IPFSError', 'IPFSTimeoutError', 'resolve_gateway', 'DEFAULT_TIMEOUT']
