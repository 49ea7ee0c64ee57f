"""Offer payload decryption.

Offer payloads are encrypted with the shop's key material, which this service
never handles directly. Deployments provide the decryption routine as a
callable, configured by dotted path in settings.conf:

    offer_decryptor = mydeploy.crypto:decrypt_offer

The callable receives ``(shop, shop_config, encrypted_hash, gateway)`` and
returns (or resolves to) the decrypted payload dict.
"""
import importlib
import inspect
import logging
from typing import Any, Callable, Dict

from ipfs import IPFSError

logger = logging.getLogger(__name__)

class OfferDecryptionError(Exception):
    """Raised when an offer payload cannot be decrypted."""
    pass

def load_decryptor(path: str) -> Callable:
    """Import a decryptor callable from ``module.path:attribute``.

    Raises:
        OfferDecryptionError: If the path is empty, malformed or not importable
    """
    if not path:
        raise OfferDecryptionError("No offer_decryptor configured")

    module_name, sep, attr = path.partition(':')
    if not sep or not module_name or not attr:
        raise OfferDecryptionError(f"offer_decryptor must look like 'module:callable', got {path!r}")

    try:
        module = importlib.import_module(module_name)
        decryptor = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise OfferDecryptionError(f"Cannot load offer decryptor {path}: {e}") from e

    if not callable(decryptor):
        raise OfferDecryptionError(f"Offer decryptor {path} is not callable")
    return decryptor

class OfferDecryptor:
    """Wraps a decryption callable and checks what it returns."""

    def __init__(self, decrypt: Callable):
        self._decrypt = decrypt

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'OfferDecryptor':
        return cls(load_decryptor(settings.get('offer_decryptor', '')))

    async def __call__(self, shop: Dict[str, Any], shop_config: Dict[str, Any],
                       encrypted_hash: str, gateway: str) -> Dict[str, Any]:
        """Decrypt the payload stored at ``encrypted_hash``.

        Raises:
            OfferDecryptionError: If decryption fails or yields something other than an object
        """
        try:
            result = self._decrypt(shop, shop_config, encrypted_hash, gateway)
            if inspect.isawaitable(result):
                result = await result
        except (OfferDecryptionError, IPFSError):
            raise
        except Exception as e:
            raise OfferDecryptionError(
                f"Failed decrypting offer data {encrypted_hash} for shop {shop.get('id')}: {e}"
            ) from e

        if not isinstance(result, dict):
            raise OfferDecryptionError(
                f"Decrypted offer data {encrypted_hash} is not an object"
            )
        return result

__all__ = ['OfferDecryptor', 'OfferDecryptionError', 'load_decryptor']
