"""
Signing capability handed to consumers of resolved documents.

The core never signs; ``Signer`` is the seam where a wallet, HSM or KMS plugs
in. ``KeyRingSigner`` is the in-process implementation.
"""

from __future__ import annotations

import logging
from typing import Dict, Protocol, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .document import VerificationMethod
from .errors import KeyMaterialError
from .keys import KeyAlgorithm, KeyPair

logger = logging.getLogger(__name__)


@runtime_checkable
class Signer(Protocol):
    def sign(self, message: bytes, key_id: str) -> bytes:
        ...


class KeyRingSigner:
    """
    Ed25519 signer keyed by verification method id. Pairs added here are
    owned by the ring and wiped by ``close()``.
    """

    def __init__(self):
        self._keys: Dict[str, KeyPair] = {}

    def add(self, key_id: str, keypair: KeyPair) -> None:
        if not keypair.has_private:
            raise KeyMaterialError(f"Key {key_id} has no private key")
        if not keypair.algorithm.can_sign:
            raise KeyMaterialError(f"{keypair.algorithm.value} keys cannot sign")
        self._keys[key_id] = keypair

    def __contains__(self, key_id: str) -> bool:
        return key_id in self._keys

    def sign(self, message: bytes, key_id: str) -> bytes:
        try:
            keypair = self._keys[key_id]
        except KeyError:
            raise KeyMaterialError(f"No signing key for {key_id}") from None
        signature = keypair.signing_key().sign(message)
        logger.debug("Signed %d bytes with %s", len(message), key_id)
        return signature

    def close(self) -> None:
        for keypair in self._keys.values():
            keypair.wipe()
        self._keys.clear()

    def __enter__(self) -> "KeyRingSigner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def verify_signature(message: bytes, signature: bytes, method: VerificationMethod) -> bool:
    """
    Check an Ed25519 signature against a verification method's key.
    """
    pair = method.public_key()
    if pair.algorithm is not KeyAlgorithm.ED25519:
        raise KeyMaterialError(f"{pair.algorithm.value} keys cannot verify signatures")
    try:
        Ed25519PublicKey.from_public_bytes(pair.public_key).verify(signature, message)
        return True
    except InvalidSignature:
        return False
