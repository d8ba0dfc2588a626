"""
Key material: Ed25519 signing keys and X25519 key agreement keys.

Private seeds are held in a ``bytearray`` owned by the ``KeyPair`` and zeroed
by ``wipe()``, on context-manager exit and when the pair is collected. The
``cryptography`` key objects built from a seed are transient and never stored.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from . import multibase
from .errors import KeyMaterialError, MalformedJwk
from .utils import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
PRIVATE_KEY_LENGTH = 32

JWK_MEMBERS = frozenset({"kty", "crv", "x", "d", "kid", "alg", "use", "key_ops"})

# Curve25519 field prime and the Edwards d constant
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


class KeyAlgorithm(str, Enum):
    ED25519 = "Ed25519"
    X25519 = "X25519"

    @property
    def public_codec(self) -> multibase.Codec:
        if self is KeyAlgorithm.ED25519:
            return multibase.ED25519_PUB
        return multibase.X25519_PUB

    @property
    def private_codec(self) -> multibase.Codec:
        if self is KeyAlgorithm.ED25519:
            return multibase.ED25519_PRIV
        return multibase.X25519_PRIV

    @property
    def can_sign(self) -> bool:
        return self is KeyAlgorithm.ED25519

    @classmethod
    def from_codec(cls, code: int) -> "KeyAlgorithm":
        for algorithm in cls:
            if code in (algorithm.public_codec.code, algorithm.private_codec.code):
                return algorithm
        raise KeyMaterialError(f"No key algorithm for multicodec 0x{code:x}")


def _algorithm(value: KeyAlgorithm | str) -> KeyAlgorithm:
    try:
        return KeyAlgorithm(value)
    except ValueError:
        raise KeyMaterialError(f"Unsupported key algorithm: {value}") from None


def _wipe(buf: Optional[bytearray]) -> None:
    if buf is None:
        return
    for i in range(len(buf)):
        buf[i] = 0


def _derive_public(algorithm: KeyAlgorithm, seed: bytearray) -> bytes:
    if algorithm is KeyAlgorithm.ED25519:
        public = Ed25519PrivateKey.from_private_bytes(bytes(seed)).public_key()
    else:
        public = X25519PrivateKey.from_private_bytes(bytes(seed)).public_key()
    return public.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def ed25519_to_x25519_public(public_key: bytes) -> bytes:
    """
    Map an Ed25519 public key (compressed Edwards y) to the X25519 public key
    (Montgomery u) of the same point: u = (1 + y) / (1 - y).
    """
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise KeyMaterialError("Ed25519 public key must be 32 bytes")

    encoded = int.from_bytes(public_key, "little")
    sign = encoded >> 255
    y = encoded & ((1 << 255) - 1)
    if y >= _P:
        raise KeyMaterialError("Public key is not a valid Edwards y coordinate")

    # the point must decompress: x^2 = (y^2 - 1) / (d*y^2 + 1) needs a root
    y2 = y * y % _P
    x2 = (y2 - 1) * pow(_D * y2 + 1, _P - 2, _P) % _P
    if x2 == 0 and sign:
        raise KeyMaterialError("Edwards y cannot be decompressed to a point")
    if x2 != 0 and pow(x2, (_P - 1) // 2, _P) != 1:
        raise KeyMaterialError("Edwards y cannot be decompressed to a point")
    if y == 1:
        raise KeyMaterialError("Identity point has no Montgomery form")

    u = (1 + y) * pow(1 - y, _P - 2, _P) % _P
    return u.to_bytes(32, "little")


def _ed25519_seed_to_x25519(seed: bytearray) -> bytearray:
    digest = bytearray(hashlib.sha512(bytes(seed)).digest()[:32])
    digest[0] &= 248
    digest[31] &= 127
    digest[31] |= 64
    return digest


class KeyPair:
    """
    Public key plus optional private seed for one algorithm.

    Equality and hashing only consider the algorithm and public key.
    """

    __slots__ = ("_algorithm", "_public", "_private")

    def __init__(
        self,
        algorithm: KeyAlgorithm | str,
        public_key: bytes,
        private_key: Optional[bytes] = None,
    ):
        self._private: Optional[bytearray] = None
        algorithm = _algorithm(algorithm)
        if len(public_key) != PUBLIC_KEY_LENGTH:
            raise KeyMaterialError(
                f"{algorithm.value} public key must be {PUBLIC_KEY_LENGTH} bytes, "
                f"got {len(public_key)}"
            )
        self._algorithm = algorithm
        self._public = bytes(public_key)

        if private_key is not None:
            buf = bytearray(private_key)
            try:
                if len(buf) != PRIVATE_KEY_LENGTH:
                    raise KeyMaterialError(
                        f"{algorithm.value} private key must be {PRIVATE_KEY_LENGTH} bytes"
                    )
                if not hmac.compare_digest(_derive_public(algorithm, buf), self._public):
                    raise KeyMaterialError("Public key does not match private key")
            except BaseException:
                _wipe(buf)
                raise
            self._private = buf

    # ─────────────────────────────────────────────
    # Construction
    # ─────────────────────────────────────────────

    @classmethod
    def generate(cls, algorithm: KeyAlgorithm | str = KeyAlgorithm.ED25519) -> "KeyPair":
        algorithm = _algorithm(algorithm)
        if algorithm is KeyAlgorithm.ED25519:
            private = Ed25519PrivateKey.generate()
        else:
            private = X25519PrivateKey.generate()
        seed = bytearray(
            private.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
        try:
            pair = cls.from_private_bytes(algorithm, seed)
        finally:
            _wipe(seed)
        logger.debug("Generated %s key pair", algorithm.value)
        return pair

    @classmethod
    def from_private_bytes(cls, algorithm: KeyAlgorithm | str, seed: bytes) -> "KeyPair":
        algorithm = _algorithm(algorithm)
        buf = bytearray(seed)
        try:
            if len(buf) != PRIVATE_KEY_LENGTH:
                raise KeyMaterialError(
                    f"{algorithm.value} private key must be {PRIVATE_KEY_LENGTH} bytes"
                )
            return cls(algorithm, _derive_public(algorithm, buf), buf)
        finally:
            _wipe(buf)

    @classmethod
    def from_public_bytes(cls, algorithm: KeyAlgorithm | str, public_key: bytes) -> "KeyPair":
        return cls(algorithm, public_key)

    @classmethod
    def from_multibase(cls, token: str) -> "KeyPair":
        """
        Import a key from a multibase token. Public codecs give a public-only
        pair, private codecs a full pair.
        """
        code, raw = multibase.decode(token)
        algorithm = KeyAlgorithm.from_codec(code)
        if code == algorithm.public_codec.code:
            return cls(algorithm, raw)
        buf = bytearray(raw)
        try:
            return cls.from_private_bytes(algorithm, buf)
        finally:
            _wipe(buf)

    @classmethod
    def from_jwk(cls, jwk: Mapping[str, Any]) -> "KeyPair":
        if not isinstance(jwk, Mapping):
            raise MalformedJwk("JWK must be a JSON object")

        unknown = set(jwk) - JWK_MEMBERS
        if unknown:
            raise MalformedJwk(f"Unrecognized JWK members: {sorted(unknown)}")
        if jwk.get("kty") != "OKP":
            raise MalformedJwk(f"Unsupported kty: {jwk.get('kty')!r}")

        crv = jwk.get("crv")
        try:
            algorithm = KeyAlgorithm(crv)
        except ValueError:
            raise MalformedJwk(f"Unsupported crv: {crv!r}") from None

        x = jwk.get("x")
        if not isinstance(x, str):
            raise MalformedJwk("JWK is missing x")
        try:
            public = b64url_decode(x)
        except ValueError:
            raise MalformedJwk("JWK x is not base64url") from None
        if len(public) != PUBLIC_KEY_LENGTH:
            raise MalformedJwk(f"JWK x must decode to {PUBLIC_KEY_LENGTH} bytes")

        if "d" not in jwk:
            return cls(algorithm, public)

        d = jwk["d"]
        if not isinstance(d, str):
            raise MalformedJwk("JWK d must be a string")
        try:
            seed = bytearray(b64url_decode(d))
        except ValueError:
            raise MalformedJwk("JWK d is not base64url") from None
        try:
            if len(seed) != PRIVATE_KEY_LENGTH:
                raise MalformedJwk(f"JWK d must decode to {PRIVATE_KEY_LENGTH} bytes")
            return cls(algorithm, public, seed)
        except MalformedJwk:
            raise
        except KeyMaterialError as e:
            raise MalformedJwk(str(e)) from None
        finally:
            _wipe(seed)

    # ─────────────────────────────────────────────
    # Accessors & export
    # ─────────────────────────────────────────────

    @property
    def algorithm(self) -> KeyAlgorithm:
        return self._algorithm

    @property
    def public_key(self) -> bytes:
        return self._public

    @property
    def has_private(self) -> bool:
        return self._private is not None

    @property
    def private_key(self) -> Optional[bytes]:
        """
        Copy of the private seed. The copy is not wiped; prefer handing the
        pair itself to a signer.
        """
        if self._private is None:
            return None
        return bytes(self._private)

    def to_multibase(self, base: str = multibase.BASE58BTC) -> str:
        return multibase.encode(self._algorithm.public_codec.code, self._public, base)

    def private_multibase(self, base: str = multibase.BASE58BTC) -> str:
        if self._private is None:
            raise KeyMaterialError("Key pair has no private key")
        return multibase.encode(self._algorithm.private_codec.code, self._private, base)

    def to_jwk(self, include_private: bool = False) -> Dict[str, str]:
        jwk = {
            "kty": "OKP",
            "crv": self._algorithm.value,
            "x": b64url_encode(self._public),
        }
        if include_private:
            if self._private is None:
                raise KeyMaterialError("Key pair has no private key")
            jwk["d"] = b64url_encode(bytes(self._private))
        return jwk

    def to_x25519(self) -> "KeyPair":
        """
        Derive the X25519 key agreement pair for an Ed25519 pair.
        """
        if self._algorithm is KeyAlgorithm.X25519:
            return self
        public = ed25519_to_x25519_public(self._public)
        if self._private is None:
            return KeyPair(KeyAlgorithm.X25519, public)
        scalar = _ed25519_seed_to_x25519(self._private)
        try:
            return KeyPair(KeyAlgorithm.X25519, public, scalar)
        finally:
            _wipe(scalar)

    def signing_key(self) -> Ed25519PrivateKey:
        if not self._algorithm.can_sign:
            raise KeyMaterialError(f"{self._algorithm.value} keys cannot sign")
        if self._private is None:
            raise KeyMaterialError("Key pair has no private key")
        return Ed25519PrivateKey.from_private_bytes(bytes(self._private))

    # ─────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────

    def wipe(self) -> None:
        _wipe(self._private)
        self._private = None

    def __enter__(self) -> "KeyPair":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self) -> None:
        _wipe(getattr(self, "_private", None))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyPair):
            return NotImplemented
        return self._algorithm is other._algorithm and self._public == other._public

    def __hash__(self) -> int:
        return hash((self._algorithm, self._public))

    def __repr__(self) -> str:
        return (
            f"KeyPair(algorithm={self._algorithm.value}, "
            f"public={self.to_multibase()}, private={'<redacted>' if self.has_private else None})"
        )
