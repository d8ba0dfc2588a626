"""
Multibase / multicodec key tokens.

A token is ``<base indicator><base-encoded varint(codec) || key bytes>``.
Only key codecs with a fixed payload length are registered, so a token that
decodes at all is guaranteed to carry exactly one key of the expected size.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import CodecError, Truncated, UnknownBase, UnknownCodec
from .utils import (
    b64url_decode,
    b64url_encode,
    base58_decode,
    base58_encode,
    varint_decode,
    varint_encode,
)

BASE58BTC = "z"
BASE64URL = "u"


@dataclass(frozen=True)
class Codec:
    name: str
    code: int
    length: int

    @property
    def prefix(self) -> bytes:
        return varint_encode(self.code)


ED25519_PUB = Codec("ed25519-pub", 0xED, 32)
X25519_PUB = Codec("x25519-pub", 0xEC, 32)
ED25519_PRIV = Codec("ed25519-priv", 0x1300, 32)
X25519_PRIV = Codec("x25519-priv", 0x1302, 32)

CODECS: Dict[int, Codec] = {
    c.code: c for c in (ED25519_PUB, X25519_PUB, ED25519_PRIV, X25519_PRIV)
}


def codec_for(code: int) -> Codec:
    try:
        return CODECS[code]
    except KeyError:
        raise UnknownCodec(f"Unrecognized multicodec: 0x{code:x}", code) from None


def _encode_base(base: str, data: bytes) -> str:
    if base == BASE58BTC:
        return base58_encode(data)
    if base == BASE64URL:
        return b64url_encode(data)
    raise UnknownBase(f"Unsupported multibase indicator: {base!r}")


def _decode_base(base: str, body: str) -> bytes:
    try:
        if base == BASE58BTC:
            return base58_decode(body)
        if base == BASE64URL:
            data = b64url_decode(body)
            # base64url has slack bits in the last character
            if b64url_encode(data) != body:
                raise ValueError("non-canonical base64url encoding")
            return data
    except ValueError as e:
        raise CodecError(f"Invalid multibase payload: {e}") from e
    raise UnknownBase(f"Unsupported multibase indicator: {base!r}")


def encode(codec: int, raw: bytes, base: str = BASE58BTC) -> str:
    """
    Encode raw key bytes under a registered codec.
    """
    entry = codec_for(codec)
    if len(raw) != entry.length:
        raise CodecError(
            f"{entry.name} requires {entry.length} bytes, got {len(raw)}"
        )
    return base + _encode_base(base, entry.prefix + bytes(raw))


def decode(token: str) -> Tuple[int, bytes]:
    """
    Returns (codec, raw_key_bytes).
    """
    if not isinstance(token, str) or not token:
        raise UnknownBase("Empty multibase token")

    base, body = token[0], token[1:]
    if base not in (BASE58BTC, BASE64URL):
        raise UnknownBase(f"Unsupported multibase indicator: {base!r}")

    data = _decode_base(base, body)

    try:
        code, consumed = varint_decode(data)
    except EOFError as e:
        raise Truncated("Multicodec prefix is truncated") from e
    except ValueError as e:
        raise CodecError(f"Invalid multicodec prefix: {e}") from e

    entry = codec_for(code)
    payload = data[consumed:]
    if len(payload) < entry.length:
        raise Truncated(
            f"{entry.name} requires {entry.length} bytes, got {len(payload)}"
        )
    if len(payload) > entry.length:
        raise CodecError(
            f"{entry.name} requires {entry.length} bytes, got {len(payload)}"
        )
    return code, payload
