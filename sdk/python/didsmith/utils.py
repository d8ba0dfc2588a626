from __future__ import annotations

import base64
import binascii
from typing import Tuple

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

# unsigned-varint (multiformats) caps encodings at 9 bytes
VARINT_MAX_BYTES = 9


def utf8_encode(s: str) -> bytes:
    return s.encode("utf-8")


def b64url_encode(data: bytes) -> str:
    """
    Base64url encoding (RFC 4648 §5) with no padding.
    """
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(s: str) -> bytes:
    """
    Base64url decoding (RFC 4648 §5) accepting missing padding.

    Characters outside the url-safe alphabet are rejected rather than skipped.
    """
    if "=" in s or "+" in s or "/" in s:
        raise ValueError("b64url_decode: padded or non url-safe input")
    if len(s) % 4 == 1:
        raise ValueError("b64url_decode: invalid input length")
    pad = (-len(s)) % 4
    try:
        return base64.b64decode(
            (s + ("=" * pad)).encode("ascii"),
            altchars=b"-_",
            validate=True,
        )
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"b64url_decode: {e}") from e


def base58_encode(data: bytes) -> str:
    digits = [0]
    for byte in data:
        carry = byte
        for i in range(len(digits)):
            carry += digits[i] << 8
            digits[i] = carry % 58
            carry //= 58
        while carry > 0:
            digits.append(carry % 58)
            carry //= 58

    result = ""
    for b in data:
        if b == 0:
            result += "1"
        else:
            break

    # empty input leaves a single zero digit which must not be rendered
    if len(data) == 0 or all(b == 0 for b in data):
        return result

    for d in reversed(digits):
        result += BASE58_ALPHABET[d]
    return result


def base58_decode(s: str) -> bytes:
    out = []
    for ch in s:
        carry = BASE58_ALPHABET.find(ch)
        if carry < 0:
            raise ValueError(f"Invalid base58 character: {ch!r}")

        for i in range(len(out)):
            carry += out[i] * 58
            out[i] = carry & 0xFF
            carry >>= 8

        while carry > 0:
            out.append(carry & 0xFF)
            carry >>= 8

    for ch in s:
        if ch == "1":
            out.append(0)
        else:
            break

    return bytes(reversed(out))


def varint_encode(n: int) -> bytes:
    """
    Unsigned LEB128 varint as used by multicodec prefixes.
    """
    if n < 0:
        raise ValueError("varint_encode: n must be non-negative")
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            break
    if len(out) > VARINT_MAX_BYTES:
        raise ValueError("varint_encode: value too large")
    return bytes(out)


def varint_decode(data: bytes) -> Tuple[int, int]:
    """
    Returns (value, number_of_bytes_consumed).

    Raises EOFError when the input ends mid-varint and ValueError for
    non-minimal or oversized encodings.
    """
    value = 0
    for i, byte in enumerate(data):
        if i >= VARINT_MAX_BYTES:
            raise ValueError("varint_decode: varint too long")
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            if byte == 0 and i > 0:
                raise ValueError("varint_decode: non-minimal encoding")
            return value, i + 1
    raise EOFError("varint_decode: input ended inside varint")
