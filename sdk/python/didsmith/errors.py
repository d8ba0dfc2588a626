"""
Error taxonomy.

Every error carries a ``kind`` string. Resolution errors use the error codes
of W3C DID Resolution where one exists so that ``ResolutionResult`` metadata
can report them directly.
"""

from __future__ import annotations


class DidSmithError(Exception):
    """Base class for all didsmith errors."""

    kind = "error"


# ─────────────────────────────────────────────
# Identifier syntax
# ─────────────────────────────────────────────

class DidError(DidSmithError):
    kind = "didError"


class InvalidSyntax(DidError):
    """Malformed DID or DID URL. A caller error, never worth retrying."""

    kind = "invalidDid"


# ─────────────────────────────────────────────
# Multibase / multicodec
# ─────────────────────────────────────────────

class CodecError(DidSmithError):
    kind = "codecError"


class UnknownBase(CodecError):
    kind = "unknownBase"


class UnknownCodec(CodecError):
    kind = "unknownCodec"

    def __init__(self, message: str, codec: int | None = None):
        super().__init__(message)
        self.codec = codec


class Truncated(CodecError):
    kind = "truncated"


# ─────────────────────────────────────────────
# Key material
# ─────────────────────────────────────────────

class KeyMaterialError(DidSmithError):
    kind = "invalidPublicKey"


class MalformedJwk(KeyMaterialError):
    kind = "malformedJwk"


# ─────────────────────────────────────────────
# Document construction
# ─────────────────────────────────────────────

class DocumentError(DidSmithError):
    kind = "documentError"


class DuplicateVerificationMethod(DocumentError):
    kind = "duplicateVerificationMethod"

    def __init__(self, method_id: str):
        super().__init__(f"Duplicate verification method id: {method_id}")
        self.method_id = method_id


class DanglingReference(DocumentError):
    kind = "danglingReference"

    def __init__(self, relationship: str, reference: str):
        super().__init__(
            f"{relationship} references unknown verification method: {reference}"
        )
        self.relationship = relationship
        self.reference = reference


# ─────────────────────────────────────────────
# Resolution
# ─────────────────────────────────────────────

class ResolutionError(DidSmithError):
    kind = "resolutionError"


class UnsupportedMethod(ResolutionError):
    kind = "methodNotSupported"


class UnsupportedKeyType(ResolutionError):
    kind = "unsupportedPublicKeyType"


class NotFound(ResolutionError):
    kind = "notFound"


class Unreachable(ResolutionError):
    """Transport failure. Possibly transient; the core never retries."""

    kind = "unreachable"


class ResolutionTimeout(Unreachable):
    kind = "timeout"


class MalformedDocument(ResolutionError):
    kind = "invalidDidDocument"


class FragmentNotFound(ResolutionError):
    kind = "fragmentNotFound"
