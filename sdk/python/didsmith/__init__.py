"""
didsmith: DID parsing, key material and resolution (did:key, did:jwk, did:web)

Only did:web performs network I/O, through an injected transport.
"""

from .did import Did, parse, is_valid
from .keys import KeyAlgorithm, KeyPair, ed25519_to_x25519_public
from .document import (
    DidDocument,
    DocumentBuilder,
    Service,
    VerificationMethod,
    canonicalize_json,
)
from .config import CreateOptions, PublicKeyFormat, WebConfig
from .transport import HttpxTransport, Transport
from .methods import (
    JwkResolver,
    KeyResolver,
    MethodResolver,
    WebResolver,
    create_did_jwk,
    create_did_key,
    create_did_web,
    create_web_document,
    web_did_to_url,
)
from .engine import ResolutionEngine, ResolutionResult, default_engine
from .patch import Action, Patch, PublicKeyEntry, apply_patches
from .signing import KeyRingSigner, Signer, verify_signature
from .errors import (
    DidSmithError,
    DidError,
    InvalidSyntax,
    CodecError,
    UnknownBase,
    UnknownCodec,
    Truncated,
    KeyMaterialError,
    MalformedJwk,
    DocumentError,
    DuplicateVerificationMethod,
    DanglingReference,
    ResolutionError,
    UnsupportedMethod,
    UnsupportedKeyType,
    NotFound,
    Unreachable,
    ResolutionTimeout,
    MalformedDocument,
    FragmentNotFound,
)

__all__ = [
    "Did",
    "parse",
    "is_valid",
    "KeyAlgorithm",
    "KeyPair",
    "ed25519_to_x25519_public",
    "DidDocument",
    "DocumentBuilder",
    "Service",
    "VerificationMethod",
    "canonicalize_json",
    "CreateOptions",
    "PublicKeyFormat",
    "WebConfig",
    "HttpxTransport",
    "Transport",
    "JwkResolver",
    "KeyResolver",
    "MethodResolver",
    "WebResolver",
    "create_did_jwk",
    "create_did_key",
    "create_did_web",
    "create_web_document",
    "web_did_to_url",
    "ResolutionEngine",
    "ResolutionResult",
    "default_engine",
    "Action",
    "Patch",
    "PublicKeyEntry",
    "apply_patches",
    "KeyRingSigner",
    "Signer",
    "verify_signature",
    "DidSmithError",
    "DidError",
    "InvalidSyntax",
    "CodecError",
    "UnknownBase",
    "UnknownCodec",
    "Truncated",
    "KeyMaterialError",
    "MalformedJwk",
    "DocumentError",
    "DuplicateVerificationMethod",
    "DanglingReference",
    "ResolutionError",
    "UnsupportedMethod",
    "UnsupportedKeyType",
    "NotFound",
    "Unreachable",
    "ResolutionTimeout",
    "MalformedDocument",
    "FragmentNotFound",
]
