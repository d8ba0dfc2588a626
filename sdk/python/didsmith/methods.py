"""
DID method resolvers and document creation.

- did:key  https://w3c-ccg.github.io/did-method-key
- did:jwk  https://github.com/quartzjer/did-jwk
- did:web  https://w3c-ccg.github.io/did-method-web

``did:key`` and ``did:jwk`` documents are synthesized in-process from the
identifier alone and are deterministic. ``did:web`` makes exactly one fetch
through the injected transport.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence
from urllib.parse import quote, unquote

from . import multibase
from .config import CreateOptions, PublicKeyFormat, WebConfig
from .did import Did, parse
from .document import (
    ASSERTION_METHOD,
    AUTHENTICATION,
    CAPABILITY_DELEGATION,
    CAPABILITY_INVOCATION,
    KEY_AGREEMENT,
    DidDocument,
    DocumentBuilder,
    Service,
    VerificationMethod,
    canonicalize_json,
)
from .errors import (
    FragmentNotFound,
    InvalidSyntax,
    MalformedDocument,
    MalformedJwk,
    UnknownCodec,
    UnsupportedKeyType,
    UnsupportedMethod,
)
from .keys import KeyAlgorithm, KeyPair, ed25519_to_x25519_public
from .transport import Transport
from .utils import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

SIGNING_RELATIONSHIPS = (
    AUTHENTICATION,
    ASSERTION_METHOD,
    CAPABILITY_INVOCATION,
    CAPABILITY_DELEGATION,
)

_WEB_HOST_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?(?::[0-9]{1,5})?")


class MethodResolver(ABC):
    """
    Resolution strategy for one DID method.
    """

    method: str = ""

    @abstractmethod
    def resolve(self, did: Did, timeout: Optional[float] = None) -> DidDocument:
        ...

    def dereference(
        self, did: Did, fragment: str, timeout: Optional[float] = None
    ) -> VerificationMethod:
        document = self.resolve(did.base, timeout=timeout)
        method = document.find_verification_method("#" + fragment)
        if method is None:
            raise FragmentNotFound(f"No verification method #{fragment} in {did.base}")
        return method

    def _check_method(self, did: Did) -> None:
        if did.method != self.method:
            raise UnsupportedMethod(
                f"{type(self).__name__} cannot resolve did:{did.method} identifiers"
            )


# ─────────────────────────────────────────────
# Verification method construction
# ─────────────────────────────────────────────

def _method_type(pair: KeyPair, key_format: PublicKeyFormat) -> PublicKeyFormat:
    if key_format in (
        PublicKeyFormat.ED25519_VERIFICATION_KEY_2020,
        PublicKeyFormat.X25519_KEY_AGREEMENT_KEY_2020,
    ):
        if pair.algorithm is KeyAlgorithm.ED25519:
            return PublicKeyFormat.ED25519_VERIFICATION_KEY_2020
        return PublicKeyFormat.X25519_KEY_AGREEMENT_KEY_2020
    return key_format


def build_verification_method(
    method_id: str,
    controller: Did | str,
    pair: KeyPair,
    key_format: PublicKeyFormat = PublicKeyFormat.MULTIKEY,
) -> VerificationMethod:
    method_type = _method_type(pair, key_format)
    if method_type is PublicKeyFormat.JSON_WEB_KEY_2020:
        return VerificationMethod(
            id=method_id,
            type=method_type.value,
            controller=str(controller),
            public_key_jwk=pair.to_jwk(),
        )
    return VerificationMethod(
        id=method_id,
        type=method_type.value,
        controller=str(controller),
        public_key_multibase=pair.to_multibase(),
    )


# ─────────────────────────────────────────────
# did:key
# ─────────────────────────────────────────────

def _key_document(did: Did, pair: KeyPair, options: CreateOptions) -> DidDocument:
    token = did.method_specific_id
    key_format = options.public_key_format
    builder = DocumentBuilder(did, context=[options.default_context])
    builder.add_context(_method_type(pair, key_format).context)

    derive = (
        options.enable_encryption_key_derivation
        and pair.algorithm is KeyAlgorithm.ED25519
    )
    relationships: List[str] = list(SIGNING_RELATIONSHIPS)
    if not derive:
        relationships.append(KEY_AGREEMENT)
    builder.add_verification_method(
        build_verification_method(f"{did}#{token}", did, pair, key_format),
        relationships,
    )

    if derive:
        agreement = KeyPair(KeyAlgorithm.X25519, ed25519_to_x25519_public(pair.public_key))
        builder.add_context(_method_type(agreement, key_format).context)
        builder.embed(
            KEY_AGREEMENT,
            build_verification_method(
                f"{did}#{agreement.to_multibase()}", did, agreement, key_format
            ),
        )

    return builder.build()


def create_did_key(keypair: KeyPair, options: CreateOptions = CreateOptions()) -> DidDocument:
    did = Did("key", keypair.to_multibase())
    logger.debug("Created %s", did)
    return _key_document(did, KeyPair(keypair.algorithm, keypair.public_key), options)


class KeyResolver(MethodResolver):
    """
    Self-certifying did:key resolution. No I/O.
    """

    method = "key"

    def __init__(self, options: CreateOptions = CreateOptions()):
        self.options = options

    def resolve(self, did: Did, timeout: Optional[float] = None) -> DidDocument:
        self._check_method(did)
        did = did.base
        token = did.method_specific_id
        if ":" in token:
            raise InvalidSyntax(f"did:key method-specific id must be one multibase token: {did}")

        try:
            code, raw = multibase.decode(token)
        except UnknownCodec as e:
            raise UnsupportedKeyType(f"Unsupported did:key key type in {did}") from e

        if code not in (multibase.ED25519_PUB.code, multibase.X25519_PUB.code):
            raise UnsupportedKeyType(f"did:key must embed a public key: {did}")

        pair = KeyPair(KeyAlgorithm.from_codec(code), raw)
        return _key_document(did, pair, self.options)


# ─────────────────────────────────────────────
# did:jwk
# ─────────────────────────────────────────────

JWK_OPTIONS = CreateOptions(public_key_format=PublicKeyFormat.JSON_WEB_KEY_2020)


def _jwk_document(did: Did, jwk: dict, pair: KeyPair, options: CreateOptions) -> DidDocument:
    key_format = options.public_key_format
    builder = DocumentBuilder(did, context=[options.default_context])
    builder.add_context(_method_type(pair, key_format).context)
    if pair.algorithm is KeyAlgorithm.X25519:
        relationships: Sequence[str] = (KEY_AGREEMENT,)
    else:
        relationships = SIGNING_RELATIONSHIPS

    method = build_verification_method(f"{did}#0", did, pair, key_format)
    if method.public_key_jwk is not None:
        # keep the members the identifier was minted with
        method = replace(method, public_key_jwk=jwk)
    builder.add_verification_method(method, relationships)

    if options.enable_encryption_key_derivation and pair.algorithm is KeyAlgorithm.ED25519:
        agreement = KeyPair(KeyAlgorithm.X25519, ed25519_to_x25519_public(pair.public_key))
        builder.add_context(_method_type(agreement, key_format).context)
        builder.embed(
            KEY_AGREEMENT,
            build_verification_method(f"{did}#1", did, agreement, key_format),
        )
    return builder.build()


def create_did_jwk(keypair: KeyPair, options: CreateOptions = JWK_OPTIONS) -> DidDocument:
    """
    The identifier always encodes the public JWK. ``options`` only shapes
    the document: the method type and an optional derived X25519 ``#1``
    key agreement method.
    """
    jwk = keypair.to_jwk()
    did = Did("jwk", b64url_encode(canonicalize_json(jwk)))
    logger.debug("Created did:jwk for %s key", keypair.algorithm.value)
    return _jwk_document(did, jwk, KeyPair(keypair.algorithm, keypair.public_key), options)


class JwkResolver(MethodResolver):
    """
    did:jwk resolution: the method-specific id is a base64url JSON JWK.
    """

    method = "jwk"

    def __init__(self, options: CreateOptions = JWK_OPTIONS):
        self.options = options

    def resolve(self, did: Did, timeout: Optional[float] = None) -> DidDocument:
        self._check_method(did)
        did = did.base
        try:
            jwk = json.loads(b64url_decode(did.method_specific_id))
        except (ValueError, RecursionError) as e:
            raise InvalidSyntax(f"did:jwk method-specific id is not base64url JSON: {did}") from e
        if not isinstance(jwk, dict):
            raise MalformedJwk("did:jwk must encode a JSON object")
        if "d" in jwk:
            raise MalformedJwk("did:jwk must not contain private key material")
        return _jwk_document(did, jwk, KeyPair.from_jwk(jwk), self.options)


# ─────────────────────────────────────────────
# did:web
# ─────────────────────────────────────────────

def web_did_to_url(did: Did | str, scheme: str = "https") -> str:
    """
    did:web:example.com            → https://example.com/.well-known/did.json
    did:web:example.com:user:alice → https://example.com/user/alice/did.json
    did:web:example.com%3A8080     → https://example.com:8080/.well-known/did.json
    """
    if isinstance(did, str):
        did = parse(did)
    if did.method != "web":
        raise UnsupportedMethod(f"Not a did:web identifier: {did}")

    segments = did.method_specific_id.split(":")
    host = unquote(segments[0])
    if not _WEB_HOST_RE.fullmatch(host):
        raise InvalidSyntax(f"Invalid did:web host: {host!r}")
    for segment in segments[1:]:
        if segment in ("", ".", "..") or "%2f" in segment.lower():
            raise InvalidSyntax(f"Invalid did:web path segment: {segment!r}")

    if len(segments) > 1:
        path = "/" + "/".join(segments[1:]) + "/did.json"
    else:
        path = "/.well-known/did.json"
    return f"{scheme}://{host}{path}"


def create_did_web(domain: str, path: Optional[Iterable[str]] = None) -> Did:
    """
    Build a did:web identifier; a port in ``domain`` is percent-encoded.
    """
    encoded = quote(domain, safe="")
    if path:
        encoded += ":" + ":".join(quote(segment, safe="") for segment in path)
    return parse(f"did:web:{encoded}")


def create_web_document(
    did: Did | str,
    keypair: KeyPair,
    services: Iterable[Service] = (),
    controller: Optional[str] = None,
    key_id: str = "key-0",
    options: CreateOptions = CreateOptions(),
) -> DidDocument:
    """
    Document for a did:web identifier, ready to be hosted at
    ``web_did_to_url(did)``. The key is usable for authentication and
    assertion.
    """
    if isinstance(did, str):
        did = parse(did)
    if did.method != "web":
        raise UnsupportedMethod(f"Not a did:web identifier: {did}")

    pair = KeyPair(keypair.algorithm, keypair.public_key)
    builder = DocumentBuilder(did, context=[options.default_context])
    builder.add_context(_method_type(pair, options.public_key_format).context)
    builder.add_verification_method(
        build_verification_method(
            f"{did}#{key_id}", controller or did, pair, options.public_key_format
        ),
        (AUTHENTICATION, ASSERTION_METHOD),
    )
    for service in services:
        builder.add_service(service)
    return builder.build()


class WebResolver(MethodResolver):
    """
    did:web resolution through an injected transport.
    """

    method = "web"

    def __init__(self, transport: Transport, config: WebConfig = WebConfig()):
        self.transport = transport
        self.config = config

    def resolve(self, did: Did, timeout: Optional[float] = None) -> DidDocument:
        self._check_method(did)
        did = did.base
        url = web_did_to_url(did, self.config.scheme)
        logger.debug("Resolving %s via %s", did, url)

        payload = self.transport.fetch(
            url, timeout=self.config.timeout if timeout is None else timeout
        )
        document = DidDocument.from_json(
            payload,
            check_references=self.config.validate_references,
            allow_external=self.config.allow_external_references,
        )
        if document.id != did:
            raise MalformedDocument(
                f"Document id {document.id} does not match requested {did}"
            )
        return document
