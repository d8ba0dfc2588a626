"""
DID Document data model.

Documents are immutable and are only assembled through ``DocumentBuilder``,
which enforces unique verification method ids and resolvable references.
``DidDocument.canonical_form()`` is the RFC 8785 (JCS) serialization, so two
independently built but equal documents compare byte-for-byte.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import rfc8785  # JCS canonicalization

from .did import Did, parse
from .errors import (
    DanglingReference,
    DocumentError,
    DuplicateVerificationMethod,
    InvalidSyntax,
    KeyMaterialError,
    MalformedDocument,
    MalformedJwk,
)
from .keys import KeyPair
from .utils import utf8_encode

logger = logging.getLogger(__name__)

DID_CONTEXT = "https://www.w3.org/ns/did/v1"

AUTHENTICATION = "authentication"
ASSERTION_METHOD = "assertionMethod"
KEY_AGREEMENT = "keyAgreement"
CAPABILITY_INVOCATION = "capabilityInvocation"
CAPABILITY_DELEGATION = "capabilityDelegation"

RELATIONSHIPS = (
    AUTHENTICATION,
    ASSERTION_METHOD,
    KEY_AGREEMENT,
    CAPABILITY_INVOCATION,
    CAPABILITY_DELEGATION,
)

_RELATIONSHIP_FIELDS = {
    AUTHENTICATION: "authentication",
    ASSERTION_METHOD: "assertion_method",
    KEY_AGREEMENT: "key_agreement",
    CAPABILITY_INVOCATION: "capability_invocation",
    CAPABILITY_DELEGATION: "capability_delegation",
}


def canonicalize_json(obj: Any) -> bytes:
    """
    RFC 8785 JCS canonicalization
    """
    canonical = rfc8785.dumps(obj)
    if isinstance(canonical, bytes):
        return canonical
    return utf8_encode(canonical)


def _one_or_many(values: Sequence[Any]) -> Any:
    # a single entry is written as a scalar, several as a list
    if len(values) == 1:
        return values[0]
    return list(values)


def _as_tuple(value: Any, what: str, allow_maps: bool = False) -> Tuple[Any, ...]:
    items = value if isinstance(value, list) else [value]
    for item in items:
        if isinstance(item, str):
            continue
        if allow_maps and isinstance(item, dict):
            continue
        raise MalformedDocument(f"{what} entries must be strings")
    return tuple(items)


def _require_str(data: Dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedDocument(f"{what} is missing {key}")
    return value


# ─────────────────────────────────────────────
# Verification methods & services
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class VerificationMethod:
    id: str
    type: str
    controller: str
    public_key_multibase: Optional[str] = None
    # held as a read-only copy
    public_key_jwk: Optional[Mapping[str, Any]] = field(default=None, hash=False)

    def __post_init__(self):
        if self.public_key_jwk is not None:
            object.__setattr__(
                self, "public_key_jwk", MappingProxyType(dict(self.public_key_jwk))
            )

    @property
    def fragment(self) -> Optional[str]:
        if "#" not in self.id:
            return None
        return self.id.split("#", 1)[1]

    def public_key(self) -> KeyPair:
        """
        Decode the embedded public key. Private key material is rejected.
        """
        if self.public_key_multibase is not None:
            pair = KeyPair.from_multibase(self.public_key_multibase)
            if pair.has_private:
                pair.wipe()
                raise KeyMaterialError("Verification method embeds a private key")
            return pair
        if self.public_key_jwk is not None:
            if "d" in self.public_key_jwk:
                raise MalformedJwk("Verification method embeds a private key")
            return KeyPair.from_jwk(self.public_key_jwk)
        raise KeyMaterialError(f"Verification method {self.id} has no public key")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
        }
        if self.public_key_multibase is not None:
            out["publicKeyMultibase"] = self.public_key_multibase
        if self.public_key_jwk is not None:
            out["publicKeyJwk"] = dict(self.public_key_jwk)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "VerificationMethod":
        if not isinstance(data, dict):
            raise MalformedDocument("Verification method must be an object")
        multibase_key = data.get("publicKeyMultibase")
        if multibase_key is not None and not isinstance(multibase_key, str):
            raise MalformedDocument("publicKeyMultibase must be a string")
        jwk = data.get("publicKeyJwk")
        if jwk is not None and not isinstance(jwk, dict):
            raise MalformedDocument("publicKeyJwk must be an object")
        return cls(
            id=_require_str(data, "id", "Verification method"),
            type=_require_str(data, "type", "Verification method"),
            controller=_require_str(data, "controller", "Verification method"),
            public_key_multibase=multibase_key,
            public_key_jwk=dict(jwk) if jwk is not None else None,
        )


@dataclass(frozen=True)
class Service:
    id: str
    type: Tuple[str, ...]
    service_endpoint: Tuple[Any, ...] = field(hash=False)

    def __post_init__(self):
        if isinstance(self.type, str):
            object.__setattr__(self, "type", (self.type,))
        if isinstance(self.service_endpoint, (str, dict)):
            object.__setattr__(self, "service_endpoint", (self.service_endpoint,))
        if not self.type:
            raise DocumentError(f"Service {self.id} has no type")
        if not self.service_endpoint:
            raise DocumentError(f"Service {self.id} has no endpoint")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": _one_or_many(self.type),
            "serviceEndpoint": _one_or_many(self.service_endpoint),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Service":
        if not isinstance(data, dict):
            raise MalformedDocument("Service must be an object")
        if "type" not in data or "serviceEndpoint" not in data:
            raise MalformedDocument("Service is missing type or serviceEndpoint")
        try:
            return cls(
                id=_require_str(data, "id", "Service"),
                type=_as_tuple(data["type"], "Service type"),
                service_endpoint=_as_tuple(
                    data["serviceEndpoint"], "Service endpoint", allow_maps=True
                ),
            )
        except DocumentError as e:
            raise MalformedDocument(str(e)) from e


Relationship = Union[str, VerificationMethod]


# ─────────────────────────────────────────────
# Document
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class DidDocument:
    id: Did
    context: Tuple[Any, ...] = field(default=(DID_CONTEXT,), hash=False)
    also_known_as: Tuple[str, ...] = ()
    controller: Tuple[str, ...] = ()
    verification_method: Tuple[VerificationMethod, ...] = ()
    authentication: Tuple[Relationship, ...] = ()
    assertion_method: Tuple[Relationship, ...] = ()
    key_agreement: Tuple[Relationship, ...] = ()
    capability_invocation: Tuple[Relationship, ...] = ()
    capability_delegation: Tuple[Relationship, ...] = ()
    service: Tuple[Service, ...] = ()

    def relationship(self, name: str) -> Tuple[Relationship, ...]:
        try:
            return getattr(self, _RELATIONSHIP_FIELDS[name])
        except KeyError:
            raise DocumentError(f"Unknown verification relationship: {name}") from None

    def expand_id(self, method_id: str) -> str:
        return expand_id(self.id, method_id)

    def embedded_methods(self) -> List[VerificationMethod]:
        return [
            entry
            for name in RELATIONSHIPS
            for entry in self.relationship(name)
            if isinstance(entry, VerificationMethod)
        ]

    def find_verification_method(self, ref: str) -> Optional[VerificationMethod]:
        """
        Look up a method by absolute DID URL, ``#fragment`` or bare fragment.
        Listed methods are searched before embedded ones.
        """
        if not ref.startswith("did:") and not ref.startswith("#"):
            ref = "#" + ref
        target = self.expand_id(ref)
        for method in list(self.verification_method) + self.embedded_methods():
            if self.expand_id(method.id) == target:
                return method
        return None

    def verification_methods_for(self, name: str) -> List[VerificationMethod]:
        """
        Methods usable for a relationship, with references dereferenced.
        External references are skipped.
        """
        out = []
        for entry in self.relationship(name):
            if isinstance(entry, VerificationMethod):
                out.append(entry)
                continue
            method = self.find_verification_method(entry)
            if method is not None:
                out.append(method)
        return out

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "@context": list(self.context),
            "id": str(self.id),
        }
        if self.also_known_as:
            out["alsoKnownAs"] = list(self.also_known_as)
        if self.controller:
            out["controller"] = _one_or_many(self.controller)
        if self.verification_method:
            out["verificationMethod"] = [m.to_dict() for m in self.verification_method]
        for name in RELATIONSHIPS:
            entries = self.relationship(name)
            if entries:
                out[name] = [
                    e.to_dict() if isinstance(e, VerificationMethod) else e
                    for e in entries
                ]
        if self.service:
            out["service"] = [s.to_dict() for s in self.service]
        return out

    def canonical_form(self) -> bytes:
        return canonicalize_json(self.to_dict())

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(
        cls,
        data: Any,
        check_references: bool = True,
        allow_external: bool = False,
    ) -> "DidDocument":
        """
        Deserialize a document. Shape problems raise MalformedDocument,
        invariant violations the builder's DocumentError subclasses.
        Unknown top-level members are dropped.
        """
        if not isinstance(data, dict):
            raise MalformedDocument("DID document must be a JSON object")

        raw_id = _require_str(data, "id", "DID document")
        try:
            did = parse(raw_id)
        except InvalidSyntax as e:
            raise MalformedDocument(f"DID document id is invalid: {e}") from e
        if did.is_url:
            raise MalformedDocument("DID document id must be a bare DID")

        context = data.get("@context", [DID_CONTEXT])
        builder = DocumentBuilder(
            did, context=context if isinstance(context, list) else [context]
        )

        if "alsoKnownAs" in data:
            if not isinstance(data["alsoKnownAs"], list):
                raise MalformedDocument("alsoKnownAs must be a list")
            builder.also_known_as(*_as_tuple(data["alsoKnownAs"], "alsoKnownAs"))
        if "controller" in data:
            builder.controller(*_as_tuple(data["controller"], "controller"))

        methods = data.get("verificationMethod", [])
        if not isinstance(methods, list):
            raise MalformedDocument("verificationMethod must be a list")
        for entry in methods:
            builder.add_verification_method(VerificationMethod.from_dict(entry))

        for name in RELATIONSHIPS:
            entries = data.get(name, [])
            if not isinstance(entries, list):
                raise MalformedDocument(f"{name} must be a list")
            for entry in entries:
                if isinstance(entry, str):
                    builder.add_reference(name, entry)
                else:
                    builder.embed(name, VerificationMethod.from_dict(entry))

        services = data.get("service", [])
        if not isinstance(services, list):
            raise MalformedDocument("service must be a list")
        for entry in services:
            builder.add_service(Service.from_dict(entry))

        return builder.build(
            check_references=check_references, allow_external=allow_external
        )

    @classmethod
    def from_json(cls, text: str | bytes, **kwargs: Any) -> "DidDocument":
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise MalformedDocument(f"DID document is not valid JSON: {e}") from e
        return cls.from_dict(data, **kwargs)


def expand_id(did: Did, method_id: str) -> str:
    if method_id.startswith("#"):
        return f"{did.base}{method_id}"
    return method_id


# ─────────────────────────────────────────────
# Builder
# ─────────────────────────────────────────────

class DocumentBuilder:
    def __init__(self, did: Did | str, context: Optional[Iterable[Any]] = None):
        self._did = parse(did) if isinstance(did, str) else did
        self._context: List[Any] = list(context) if context is not None else [DID_CONTEXT]
        self._also_known_as: List[str] = []
        self._controller: List[str] = []
        self._methods: List[VerificationMethod] = []
        self._relationships: Dict[str, List[Relationship]] = {n: [] for n in RELATIONSHIPS}
        self._services: List[Service] = []

    @property
    def did(self) -> Did:
        return self._did

    def add_context(self, *entries: Any) -> "DocumentBuilder":
        for entry in entries:
            if entry not in self._context:
                self._context.append(entry)
        return self

    def also_known_as(self, *uris: str) -> "DocumentBuilder":
        self._also_known_as.extend(uris)
        return self

    def controller(self, *dids: str) -> "DocumentBuilder":
        self._controller.extend(dids)
        return self

    def add_verification_method(
        self,
        method: VerificationMethod,
        relationships: Iterable[str] = (),
    ) -> "DocumentBuilder":
        self._methods.append(method)
        for name in relationships:
            self.add_reference(name, method.id)
        return self

    def add_reference(self, relationship: str, method_id: str) -> "DocumentBuilder":
        self._entries(relationship).append(method_id)
        return self

    def embed(self, relationship: str, method: VerificationMethod) -> "DocumentBuilder":
        self._entries(relationship).append(method)
        return self

    def add_service(self, service: Service) -> "DocumentBuilder":
        self._services.append(service)
        return self

    def _entries(self, relationship: str) -> List[Relationship]:
        try:
            return self._relationships[relationship]
        except KeyError:
            raise DocumentError(f"Unknown verification relationship: {relationship}") from None

    def build(
        self,
        check_references: bool = True,
        allow_external: bool = False,
    ) -> DidDocument:
        """
        Raises DuplicateVerificationMethod for a repeated method id and
        DanglingReference for a reference no method in the document answers.
        With ``allow_external`` references into other DIDs are accepted.
        """
        known = set()
        embedded = [
            e for name in RELATIONSHIPS for e in self._relationships[name]
            if isinstance(e, VerificationMethod)
        ]
        for method in self._methods + embedded:
            method_id = expand_id(self._did, method.id)
            if method_id in known:
                raise DuplicateVerificationMethod(method_id)
            known.add(method_id)

        service_ids = set()
        for service in self._services:
            service_id = expand_id(self._did, service.id)
            if service_id in service_ids:
                raise DocumentError(f"Duplicate service id: {service_id}")
            service_ids.add(service_id)

        if check_references:
            base = str(self._did.base)
            for name in RELATIONSHIPS:
                for entry in self._relationships[name]:
                    if isinstance(entry, VerificationMethod):
                        continue
                    target = expand_id(self._did, entry)
                    if target in known:
                        continue
                    if allow_external and target.split("#", 1)[0] != base:
                        logger.debug("Accepting external reference %s in %s", target, name)
                        continue
                    raise DanglingReference(name, entry)

        return DidDocument(
            id=self._did,
            context=tuple(self._context),
            also_known_as=tuple(self._also_known_as),
            controller=tuple(self._controller),
            verification_method=tuple(self._methods),
            authentication=tuple(self._relationships[AUTHENTICATION]),
            assertion_method=tuple(self._relationships[ASSERTION_METHOD]),
            key_agreement=tuple(self._relationships[KEY_AGREEMENT]),
            capability_invocation=tuple(self._relationships[CAPABILITY_INVOCATION]),
            capability_delegation=tuple(self._relationships[CAPABILITY_DELEGATION]),
            service=tuple(self._services),
        )
