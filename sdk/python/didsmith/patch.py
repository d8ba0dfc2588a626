"""
DID document patches.

``apply_patches`` never touches its input: it replays the current document
plus the patches through ``DocumentBuilder`` and returns a new document, so
every patched result satisfies the same invariants as a freshly built one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .document import (
    RELATIONSHIPS,
    DidDocument,
    DocumentBuilder,
    Relationship,
    Service,
    VerificationMethod,
    expand_id,
)
from .errors import DocumentError, MalformedDocument


class Action(str, Enum):
    REPLACE = "replace"
    ADD_PUBLIC_KEYS = "add-public-keys"
    REMOVE_PUBLIC_KEYS = "remove-public-keys"
    ADD_SERVICES = "add-services"
    REMOVE_SERVICES = "remove-services"


@dataclass(frozen=True)
class PublicKeyEntry:
    method: VerificationMethod
    purposes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out = self.method.to_dict()
        if self.purposes:
            out["purposes"] = list(self.purposes)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "PublicKeyEntry":
        if not isinstance(data, dict):
            raise MalformedDocument("Public key entry must be an object")
        purposes = data.get("purposes", [])
        if not isinstance(purposes, list) or any(p not in RELATIONSHIPS for p in purposes):
            raise MalformedDocument(f"Invalid purposes: {purposes!r}")
        method = {k: v for k, v in data.items() if k != "purposes"}
        return cls(VerificationMethod.from_dict(method), tuple(purposes))


@dataclass(frozen=True)
class Patch:
    action: Action
    public_keys: Optional[Tuple[PublicKeyEntry, ...]] = None
    services: Optional[Tuple[Service, ...]] = None
    ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"action": self.action.value}
        if self.action is Action.REPLACE:
            document: Dict[str, Any] = {}
            if self.public_keys is not None:
                document["publicKeys"] = [k.to_dict() for k in self.public_keys]
            if self.services is not None:
                document["services"] = [s.to_dict() for s in self.services]
            out["document"] = document
            return out
        if self.public_keys is not None:
            out["publicKeys"] = [k.to_dict() for k in self.public_keys]
        if self.services is not None:
            out["services"] = [s.to_dict() for s in self.services]
        if self.ids:
            out["ids"] = list(self.ids)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "Patch":
        if not isinstance(data, dict):
            raise MalformedDocument("Patch must be an object")
        try:
            action = Action(data.get("action"))
        except ValueError:
            raise MalformedDocument(f"Unknown patch action: {data.get('action')!r}") from None

        body = data.get("document", {}) if action is Action.REPLACE else data
        if not isinstance(body, dict):
            raise MalformedDocument("Replace patch document must be an object")

        for key in ("publicKeys", "services"):
            if key in body and not isinstance(body[key], list):
                raise MalformedDocument(f"Patch {key} must be a list")

        public_keys = None
        if "publicKeys" in body:
            public_keys = tuple(PublicKeyEntry.from_dict(k) for k in body["publicKeys"])
        services = None
        if "services" in body:
            services = tuple(Service.from_dict(s) for s in body["services"])
        ids = data.get("ids", [])
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise MalformedDocument("Patch ids must be a list of strings")
        return cls(action, public_keys, services, tuple(ids))


def add_public_keys(*entries: PublicKeyEntry) -> Patch:
    return Patch(Action.ADD_PUBLIC_KEYS, public_keys=tuple(entries))


def remove_public_keys(*ids: str) -> Patch:
    return Patch(Action.REMOVE_PUBLIC_KEYS, ids=tuple(ids))


def add_services(*services: Service) -> Patch:
    return Patch(Action.ADD_SERVICES, services=tuple(services))


def remove_services(*ids: str) -> Patch:
    return Patch(Action.REMOVE_SERVICES, ids=tuple(ids))


def _add_purposes(relationships: Dict[str, List[Relationship]], entry: PublicKeyEntry) -> None:
    for purpose in entry.purposes:
        if purpose not in relationships:
            raise DocumentError(f"Unknown verification relationship: {purpose}")
        relationships[purpose].append(entry.method.id)


def apply_patches(document: DidDocument, patches: Iterable[Patch]) -> DidDocument:
    """
    Apply patches in order. Only the first replace patch is honoured; it ends
    processing of the list.
    """
    did = document.id
    methods: List[VerificationMethod] = list(document.verification_method)
    relationships: Dict[str, List[Relationship]] = {
        name: list(document.relationship(name)) for name in RELATIONSHIPS
    }
    services: List[Service] = list(document.service)

    for patch in patches:
        if patch.action is Action.REPLACE:
            if patch.public_keys is not None:
                methods = [k.method for k in patch.public_keys]
                relationships = {name: [] for name in RELATIONSHIPS}
                for entry in patch.public_keys:
                    _add_purposes(relationships, entry)
            if patch.services is not None:
                services = list(patch.services)
            break

        if patch.action is Action.ADD_PUBLIC_KEYS:
            for entry in patch.public_keys or ():
                methods.append(entry.method)
                _add_purposes(relationships, entry)

        elif patch.action is Action.REMOVE_PUBLIC_KEYS:
            removed = {expand_id(did, i) for i in patch.ids}
            methods = [m for m in methods if expand_id(did, m.id) not in removed]
            for name in RELATIONSHIPS:
                relationships[name] = [
                    e for e in relationships[name]
                    if expand_id(did, e.id if isinstance(e, VerificationMethod) else e)
                    not in removed
                ]

        elif patch.action is Action.ADD_SERVICES:
            services.extend(patch.services or ())

        elif patch.action is Action.REMOVE_SERVICES:
            removed = {expand_id(did, i) for i in patch.ids}
            services = [s for s in services if expand_id(did, s.id) not in removed]

    builder = DocumentBuilder(did, context=document.context)
    builder.also_known_as(*document.also_known_as)
    builder.controller(*document.controller)
    for method in methods:
        builder.add_verification_method(method)
    for name in RELATIONSHIPS:
        for entry in relationships[name]:
            if isinstance(entry, VerificationMethod):
                builder.embed(name, entry)
            else:
                builder.add_reference(name, entry)
    for service in services:
        builder.add_service(service)
    return builder.build(allow_external=True)
