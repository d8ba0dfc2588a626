"""
Resolution engine: parse, dispatch by method name, optionally dereference.

Resolvers are registered once, when the engine is constructed. The engine
neither caches nor retries; wrap it if you need either.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .config import CreateOptions, WebConfig
from .did import Did, parse
from .document import DidDocument, VerificationMethod
from .errors import DidSmithError, InvalidSyntax, UnsupportedMethod
from .methods import JwkResolver, KeyResolver, MethodResolver, WebResolver
from .transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

DID_LD_JSON = "application/did+ld+json"


@dataclass(frozen=True)
class ResolutionResult:
    """
    Outcome of ``ResolutionEngine.resolve_result``: a document, or the error
    that stopped resolution, with W3C DID Resolution style metadata.
    """

    document: Optional[DidDocument] = None
    error: Optional[DidSmithError] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.document is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "didDocument": self.document.to_dict() if self.document else None,
            "didResolutionMetadata": dict(self.metadata),
            "didDocumentMetadata": {},
        }


class ResolutionEngine:
    def __init__(
        self,
        resolvers: Union[Mapping[str, MethodResolver], Iterable[MethodResolver]],
    ):
        registry: Dict[str, MethodResolver] = {}
        items = resolvers.items() if isinstance(resolvers, Mapping) else (
            (r.method, r) for r in resolvers
        )
        for method, resolver in items:
            if method in registry:
                raise ValueError(f"Resolver already registered for did:{method}")
            registry[method] = resolver
        self._resolvers = MappingProxyType(registry)

    @property
    def methods(self) -> Mapping[str, MethodResolver]:
        return self._resolvers

    def _resolver_for(self, did: Did) -> MethodResolver:
        try:
            return self._resolvers[did.method]
        except KeyError:
            raise UnsupportedMethod(f"No resolver registered for did:{did.method}") from None

    def is_resolvable(self, text: str) -> bool:
        try:
            did = parse(text)
        except InvalidSyntax:
            return False
        return did.method in self._resolvers

    def resolve(self, text: str | Did, timeout: Optional[float] = None) -> DidDocument:
        did = parse(text) if isinstance(text, str) else text
        resolver = self._resolver_for(did)
        logger.debug("Resolving %s with %s", did.base, type(resolver).__name__)
        return resolver.resolve(did.base, timeout=timeout)

    def dereference(
        self, text: str | Did, timeout: Optional[float] = None
    ) -> VerificationMethod:
        did = parse(text) if isinstance(text, str) else text
        if did.fragment is None:
            raise InvalidSyntax(f"DID URL has no fragment to dereference: {did}")
        resolver = self._resolver_for(did)
        return resolver.dereference(did, did.fragment, timeout=timeout)

    def resolve_result(
        self, text: str | Did, timeout: Optional[float] = None
    ) -> ResolutionResult:
        try:
            document = self.resolve(text, timeout=timeout)
        except DidSmithError as e:
            logger.debug("Resolution of %s failed: %s", text, e.kind)
            return ResolutionResult(
                error=e, metadata={"error": e.kind, "errorMessage": str(e)}
            )
        return ResolutionResult(document=document, metadata={"contentType": DID_LD_JSON})


def default_engine(
    transport: Optional[Transport] = None,
    config: Optional[WebConfig] = None,
    options: CreateOptions = CreateOptions(),
) -> ResolutionEngine:
    """
    Engine with did:key, did:jwk and did:web registered. Without a transport
    an ``HttpxTransport`` is built from ``config``.
    """
    config = config or WebConfig()
    if transport is None:
        transport = HttpxTransport(
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
            headers=config.headers,
        )
    return ResolutionEngine([
        KeyResolver(options),
        JwkResolver(),
        WebResolver(transport, config),
    ])
