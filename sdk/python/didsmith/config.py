"""
Options for document creation and did:web resolution.

``WebConfig.from_env()`` reads DIDSMITH_WEB_* environment variables; unset
variables keep the defaults below.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .document import DID_CONTEXT
from .transport import DEFAULT_HEADERS


class PublicKeyFormat(str, Enum):
    MULTIKEY = "Multikey"
    ED25519_VERIFICATION_KEY_2020 = "Ed25519VerificationKey2020"
    X25519_KEY_AGREEMENT_KEY_2020 = "X25519KeyAgreementKey2020"
    JSON_WEB_KEY_2020 = "JsonWebKey2020"

    @property
    def context(self) -> str:
        return _FORMAT_CONTEXTS[self]


_FORMAT_CONTEXTS = {
    PublicKeyFormat.MULTIKEY: "https://w3id.org/security/multikey/v1",
    PublicKeyFormat.ED25519_VERIFICATION_KEY_2020: "https://w3id.org/security/suites/ed25519-2020/v1",
    PublicKeyFormat.X25519_KEY_AGREEMENT_KEY_2020: "https://w3id.org/security/suites/x25519-2020/v1",
    PublicKeyFormat.JSON_WEB_KEY_2020: "https://w3id.org/security/suites/jws-2020/v1",
}


@dataclass(frozen=True)
class CreateOptions:
    public_key_format: PublicKeyFormat = PublicKeyFormat.MULTIKEY
    # put a derived X25519 method in keyAgreement instead of the Ed25519 key
    enable_encryption_key_derivation: bool = False
    default_context: str = DID_CONTEXT


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class WebConfig:
    scheme: str = "https"
    timeout: float = 10.0
    verify_ssl: bool = True
    validate_references: bool = True
    # fetched documents may point at methods owned by other DIDs
    allow_external_references: bool = True
    headers: dict = field(default_factory=lambda: dict(DEFAULT_HEADERS))

    @classmethod
    def from_env(cls, prefix: str = "DIDSMITH_WEB_") -> "WebConfig":
        defaults = cls()
        timeout: Optional[str] = os.getenv(prefix + "TIMEOUT")
        try:
            seconds = float(timeout) if timeout else defaults.timeout
        except ValueError:
            raise ValueError(
                f"{prefix}TIMEOUT must be a number of seconds, got {timeout!r}"
            ) from None
        return cls(
            scheme=os.getenv(prefix + "SCHEME", defaults.scheme),
            timeout=seconds,
            verify_ssl=_env_bool(prefix + "VERIFY_SSL", defaults.verify_ssl),
            validate_references=_env_bool(
                prefix + "VALIDATE_REFERENCES", defaults.validate_references
            ),
            allow_external_references=_env_bool(
                prefix + "ALLOW_EXTERNAL_REFERENCES", defaults.allow_external_references
            ),
        )
