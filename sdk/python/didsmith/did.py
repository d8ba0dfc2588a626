"""
DID and DID URL parsing (W3C DID Core §3).

Percent-escapes are checked for well-formedness and otherwise kept verbatim,
so ``str(parse(s)) == s`` for every accepted ``s``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

from .errors import InvalidSyntax

SCHEME = "did"

_PCT = r"%[0-9A-Fa-f]{2}"
_IDCHAR = rf"(?:[A-Za-z0-9._-]|{_PCT})"
_PCHAR = rf"(?:[A-Za-z0-9._~!$&'()*+,;=:@-]|{_PCT})"

METHOD_NAME_RE = re.compile(r"[a-z0-9]+")
METHOD_SPECIFIC_ID_RE = re.compile(rf"(?:{_IDCHAR}*:)*{_IDCHAR}+")
PATH_RE = re.compile(rf"(?:/{_PCHAR}*)*")
QUERY_RE = re.compile(rf"(?:{_PCHAR}|[/?])*")


@dataclass(frozen=True)
class Did:
    method: str
    method_specific_id: str
    path: Optional[str] = None
    query: Optional[str] = None
    fragment: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "Did":
        return parse(text)

    @property
    def scheme(self) -> str:
        return SCHEME

    @property
    def base(self) -> "Did":
        """The bare DID, without path, query or fragment."""
        if not self.is_url:
            return self
        return Did(self.method, self.method_specific_id)

    @property
    def is_url(self) -> bool:
        return self.path is not None or self.query is not None or self.fragment is not None

    def with_fragment(self, fragment: Optional[str]) -> "Did":
        if fragment is not None and not QUERY_RE.fullmatch(fragment):
            raise InvalidSyntax(f"Invalid DID fragment: {fragment!r}")
        return replace(self, fragment=fragment)

    def __str__(self) -> str:
        out = f"{SCHEME}:{self.method}:{self.method_specific_id}"
        if self.path is not None:
            out += self.path
        if self.query is not None:
            out += "?" + self.query
        if self.fragment is not None:
            out += "#" + self.fragment
        return out


def parse(text: str) -> Did:
    """
    Parse a DID or DID URL. Raises InvalidSyntax on any grammar violation.
    """
    if not isinstance(text, str):
        raise InvalidSyntax("DID must be a string")
    if not text.startswith(SCHEME + ":"):
        raise InvalidSyntax("DID must start with 'did:'")

    rest = text[len(SCHEME) + 1:]
    method, sep, rest = rest.partition(":")
    if not sep:
        raise InvalidSyntax("DID is missing the method-specific id")
    if not METHOD_NAME_RE.fullmatch(method):
        raise InvalidSyntax(f"Invalid DID method name: {method!r}")

    fragment = None
    if "#" in rest:
        rest, fragment = rest.split("#", 1)
        if not QUERY_RE.fullmatch(fragment):
            raise InvalidSyntax("Invalid DID fragment")

    query = None
    if "?" in rest:
        rest, query = rest.split("?", 1)
        if not QUERY_RE.fullmatch(query):
            raise InvalidSyntax("Invalid DID query")

    path = None
    if "/" in rest:
        slash = rest.index("/")
        rest, path = rest[:slash], rest[slash:]
        if not PATH_RE.fullmatch(path):
            raise InvalidSyntax("Invalid DID path")

    if not rest:
        raise InvalidSyntax("DID method-specific id is empty")
    if not METHOD_SPECIFIC_ID_RE.fullmatch(rest):
        raise InvalidSyntax(f"Invalid DID method-specific id: {rest!r}")

    return Did(method, rest, path, query, fragment)


def is_valid(text: str) -> bool:
    try:
        parse(text)
    except InvalidSyntax:
        return False
    return True
