import pytest

from didsmith import Did, is_valid, parse
from didsmith.errors import InvalidSyntax

VALID = [
    "did:example:123456789abcdefghi",
    "did:key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK",
    "did:web:example.com%3A8080:user:alice",
    "did:example:a:b:c",
    "did:example:ABC%2fdef",
    "did:example:abc/path/to/resource",
    "did:example:abc/",
    "did:example:abc?",
    "did:example:abc#",
    "did:example:abc?service=files&relativeRef=/a/b",
    "did:example:abc/path?versionId=1#key-1",
    "did:example:abc#z6Mk:with:colons",
    "did:example:a.b-c_d",
    "did:0x1:abc",
]

INVALID = [
    "",
    "example:abc",
    "DID:example:abc",
    "did:",
    "did:example",
    "did:example:",
    "did::abc",
    "did:Example:abc",
    "did:ex-ample:abc",
    "did:example:abc:",
    "did:example::",
    "did:example:a b",
    "did:example:ab%zz",
    "did:example:ab%2",
    "did:example:abc#frag#more",
    "did:example:abc?q=%g1",
    "did:example:abc/pa th",
    "did:example:/path",
]


@pytest.mark.parametrize("text", VALID)
def test_roundtrip(text):
    did = parse(text)
    assert str(did) == text
    assert parse(str(did)) == did


@pytest.mark.parametrize("text", INVALID)
def test_invalid(text):
    with pytest.raises(InvalidSyntax):
        parse(text)
    assert is_valid(text) is False


def test_missing_prefix_is_invalid_syntax():
    for text in ("key:z6Mk", "urn:uuid:1234", "http://example.com"):
        with pytest.raises(InvalidSyntax):
            parse(text)


def test_fields():
    did = parse("did:example:abc:def/p/q?x=1#frag")
    assert did.scheme == "did"
    assert did.method == "example"
    assert did.method_specific_id == "abc:def"
    assert did.path == "/p/q"
    assert did.query == "x=1"
    assert did.fragment == "frag"
    assert did.is_url


def test_empty_components_are_preserved():
    assert parse("did:example:abc?").query == ""
    assert parse("did:example:abc").query is None
    assert parse("did:example:abc#").fragment == ""


def test_percent_encoding_not_decoded():
    did = parse("did:web:example.com%3A8080")
    assert did.method_specific_id == "example.com%3A8080"


def test_base_and_with_fragment():
    did = parse("did:example:abc/path?x=1#key-1")
    assert str(did.base) == "did:example:abc"
    assert not did.base.is_url
    assert str(did.base.with_fragment("key-2")) == "did:example:abc#key-2"
    with pytest.raises(InvalidSyntax):
        did.with_fragment("bad#fragment")


def test_did_is_immutable():
    did = Did.parse("did:example:abc")
    with pytest.raises(AttributeError):
        did.method = "other"


def test_non_string_input():
    with pytest.raises(InvalidSyntax):
        parse(None)
