import json

import pytest

from didsmith import (
    DidDocument,
    DocumentBuilder,
    KeyPair,
    Service,
    VerificationMethod,
)
from didsmith.errors import (
    DanglingReference,
    DocumentError,
    DuplicateVerificationMethod,
    MalformedDocument,
)

DID = "did:example:123"


def method(fragment="key-1", pair=None, did=DID):
    pair = pair or KeyPair.generate()
    return VerificationMethod(
        id=f"{did}#{fragment}",
        type="Multikey",
        controller=did,
        public_key_multibase=pair.to_multibase(),
    )


def sample_document():
    pair = KeyPair.from_private_bytes("Ed25519", b"\x07" * 32)
    return (
        DocumentBuilder(DID)
        .add_context("https://w3id.org/security/multikey/v1")
        .also_known_as("https://example.com/alice")
        .controller(DID)
        .add_verification_method(method("key-1", pair), ["authentication", "assertionMethod"])
        .add_service(Service("#hub", "LinkedDomains", "https://example.com"))
        .build()
    )


def test_build_basic_document():
    doc = sample_document()
    assert str(doc.id) == DID
    assert len(doc.verification_method) == 1
    assert doc.authentication == (f"{DID}#key-1",)
    assert doc.assertion_method == (f"{DID}#key-1",)
    assert doc.key_agreement == ()


def test_duplicate_verification_method():
    builder = DocumentBuilder(DID)
    builder.add_verification_method(method("key-1"))
    builder.add_verification_method(method("key-1"))
    with pytest.raises(DuplicateVerificationMethod) as exc:
        builder.build()
    assert exc.value.method_id == f"{DID}#key-1"


def test_duplicate_detects_relative_ids():
    relative = VerificationMethod("#key-1", "Multikey", DID, KeyPair.generate().to_multibase())
    builder = DocumentBuilder(DID)
    builder.add_verification_method(method("key-1"))
    builder.add_verification_method(relative)
    with pytest.raises(DuplicateVerificationMethod):
        builder.build()


def test_duplicate_between_listed_and_embedded():
    builder = DocumentBuilder(DID)
    builder.add_verification_method(method("key-1"))
    builder.embed("keyAgreement", method("key-1"))
    with pytest.raises(DuplicateVerificationMethod):
        builder.build()


def test_dangling_reference():
    builder = DocumentBuilder(DID)
    builder.add_verification_method(method("key-1"))
    builder.add_reference("authentication", f"{DID}#key-2")
    with pytest.raises(DanglingReference) as exc:
        builder.build()
    assert exc.value.relationship == "authentication"


def test_relative_reference_resolves():
    doc = (
        DocumentBuilder(DID)
        .add_verification_method(method("key-1"))
        .add_reference("authentication", "#key-1")
        .build()
    )
    assert doc.verification_methods_for("authentication") == [doc.verification_method[0]]


def test_external_reference_policy():
    builder = (
        DocumentBuilder(DID)
        .add_verification_method(method("key-1"))
        .add_reference("authentication", "did:example:other#key-1")
    )
    with pytest.raises(DanglingReference):
        builder.build()
    assert builder.build(allow_external=True).authentication == ("did:example:other#key-1",)
    assert builder.build(check_references=False) is not None


def test_external_flag_does_not_hide_local_dangling():
    builder = DocumentBuilder(DID).add_reference("authentication", f"{DID}#missing")
    with pytest.raises(DanglingReference):
        builder.build(allow_external=True)


def test_unknown_relationship():
    with pytest.raises(DocumentError):
        DocumentBuilder(DID).add_reference("signing", "#key-1")


def test_duplicate_service():
    builder = DocumentBuilder(DID)
    builder.add_service(Service("#hub", "LinkedDomains", "https://a.example"))
    builder.add_service(Service(f"{DID}#hub", "LinkedDomains", "https://b.example"))
    with pytest.raises(DocumentError):
        builder.build()


def test_canonical_form_is_stable():
    first = sample_document()
    second = sample_document()
    assert first.canonical_form() == second.canonical_form()
    assert first.canonical_form().startswith(b'{"@context":')
    # canonical form has sorted keys and no whitespace
    assert b": " not in first.canonical_form()


def test_dict_roundtrip_is_byte_equal():
    doc = sample_document()
    restored = DidDocument.from_dict(json.loads(doc.to_json()))
    assert restored == doc
    assert restored.canonical_form() == doc.canonical_form()


def test_service_single_or_list():
    single = Service("#hub", "LinkedDomains", "https://example.com")
    assert single.to_dict() == {
        "id": "#hub",
        "type": "LinkedDomains",
        "serviceEndpoint": "https://example.com",
    }
    many = Service("#hub", ("A", "B"), ("https://a.example", {"uri": "https://b.example"}))
    assert many.to_dict()["type"] == ["A", "B"]
    assert Service.from_dict(many.to_dict()) == many
    assert Service.from_dict(single.to_dict()) == single


def test_service_requires_endpoint():
    with pytest.raises(MalformedDocument):
        Service.from_dict({"id": "#hub", "type": "LinkedDomains", "serviceEndpoint": []})


def test_find_verification_method():
    doc = sample_document()
    expected = doc.verification_method[0]
    assert doc.find_verification_method(f"{DID}#key-1") == expected
    assert doc.find_verification_method("#key-1") == expected
    assert doc.find_verification_method("key-1") == expected
    assert doc.find_verification_method("#key-9") is None


def test_embedded_methods_are_found():
    embedded = method("agree")
    doc = DocumentBuilder(DID).embed("keyAgreement", embedded).build()
    assert doc.find_verification_method("#agree") == embedded
    assert doc.to_dict()["keyAgreement"] == [embedded.to_dict()]


def test_public_key_decodes():
    pair = KeyPair.generate()
    assert method(pair=pair).public_key() == pair
    jwk_method = VerificationMethod(f"{DID}#jwk", "JsonWebKey2020", DID, public_key_jwk=pair.to_jwk())
    assert jwk_method.public_key() == pair


@pytest.mark.parametrize(
    "data",
    [
        [],
        {},
        {"id": "not-a-did"},
        {"id": "did:example:123#frag"},
        {"id": DID, "verificationMethod": {}},
        {"id": DID, "verificationMethod": [{"id": f"{DID}#k"}]},
        {"id": DID, "authentication": "#k"},
        {"id": DID, "authentication": [12]},
        {"id": DID, "controller": [1]},
        {"id": DID, "alsoKnownAs": "https://example.com"},
        {"id": DID, "service": [{"id": "#s", "type": "X"}]},
    ],
)
def test_malformed_documents(data):
    with pytest.raises(MalformedDocument):
        DidDocument.from_dict(data)


def test_from_json_rejects_garbage():
    with pytest.raises(MalformedDocument):
        DidDocument.from_json(b"{not json")


def test_from_dict_reports_invariants():
    vm = method("key-1").to_dict()
    with pytest.raises(DuplicateVerificationMethod):
        DidDocument.from_dict({"id": DID, "verificationMethod": [vm, vm]})
    with pytest.raises(DanglingReference):
        DidDocument.from_dict({"id": DID, "authentication": ["#nope"]})


def test_document_is_immutable():
    doc = sample_document()
    with pytest.raises(AttributeError):
        doc.service = ()


def test_document_with_jwk_is_hashable():
    jwk = KeyPair.generate().to_jwk()
    vm = VerificationMethod(f"{DID}#jwk", "JsonWebKey2020", DID, public_key_jwk=jwk)
    doc = (
        DocumentBuilder(DID)
        .add_verification_method(vm, ["authentication"])
        .add_service(Service("#hub", "X", {"uri": "https://example.com"}))
        .build()
    )
    assert hash(doc) == hash(DidDocument.from_json(doc.to_json()))
    assert len({doc, DidDocument.from_json(doc.to_json())}) == 1


def test_verification_method_copies_jwk():
    jwk = KeyPair.generate().to_jwk()
    vm = VerificationMethod(f"{DID}#jwk", "JsonWebKey2020", DID, public_key_jwk=jwk)
    jwk["x"] = "tampered"
    assert vm.public_key_jwk["x"] != "tampered"
    with pytest.raises(TypeError):
        vm.public_key_jwk["x"] = "tampered"


def test_from_json_rejects_deep_nesting():
    with pytest.raises(MalformedDocument):
        DidDocument.from_json(b"[" * 200000)
