import pytest

from didsmith import (
    Action,
    DocumentBuilder,
    KeyPair,
    Patch,
    PublicKeyEntry,
    Service,
    VerificationMethod,
    apply_patches,
    create_web_document,
)
from didsmith.errors import DanglingReference, DocumentError, DuplicateVerificationMethod, MalformedDocument
from didsmith.patch import add_public_keys, add_services, remove_public_keys, remove_services

DID = "did:web:example.com"


@pytest.fixture
def document():
    return create_web_document(
        DID,
        KeyPair.generate(),
        services=[Service("#hub", "LinkedDomains", "https://example.com/hub")],
    )


def entry(fragment, *purposes):
    method = VerificationMethod(
        f"{DID}#{fragment}", "Multikey", DID, KeyPair.generate().to_multibase()
    )
    return PublicKeyEntry(method, purposes)


def test_add_public_keys(document):
    new = entry("key-1", "authentication", "keyAgreement")
    patched = apply_patches(document, [add_public_keys(new)])
    assert patched.find_verification_method("key-1") == new.method
    assert new.method.id in patched.authentication
    assert patched.key_agreement == (new.method.id,)
    # input untouched
    assert document.find_verification_method("key-1") is None


def test_add_duplicate_key(document):
    with pytest.raises(DuplicateVerificationMethod):
        apply_patches(document, [add_public_keys(entry("key-0"))])


def test_remove_public_keys_drops_references(document):
    patched = apply_patches(document, [remove_public_keys("#key-0")])
    assert patched.verification_method == ()
    assert patched.authentication == ()
    assert patched.assertion_method == ()


def test_remove_embedded_key():
    agreement = VerificationMethod(f"{DID}#agree", "Multikey", DID, KeyPair.generate().to_multibase())
    base = DocumentBuilder(DID).embed("keyAgreement", agreement).build()
    patched = apply_patches(base, [remove_public_keys(agreement.id)])
    assert patched.key_agreement == ()
    assert patched.find_verification_method("agree") is None


def test_services(document):
    extra = Service("#inbox", "Inbox", "https://example.com/inbox")
    patched = apply_patches(document, [add_services(extra), remove_services("#hub")])
    assert patched.service == (extra,)


def test_duplicate_service(document):
    with pytest.raises(DocumentError):
        apply_patches(document, [add_services(Service("#hub", "Other", "https://x.example"))])


def test_replace_ends_processing(document):
    key = entry("key-9", "assertionMethod")
    replace = Patch(Action.REPLACE, public_keys=(key,), services=())
    patched = apply_patches(document, [replace, add_services(Service("#late", "X", "https://late.example"))])
    assert patched.verification_method == (key.method,)
    assert patched.assertion_method == (key.method.id,)
    assert patched.authentication == ()
    assert patched.service == ()


def test_replace_keeps_unspecified_parts(document):
    patched = apply_patches(document, [Patch(Action.REPLACE, services=())])
    assert patched.verification_method == document.verification_method
    assert patched.service == ()


def test_removing_a_key_removes_its_purposes(document):
    added = add_public_keys(entry("key-1", "authentication"))
    patched = apply_patches(document, [added, remove_public_keys("#key-1")])
    assert patched.authentication == document.authentication


def test_patched_document_is_validated():
    base = (
        DocumentBuilder(DID)
        .add_reference("authentication", "#gone")
        .build(check_references=False)
    )
    with pytest.raises(DanglingReference):
        apply_patches(base, [])


def test_unknown_purpose(document):
    with pytest.raises(DocumentError):
        apply_patches(document, [add_public_keys(entry("key-1", "signing"))])


def test_patch_dict_roundtrip():
    key = entry("key-1", "authentication")
    service = Service("#hub", "LinkedDomains", "https://example.com/hub")
    for patch in (
        add_public_keys(key),
        remove_public_keys("#key-1"),
        add_services(service),
        remove_services("#hub"),
        Patch(Action.REPLACE, public_keys=(key,), services=(service,)),
    ):
        assert Patch.from_dict(patch.to_dict()) == patch


def test_replace_nests_document():
    data = Patch(Action.REPLACE, services=()).to_dict()
    assert data == {"action": "replace", "document": {"services": []}}


@pytest.mark.parametrize(
    "data",
    [
        "replace",
        {"action": "rotate"},
        {},
        {"action": "replace", "document": []},
        {"action": "add-public-keys", "publicKeys": {}},
        {"action": "add-public-keys", "publicKeys": [{"id": "#k", "purposes": ["signing"]}]},
        {"action": "remove-services", "ids": "#hub"},
    ],
)
def test_malformed_patches(data):
    with pytest.raises(MalformedDocument):
        Patch.from_dict(data)


def test_external_references_survive():
    base = (
        DocumentBuilder(DID)
        .add_reference("authentication", "did:web:other.example#key-0")
        .build(allow_external=True)
    )
    patched = apply_patches(base, [add_services(Service("#s", "X", "https://s.example"))])
    assert patched.authentication == ("did:web:other.example#key-0",)
