import base64
import io

import pytest
import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from minbft.keystore import (
    AuthenticationRole,
    EcdsaKeySpec,
    KeyStoreError,
    SgxEcdsaKeySpec,
    TestnetKeyOpts,
    generate_testnet_keys,
    get_key_spec,
    load_simple_key_store,
)


class FakeEnclave:
    def __init__(self, enclave_file, sealed_key):
        self.enclave_file = enclave_file
        if sealed_key:
            self._key = serialization.load_der_private_key(sealed_key, password=None)
        else:
            self._key = ec.generate_private_key(ec.SECP256R1())
        self.destroyed = False

    def sealed_key(self):
        return self._key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def public_key(self):
        return self._key.public_key()

    def destroy(self):
        self.destroyed = True


def pub_der(key):
    return key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def make_keystore_text(replicas=3, clients=1):
    out = io.StringIO()
    opts = TestnetKeyOpts(
        number_replicas=replicas, number_clients=clients, usig_enclave_factory=FakeEnclave
    )
    generate_testnet_keys(out, opts)
    return out.getvalue()


@pytest.fixture(scope="module")
def keystore_text():
    return make_keystore_text()


def test_get_key_spec_names():
    assert get_key_spec("ECDSA").name == "ECDSA"
    assert get_key_spec("SGX_ECDSA").name == "SGX_ECDSA"
    assert isinstance(get_key_spec("SGX_ECDSA"), SgxEcdsaKeySpec)


def test_get_key_spec_unknown():
    with pytest.raises(KeyStoreError, match="unknown KeySpec: RSA"):
        get_key_spec("RSA")


@pytest.mark.parametrize(
    "param, curve",
    [(224, "secp224r1"), (256, "secp256r1"), (384, "secp384r1"),
     (521, "secp521r1"), (0, "secp256r1")],
)
def test_ecdsa_generate_and_parse(param, curve):
    spec = EcdsaKeySpec()
    private_text, public_text = spec.generate_key_pair(param)
    private_key = spec.parse_private_key(private_text)
    public_key = spec.parse_public_key(public_text)
    assert private_key.curve.name == curve
    assert pub_der(private_key.public_key()) == pub_der(public_key)


def test_ecdsa_bad_base64():
    spec = EcdsaKeySpec()
    with pytest.raises(KeyStoreError, match="base64 decode error"):
        spec.parse_private_key("not base64!")
    with pytest.raises(KeyStoreError, match="base64 decode error"):
        spec.parse_public_key("not base64!")


def test_ecdsa_rejects_non_ec_public_key():
    key = ed25519.Ed25519PrivateKey.generate().public_key()
    text = base64.b64encode(pub_der(key)).decode()
    with pytest.raises(KeyStoreError, match="expect ECDSA"):
        EcdsaKeySpec().parse_public_key(text)


def test_ecdsa_rejects_garbage_der():
    text = base64.b64encode(b"garbage").decode()
    with pytest.raises(KeyStoreError, match="parse error"):
        EcdsaKeySpec().parse_private_key(text)


def test_sgx_parse_private_key_decodes_bytes():
    sealed = b"\x00\x01sealed"
    text = base64.b64encode(sealed).decode()
    assert SgxEcdsaKeySpec().parse_private_key(text) == sealed


def test_sgx_generate_without_enclave_fails():
    with pytest.raises(KeyStoreError, match="no USIG enclave"):
        SgxEcdsaKeySpec().generate_key_pair(0)


def test_sgx_generate_with_enclave():
    spec = SgxEcdsaKeySpec("enclave.so", FakeEnclave)
    private_text, public_text = spec.generate_key_pair(0)
    sealed = spec.parse_private_key(private_text)
    restored = FakeEnclave("enclave.so", sealed)
    assert pub_der(restored.public_key()) == pub_der(spec.parse_public_key(public_text))


def test_generated_yaml_layout(keystore_text):
    doc = yaml.safe_load(keystore_text)
    assert list(doc) == ["replica", "usig", "client"]
    assert doc["replica"]["keyspec"] == "ECDSA"
    assert doc["usig"]["keyspec"] == "SGX_ECDSA"
    assert [k["id"] for k in doc["replica"]["keys"]] == [0, 1, 2]
    assert [k["id"] for k in doc["client"]["keys"]] == [0]
    assert list(doc["usig"]["keys"][0]) == ["id", "privateKey", "publicKey"]


def test_generate_into_binary_stream():
    out = io.BytesIO()
    generate_testnet_keys(
        out, TestnetKeyOpts(number_replicas=1, number_clients=1,
                            usig_enclave_factory=FakeEnclave)
    )
    doc = yaml.safe_load(out.getvalue())
    assert len(doc["usig"]["keys"]) == 1


def test_generate_without_enclave_fails():
    with pytest.raises(KeyStoreError):
        generate_testnet_keys(io.StringIO(), TestnetKeyOpts())


def test_load_replica_store(keystore_text):
    roles = [AuthenticationRole.REPLICA, AuthenticationRole.USIG]
    store = load_simple_key_store(io.StringIO(keystore_text), roles, 1)
    assert set(store.node_roles()) == set(AuthenticationRole)
    assert store.key_spec(AuthenticationRole.REPLICA) == "ECDSA"
    assert store.key_spec(AuthenticationRole.USIG) == "SGX_ECDSA"
    assert store.node_key_spec(AuthenticationRole.USIG) == "SGX_ECDSA"
    assert store.key_spec(AuthenticationRole.CLIENT) == ""
    assert store.private_key(AuthenticationRole.CLIENT) is None

    private_key = store.private_key(AuthenticationRole.REPLICA)
    assert pub_der(private_key.public_key()) == pub_der(
        store.public_key(AuthenticationRole.REPLICA))
    assert pub_der(store.public_key(AuthenticationRole.REPLICA)) == pub_der(
        store.node_public_key(AuthenticationRole.REPLICA, 1))

    sealed = store.private_key(AuthenticationRole.USIG)
    restored = FakeEnclave("", sealed)
    assert pub_der(restored.public_key()) == pub_der(
        store.node_public_key(AuthenticationRole.USIG, 1))


def test_load_client_store(keystore_text):
    store = load_simple_key_store(
        io.StringIO(keystore_text), [AuthenticationRole.CLIENT], 0)
    assert store.key_spec(AuthenticationRole.CLIENT) == "ECDSA"
    assert store.node_public_key(AuthenticationRole.REPLICA, 2) is not None
    assert store.node_public_key(AuthenticationRole.REPLICA, 7) is None


def test_missing_own_key(keystore_text):
    with pytest.raises(KeyStoreError, match="missing key"):
        load_simple_key_store(io.StringIO(keystore_text), [AuthenticationRole.REPLICA], 5)


def test_role_without_key_set():
    text = yaml.safe_dump({"client": make_keystore_text(1, 1) and
                           yaml.safe_load(make_keystore_text(1, 1))["client"]})
    store = load_simple_key_store(io.StringIO(text), [], 0)
    assert store.node_roles() == [AuthenticationRole.CLIENT]
    assert store.node_key_spec(AuthenticationRole.REPLICA) == ""
    with pytest.raises(KeyStoreError, match="key set not found"):
        store.node_public_key(AuthenticationRole.REPLICA, 0)


def test_unknown_keyspec_in_file():
    text = "replica:\n  keyspec: RSA\n  keys: []\n"
    with pytest.raises(KeyStoreError, match="unknown KeySpec"):
        load_simple_key_store(io.StringIO(text), [], 0)


def test_invalid_yaml():
    with pytest.raises(KeyStoreError, match="yaml parse error"):
        load_simple_key_store(io.StringIO("replica: [unclosed"), [], 0)


def test_empty_file_has_no_roles():
    store = load_simple_key_store(io.StringIO(""), [], 0)
    assert store.node_roles() == []