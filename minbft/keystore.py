"""Key specifications and a simple YAML-backed key store of a consensus network."""

from __future__ import annotations

import base64
import binascii
import enum
import io
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

KEY_SPEC_SGX_ECDSA = "SGX_ECDSA"
KEY_SPEC_ECDSA = "ECDSA"

_UINT32_LIMIT = 1 << 32

_CURVES: dict[int, type[ec.EllipticCurve]] = {
    224: ec.SECP224R1,
    256: ec.SECP256R1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}


class KeyStoreError(Exception):
    """A key store could not be read, parsed or generated."""


class AuthenticationRole(enum.StrEnum):
    """The role in which a node authenticates messages."""

    REPLICA = "replica"
    USIG = "usig"
    CLIENT = "client"


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _public_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class KeySpec(ABC):
    """How keys of one kind are encoded in, and generated for, a key store file."""

    name: str = ""

    @abstractmethod
    def parse_private_key(self, text: str) -> Any:
        """Return the private key encoded in the key store file string."""

    @abstractmethod
    def parse_public_key(self, text: str) -> Any:
        """Return the public key encoded in the key store file string."""

    @abstractmethod
    def generate_key_pair(self, security_param: int) -> tuple[str, str]:
        """Generate a key pair and return its (private, public) encodings."""


class EcdsaKeySpec(KeySpec):
    """ECDSA keys: base64 of SEC1 DER private keys and PKIX DER public keys."""

    name = KEY_SPEC_ECDSA

    def parse_private_key(self, text: str) -> ec.EllipticCurvePrivateKey:
        try:
            der = _b64decode(text)
        except (binascii.Error, ValueError) as exc:
            raise KeyStoreError(f"base64 decode error (ECDSA private key): {exc}") from exc
        try:
            key = serialization.load_der_private_key(der, password=None)
        except (ValueError, TypeError) as exc:
            raise KeyStoreError(f"parse error (ECDSA private key): {exc}") from exc
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise KeyStoreError("parse error (ECDSA private key): not an EC key")
        return key

    def parse_public_key(self, text: str) -> ec.EllipticCurvePublicKey:
        try:
            der = _b64decode(text)
        except (binascii.Error, ValueError) as exc:
            raise KeyStoreError(f"base64 decode error (ECDSA public key): {exc}") from exc
        try:
            key = serialization.load_der_public_key(der)
        except ValueError as exc:
            raise KeyStoreError(f"parse error (ECDSA public Key): {exc}") from exc
        if not isinstance(key, ec.EllipticCurvePublicKey):
            raise KeyStoreError("public key format error: expect ECDSA")
        return key

    def generate_key_pair(self, security_param: int) -> tuple[str, str]:
        """Generate a key on the curve of the given size; P-256 by default."""
        curve = _CURVES.get(security_param, ec.SECP256R1)()
        private_key = ec.generate_private_key(curve)
        private_der = private_key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
        public_der = _public_der(private_key.public_key())
        return _b64encode(private_der), _b64encode(public_der)


class SgxEcdsaKeySpec(EcdsaKeySpec):
    """Keys of a USIG enclave: a base64 sealed key pair and an ECDSA public key.

    Key generation needs an enclave: ``enclave_factory(enclave_file,
    sealed_key)`` must return an object with ``sealed_key()``,
    ``public_key()`` and ``destroy()`` methods.
    """

    name = KEY_SPEC_SGX_ECDSA

    def __init__(self, enclave_file: str = "",
                 enclave_factory: Callable[[str, bytes | None], Any] | None = None) -> None:
        self.enclave_file = enclave_file
        self.enclave_factory = enclave_factory

    def parse_private_key(self, text: str) -> bytes:
        """Decode the base64 sealed key pair into bytes."""
        try:
            return _b64decode(text)
        except (binascii.Error, ValueError) as exc:
            raise KeyStoreError(f"base64 decode error (sealed USIG key): {exc}") from exc

    def generate_key_pair(self, security_param: int) -> tuple[str, str]:
        """Have a fresh enclave generate a key pair and seal its private part."""
        if self.enclave_factory is None:
            raise KeyStoreError("no USIG enclave available to generate SGX_ECDSA keys")
        try:
            enclave = self.enclave_factory(self.enclave_file, None)
        except Exception as exc:
            raise KeyStoreError(f"failed to create USIG enclave: {exc}") from exc
        try:
            sealed = bytes(enclave.sealed_key())
            public_key = enclave.public_key()
        finally:
            enclave.destroy()
        try:
            public_der = _public_der(public_key)
        except (AttributeError, TypeError, ValueError) as exc:
            raise KeyStoreError(f"failed to marshal USIG public key: {exc}") from exc
        return _b64encode(sealed), _b64encode(public_der)


def get_key_spec(name: str) -> KeySpec:
    """Return a fresh key spec for the given name."""
    if name == KEY_SPEC_SGX_ECDSA:
        return SgxEcdsaKeySpec()
    if name == KEY_SPEC_ECDSA:
        return EcdsaKeySpec()
    raise KeyStoreError(f"unknown KeySpec: {name}")


@dataclass
class _OwnerKey:
    keyspec: str = ""
    private_key: Any = None
    public_key: Any = None


@dataclass
class _PublicKeySet:
    keyspec: str
    keys: dict[int, Any] = field(default_factory=dict)


class SimpleKeyStore:
    """The node's own keys and the public keys of every node, per role."""

    def __init__(self, node_id: int) -> None:
        self.node_id = node_id
        self._owner_keys: dict[AuthenticationRole, _OwnerKey] = {}
        self._node_public_keys: dict[AuthenticationRole, _PublicKeySet] = {}

    def key_spec(self, role: AuthenticationRole) -> str:
        """Key spec name of the node's own key, or "" if it has none."""
        owner = self._owner_keys.get(role)
        return owner.keyspec if owner else ""

    def private_key(self, role: AuthenticationRole) -> Any:
        """The node's own private key, or None."""
        owner = self._owner_keys.get(role)
        return owner.private_key if owner else None

    def public_key(self, role: AuthenticationRole) -> Any:
        """The node's own public key, or None."""
        owner = self._owner_keys.get(role)
        return owner.public_key if owner else None

    def node_public_key(self, role: AuthenticationRole, node_id: int) -> Any:
        """Public key of a node; None if the role is known but the node is not."""
        key_set = self._node_public_keys.get(role)
        if key_set is None:
            raise KeyStoreError(f"key set not found for role={role}, id={node_id}")
        return key_set.keys.get(node_id)

    def node_roles(self) -> list[AuthenticationRole]:
        """All roles for which the store holds node public keys."""
        return list(self._node_public_keys)

    def node_key_spec(self, role: AuthenticationRole) -> str:
        """Key spec name of the role's node keys, or "" if the role is absent."""
        key_set = self._node_public_keys.get(role)
        return key_set.keyspec if key_set else ""

    def _add_key_set(self, role: AuthenticationRole, spec: KeySpec,
                     pairs: Iterable[dict]) -> None:
        key_set = _PublicKeySet(spec.name)
        self._node_public_keys[role] = key_set
        owner = self._owner_keys.get(role)
        for pair in pairs:
            node_id, private_text, public_text = _read_key_pair(pair)
            public_key = spec.parse_public_key(public_text)
            key_set.keys[node_id] = public_key
            if owner is not None and node_id == self.node_id:
                owner.private_key = spec.parse_private_key(private_text)
                owner.keyspec = spec.name
                owner.public_key = public_key


def _read_key_pair(pair: Any) -> tuple[int, str, str]:
    if not isinstance(pair, dict):
        raise KeyStoreError("yaml parse error: key pair must be a mapping")
    node_id = pair.get("id", 0)
    if isinstance(node_id, bool) or not isinstance(node_id, int) \
            or not 0 <= node_id < _UINT32_LIMIT:
        raise KeyStoreError(f"yaml parse error: invalid key id {node_id!r}")
    private_text = pair.get("privateKey") or ""
    public_text = pair.get("publicKey") or ""
    if not isinstance(private_text, str) or not isinstance(public_text, str):
        raise KeyStoreError("yaml parse error: keys must be strings")
    return node_id, private_text, public_text


def _parse_key_store_file(stream) -> dict:
    try:
        data = stream.read()
    except OSError as exc:
        raise KeyStoreError(f"read error: {exc}") from exc
    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise KeyStoreError(f"yaml parse error: {exc}") from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise KeyStoreError("yaml parse error: key store must be a mapping")
    return doc


def load_simple_key_store(stream, roles: Iterable[AuthenticationRole],
                          node_id: int) -> SimpleKeyStore:
    """Load a key store file, keeping the private keys of ``node_id`` in ``roles``."""
    roles = list(roles)
    doc = _parse_key_store_file(stream)
    store = SimpleKeyStore(node_id)
    for role in roles:
        store._owner_keys[role] = _OwnerKey()

    for role in AuthenticationRole:
        key_set = doc.get(role.value)
        if key_set is None:
            continue
        if not isinstance(key_set, dict):
            raise KeyStoreError(f"yaml parse error: key set {role.value} must be a mapping")
        spec = get_key_spec(key_set.get("keyspec") or "")
        pairs = key_set.get("keys") or []
        if not isinstance(pairs, list):
            raise KeyStoreError(f"yaml parse error: keys of {role.value} must be a list")
        store._add_key_set(role, spec, pairs)

    for role in roles:
        if store.private_key(role) is None:
            raise KeyStoreError(
                f"missing key: cannot find node's own key (role={role}, id={node_id})")
    return store


@dataclass
class TestnetKeyOpts:
    """Options for :func:`generate_testnet_keys`."""

    __test__ = False

    number_replicas: int = 3
    replica_key_spec: str = KEY_SPEC_ECDSA
    replica_sec_param: int = 256
    number_clients: int = 1
    client_key_spec: str = KEY_SPEC_ECDSA
    client_sec_param: int = 256
    usig_enclave_file: str = "libusig.signed.so"
    usig_enclave_factory: Callable[[str, bytes | None], Any] | None = None


def _generate_key_set(count: int, spec_name: str, sec_param: int,
                      enclave_file: str, enclave_factory) -> dict:
    spec = get_key_spec(spec_name)
    if isinstance(spec, SgxEcdsaKeySpec):
        spec.enclave_file = enclave_file
        spec.enclave_factory = enclave_factory
    keys = []
    for node_id in range(count):
        private_text, public_text = spec.generate_key_pair(sec_param)
        keys.append({"id": node_id, "privateKey": private_text, "publicKey": public_text})
    return {"keyspec": spec_name, "keys": keys}


def generate_testnet_keys(stream, opts: TestnetKeyOpts) -> None:
    """Write a YAML key store with replica, USIG and client key sets to ``stream``."""
    doc = {
        AuthenticationRole.REPLICA.value: _generate_key_set(
            opts.number_replicas, opts.replica_key_spec, opts.replica_sec_param, "", None),
        AuthenticationRole.USIG.value: _generate_key_set(
            opts.number_replicas, KEY_SPEC_SGX_ECDSA, 0,
            opts.usig_enclave_file, opts.usig_enclave_factory),
        AuthenticationRole.CLIENT.value: _generate_key_set(
            opts.number_clients, opts.client_key_spec, opts.client_sec_param, "", None),
    }
    try:
        text = yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)
    except yaml.YAMLError as exc:
        raise KeyStoreError(f"Failed to marshal key store to yaml: {exc}") from exc
    if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)):
        stream.write(text.encode("utf-8"))
    else:
        stream.write(text)