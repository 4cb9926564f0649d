"""Identities, certificates and signature checks of the enclave-backed USIG."""

from __future__ import annotations

import hashlib
import struct

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from .usig import UI

DIGEST_SIZE = hashlib.sha256().digest_size

_EPOCH_BE = struct.Struct(">Q")
_EPOCH_COUNTER_LE = struct.Struct("<QQ")


class USIGVerificationError(ValueError):
    """A unique identifier failed verification."""


def message_digest(message: bytes) -> bytes:
    """Return the SHA-256 digest under which a message is certified."""
    return hashlib.sha256(message).digest()


def _split_epoch(data: bytes, what: str) -> tuple[int, bytes]:
    data = bytes(data)
    if len(data) < _EPOCH_BE.size:
        raise ValueError(f"failed to extract epoch from {what}: data too short")
    (epoch,) = _EPOCH_BE.unpack_from(data)
    return epoch, data[_EPOCH_BE.size:]


def make_id(epoch: int, public_key) -> bytes:
    """Compose a USIG identity: big-endian epoch then the PKIX public key."""
    try:
        key_bytes = public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"failed to serialize public key: {exc}") from exc
    return _EPOCH_BE.pack(epoch) + key_bytes


def parse_id(usig_id: bytes):
    """Break a USIG identity down to its epoch and public key."""
    epoch, key_bytes = _split_epoch(usig_id, "USIG ID")
    try:
        public_key = serialization.load_der_public_key(key_bytes)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise ValueError(f"failed to parse public key: {exc}") from exc
    return epoch, public_key


def make_cert(epoch: int, signature: bytes) -> bytes:
    """Compose a USIG certificate: big-endian epoch then the signature."""
    return _EPOCH_BE.pack(epoch) + bytes(signature)


def parse_cert(cert: bytes) -> tuple[int, bytes]:
    """Break a USIG certificate down to its epoch and signature."""
    return _split_epoch(cert, "USIG cert")


def verify_signature(public_key, digest: bytes, epoch: int, counter: int,
                     signature: bytes) -> None:
    """Check a USIG signature over the digest, epoch and counter."""
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise USIGVerificationError("invalid USIG ID format: expected ECDSA public key")
    if len(digest) != DIGEST_SIZE:
        raise USIGVerificationError(f"message digest must be {DIGEST_SIZE} bytes")

    signed = bytes(digest) + _EPOCH_COUNTER_LE.pack(epoch, counter)
    hashed = hashlib.sha256(signed).digest()

    signature = bytes(signature)
    try:
        r, s = decode_dss_signature(signature)
    except ValueError as exc:
        raise USIGVerificationError(f"failed to unmarshal USIG signature: {exc}") from exc
    if encode_dss_signature(r, s) != signature:
        raise USIGVerificationError("extra bytes in USIG signature")

    try:
        public_key.verify(signature, hashed, ec.ECDSA(Prehashed(hashes.SHA256())))
    except InvalidSignature as exc:
        raise USIGVerificationError("signature not valid") from exc


def verify_ui(message: bytes, ui: UI, usig_id: bytes) -> None:
    """Check a UI produced for the message by the USIG with the given identity."""
    try:
        epoch, public_key = parse_id(usig_id)
    except ValueError as exc:
        raise USIGVerificationError(f"failed to parse USIG ID: {exc}") from exc
    try:
        ui_epoch, signature = parse_cert(ui.cert)
    except ValueError as exc:
        raise USIGVerificationError(f"failed to parse UI cert: {exc}") from exc
    if ui_epoch != epoch:
        raise USIGVerificationError("epoch value mismatch")
    verify_signature(public_key, message_digest(message), epoch, ui.counter, signature)