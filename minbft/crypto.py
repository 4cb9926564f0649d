"""Signature ciphers and authentication schemes for message authentication tags."""

from __future__ import annotations

import hashlib
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature

from .sgxusig import make_id, parse_cert
from .usig import UI, USIG

FINGERPRINT_SIZE = 8


class AuthenticationError(Exception):
    """An authentication tag could not be created or is not valid."""


class SignatureCipher(ABC):
    """Signature operations over a message digest."""

    @abstractmethod
    def sign(self, md: bytes, private_key) -> bytes:
        """Return a signature over the message digest."""

    @abstractmethod
    def verify(self, md: bytes, sig: bytes, public_key) -> bool:
        """Return True if the signature over the message digest is valid."""


def _prehashed(curve: ec.EllipticCurve, md: bytes) -> tuple[bytes, ec.ECDSA]:
    """Fit a digest of any length to the curve, keeping its leading bytes."""
    bits = curve.key_size
    if bits <= 224:
        algorithm: hashes.HashAlgorithm = hashes.SHA224()
    elif bits <= 256:
        algorithm = hashes.SHA256()
    elif bits <= 384:
        algorithm = hashes.SHA384()
    else:
        algorithm = hashes.SHA512()
    size = algorithm.digest_size
    digest = bytes(md)[:size].rjust(size, b"\x00")
    return digest, ec.ECDSA(Prehashed(algorithm))


class EcdsaSigCipher(SignatureCipher):
    """ECDSA signatures encoded in ASN.1 DER form."""

    def sign(self, md: bytes, private_key) -> bytes:
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise AuthenticationError("incompatible format of ECDSA private key")
        digest, algorithm = _prehashed(private_key.curve, md)
        try:
            return private_key.sign(digest, algorithm)
        except ValueError as exc:
            raise AuthenticationError(f"ECDSA signing error: {exc}") from exc

    def verify(self, md: bytes, sig: bytes, public_key) -> bool:
        sig = bytes(sig)
        try:
            decode_dss_signature(sig)
        except ValueError as exc:
            raise AuthenticationError(
                f"ECDSA signature is not ASN.1-DER encoded: {exc}") from exc
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            return False
        digest, algorithm = _prehashed(public_key.curve, md)
        try:
            public_key.verify(sig, digest, algorithm)
        except InvalidSignature:
            return False
        return True


class AuthenticationScheme(ABC):
    """Creates and verifies authentication tags of arbitrary messages."""

    @abstractmethod
    def generate_authentication_tag(self, message: bytes, private_key) -> bytes:
        """Return an authentication tag for the message."""

    @abstractmethod
    def verify_authentication_tag(self, message: bytes, tag: bytes, public_key) -> None:
        """Raise AuthenticationError if the tag is not valid for the message."""


@dataclass
class PublicAuthenScheme(AuthenticationScheme):
    """Public-key scheme: a hash function paired with a signature cipher.

    The digest signed is the message followed by the hash of empty input.
    """

    hash_scheme: Callable[[], "hashlib._Hash"] = hashlib.sha256
    sig_cipher: SignatureCipher = field(default_factory=EcdsaSigCipher)

    def _digest(self, message: bytes) -> bytes:
        return bytes(message) + self.hash_scheme().digest()

    def generate_authentication_tag(self, message: bytes, private_key) -> bytes:
        return self.sig_cipher.sign(self._digest(message), private_key)

    def verify_authentication_tag(self, message: bytes, tag: bytes, public_key) -> None:
        if not self.sig_cipher.verify(self._digest(message), tag, public_key):
            raise AuthenticationError("invalid signature")


def usig_key_fingerprint(public_key) -> bytes:
    """Return the first eight bytes of SHA-256 over the PKIX-encoded key."""
    try:
        key_bytes = public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"failed to serialize public key: {exc}") from exc
    return hashlib.sha256(key_bytes).digest()[:FINGERPRINT_SIZE]


class USIGAuthenticationScheme(AuthenticationScheme):
    """Scheme whose tags are serialized USIG unique identifiers.

    The epoch of each peer's USIG is captured from the first valid UI
    (counter value one) received for its public key and is then
    required of every later UI from that key.
    """

    def __init__(self, usig: USIG) -> None:
        self._usig = usig
        self._epochs: dict[bytes, int] = {}
        self._lock = threading.Lock()

    def generate_authentication_tag(self, message: bytes, private_key=None) -> bytes:
        """Create a UI for the message; the private key is ignored."""
        try:
            ui = self._usig.create_ui(message)
        except Exception as exc:
            raise AuthenticationError(f"failed to create UI: {exc}") from exc
        return ui.to_bytes()

    def verify_authentication_tag(self, message: bytes, tag: bytes, public_key) -> None:
        try:
            ui = UI.from_bytes(tag)
        except ValueError as exc:
            raise AuthenticationError(f"failed to unmarshal UI: {exc}") from exc

        try:
            fingerprint = usig_key_fingerprint(public_key)
        except ValueError as exc:
            raise AuthenticationError(
                f"Failed to calculate USIG key fingerprint: {exc}") from exc

        with self._lock:
            epoch = self._epochs.get(fingerprint)
            if epoch is None:
                epoch = 0
                if ui.counter == 1:
                    try:
                        epoch, _ = parse_cert(ui.cert)
                    except ValueError as exc:
                        raise AuthenticationError(
                            f"Failed to parse UI certificate: {exc}") from exc

            try:
                usig_id = make_id(epoch, public_key)
            except ValueError as exc:
                raise AuthenticationError(
                    f"Failed to construct USIG identity: {exc}") from exc

            self._usig.verify_ui(message, ui, usig_id)
            self._epochs[fingerprint] = epoch