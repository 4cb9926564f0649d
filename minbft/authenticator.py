"""Message authentication for replicas and clients, backed by a key store."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .crypto import (
    AuthenticationError,
    AuthenticationScheme,
    EcdsaSigCipher,
    PublicAuthenScheme,
    USIGAuthenticationScheme,
)
from .keystore import (
    KEY_SPEC_ECDSA,
    KEY_SPEC_SGX_ECDSA,
    AuthenticationRole,
    KeyStoreError,
    load_simple_key_store,
)
from .usig import USIG


class Authenticator:
    """Creates and verifies message authentication tags per role.

    The authentication scheme of each role is chosen by the key spec of
    that role's node keys. The USIG role is served only when a USIG
    instance is supplied.
    """

    def __init__(self, roles: Iterable[AuthenticationRole], node_id: int, key_store: Any,
                 usig: USIG | None = None) -> None:
        self.roles = tuple(roles)
        self.node_id = node_id
        self._key_store = key_store
        self._schemes: dict[AuthenticationRole, AuthenticationScheme] = {}

        for role in key_store.node_roles():
            spec = key_store.node_key_spec(role)
            if (role is AuthenticationRole.USIG) != (spec == KEY_SPEC_SGX_ECDSA):
                raise AuthenticationError(f"Cannot use {spec} keyspec for {role} role")
            if spec == KEY_SPEC_ECDSA:
                self._schemes[role] = PublicAuthenScheme(sig_cipher=EcdsaSigCipher())
            elif spec == KEY_SPEC_SGX_ECDSA:
                if usig is None:
                    continue
                if not isinstance(usig, USIG):
                    raise AuthenticationError(
                        f"Cannot use supplied USIG: {spec} keyspec requires a USIG")
                self._schemes[role] = USIGAuthenticationScheme(usig)
            else:
                raise AuthenticationError(
                    "Cannot find an authentication scheme corresponding to the "
                    f"keyspec '{key_store.key_spec(role)}'")

    def _scheme(self, role: AuthenticationRole) -> AuthenticationScheme:
        scheme = self._schemes.get(role)
        if scheme is None:
            raise AuthenticationError(f"Unknown role: {role}")
        return scheme

    def generate_message_authen_tag(self, role: AuthenticationRole, msg: bytes) -> bytes:
        """Return an authentication tag for the message in the given role."""
        scheme = self._scheme(role)
        return scheme.generate_authentication_tag(msg, self._key_store.private_key(role))

    def verify_message_authen_tag(self, role: AuthenticationRole, node_id: int,
                                  msg: bytes, tag: bytes) -> None:
        """Raise AuthenticationError unless the tag was made by the node for the message."""
        public_key = self._key_store.node_public_key(role, node_id)
        scheme = self._scheme(role)
        try:
            scheme.verify_authentication_tag(msg, tag, public_key)
        except (AuthenticationError, ValueError) as exc:
            raise AuthenticationError(f"Invalid authentication tag: {exc}") from exc


def new_authenticator(roles: Iterable[AuthenticationRole], node_id: int,
                      stream) -> Authenticator:
    """Load a key store from the stream and build an authenticator without a USIG."""
    roles = list(roles)
    try:
        key_store = load_simple_key_store(stream, roles, node_id)
    except KeyStoreError as exc:
        raise AuthenticationError(f"failed to load keystore: {exc}") from exc
    try:
        return Authenticator(roles, node_id, key_store)
    except AuthenticationError as exc:
        raise AuthenticationError(f"failed to create authenticator: {exc}") from exc


def new_authenticator_with_usig(roles: Iterable[AuthenticationRole], node_id: int,
                                key_store: Any, usig: USIG) -> Authenticator:
    """Build an authenticator that serves the USIG role with the given USIG."""
    return Authenticator(roles, node_id, key_store, usig)