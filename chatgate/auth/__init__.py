"""Authentication package."""

from chatgate.auth.dependencies import (
    CurrentAccount,
    OptionalIdentity,
    Store,
    get_account_store,
    get_current_account,
    get_current_identity,
    get_identity_verifier,
    get_optional_identity,
)
from chatgate.auth.identity import (
    IdentityVerifier,
    JWTIdentityVerifier,
    RemoteIdentityVerifier,
    build_identity_verifier,
    decode_access_token,
)

__all__ = [
    "decode_access_token",
    "build_identity_verifier",
    "IdentityVerifier",
    "JWTIdentityVerifier",
    "RemoteIdentityVerifier",
    "get_account_store",
    "get_identity_verifier",
    "get_current_identity",
    "get_optional_identity",
    "get_current_account",
    "OptionalIdentity",
    "CurrentAccount",
    "Store",
]
