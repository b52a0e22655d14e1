"""FastAPI dependencies for authentication and account lookup."""

from typing import Annotated

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chatgate.auth.identity import IdentityVerifier
from chatgate.errors import AuthError, ProfileNotFound, StoreUnavailable
from chatgate.models import Account, Identity
from chatgate.storage.base import AccountStore

logger = structlog.get_logger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Initialized in app startup
account_store: AccountStore | None = None
identity_verifier: IdentityVerifier | None = None


async def get_account_store() -> AccountStore:
    """Get the account store."""
    if account_store is None:
        raise StoreUnavailable()
    return account_store


async def get_identity_verifier() -> IdentityVerifier:
    if identity_verifier is None:
        raise StoreUnavailable("Identity provider not available")
    return identity_verifier


async def get_current_identity(
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Identity:
    """
    Exchange the bearer credential for an identity.

    A missing header or a non-Bearer scheme is rejected before the identity
    provider is contacted.
    """
    if not bearer or not bearer.credentials:
        raise AuthError("Missing or invalid authorization header")

    identity = await verifier.verify(bearer.credentials)
    structlog.contextvars.bind_contextvars(account_id=identity.id)
    return identity


async def get_optional_identity(
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Identity | None:
    """
    Identity when a valid credential is sent, otherwise None.

    Used for endpoints that also accept anonymous callers.
    """
    if not bearer or not bearer.credentials:
        return None
    try:
        return await verifier.verify(bearer.credentials)
    except AuthError:
        return None


async def get_current_account(
    identity: Identity = Depends(get_current_identity),
    store: AccountStore = Depends(get_account_store),
) -> Account:
    """Load the account record for the authenticated identity."""
    account = await store.get_account(identity.id)
    if account is None:
        logger.warning("profile_not_found", account_id=identity.id)
        raise ProfileNotFound()

    if account.email is None and identity.email:
        account = account.model_copy(update={"email": identity.email})
    return account


# Type aliases for cleaner dependency injection
OptionalIdentity = Annotated[Identity | None, Depends(get_optional_identity)]
CurrentAccount = Annotated[Account, Depends(get_current_account)]
Store = Annotated[AccountStore, Depends(get_account_store)]
