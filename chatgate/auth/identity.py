"""Bearer credential to identity exchange.

Two backends: ask the identity provider's user endpoint (the default), or
verify the provider-issued JWT locally with the shared secret.
"""

from abc import ABC, abstractmethod

import httpx
import structlog
from jose import JWTError, jwt

from chatgate.config import IdentityBackend, Settings
from chatgate.errors import AuthError
from chatgate.models import Identity

logger = structlog.get_logger(__name__)


class IdentityVerifier(ABC):
    """Turns a bearer credential into an authenticated identity."""

    @abstractmethod
    async def verify(self, token: str) -> Identity:
        """
        Raises:
            AuthError: credential invalid or expired.
        """

    async def aclose(self) -> None:
        return None


class RemoteIdentityVerifier(IdentityVerifier):
    """Looks the token up at ``{supabase_url}/auth/v1/user``."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        service_key = settings.supabase_service_role_key
        self.api_key = service_key.get_secret_value() if service_key else ""
        self.client = httpx.AsyncClient(base_url=settings.supabase_url.rstrip("/"), transport=transport)

    async def verify(self, token: str) -> Identity:
        response = await self.client.get(
            "/auth/v1/user",
            headers={"apikey": self.api_key, "Authorization": f"Bearer {token}"},
        )
        if response.status_code != 200:
            logger.warning("identity_rejected", status=response.status_code)
            raise AuthError("Invalid or expired token")

        data = response.json()
        if not data.get("id"):
            raise AuthError("Invalid or expired token")
        return Identity(id=data["id"], email=data.get("email"))

    async def aclose(self) -> None:
        await self.client.aclose()


class JWTIdentityVerifier(IdentityVerifier):
    """Verifies HS256 access tokens signed with the provider's JWT secret."""

    def __init__(self, settings: Settings) -> None:
        if settings.supabase_jwt_secret is None:
            raise ValueError("SUPABASE_JWT_SECRET is required for the jwt identity backend")
        self.secret = settings.supabase_jwt_secret.get_secret_value()
        self.algorithm = settings.jwt_algorithm
        self.audience = settings.supabase_jwt_audience

    async def verify(self, token: str) -> Identity:
        identity = decode_access_token(token, self.secret, self.algorithm, self.audience)
        if identity is None:
            logger.warning("identity_rejected", backend="jwt")
            raise AuthError("Invalid or expired token")
        return identity


def decode_access_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    audience: str | None = "authenticated",
) -> Identity | None:
    """
    Decode and validate a JWT access token.

    Returns:
        Identity if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return Identity(id=user_id, email=payload.get("email"))


def build_identity_verifier(settings: Settings) -> IdentityVerifier:
    if settings.identity_backend == IdentityBackend.JWT:
        return JWTIdentityVerifier(settings)
    return RemoteIdentityVerifier(settings)
