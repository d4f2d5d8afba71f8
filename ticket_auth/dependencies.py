import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncEngine

from .application.ports.cache_store import CacheStore
from .application.ports.identity_provider import FederatedIdentity
from .application.services.auth_service import AuthContext, AuthService
from .core.config import Settings
from .exceptions import InvalidCredential

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Container:
    """Everything built once at startup and shared by every request."""

    settings: Settings
    engine: AsyncEngine
    cache: CacheStore
    http_client: httpx.AsyncClient
    auth_service: AuthService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_auth_service(container: Container = Depends(get_container)) -> AuthService:
    return container.auth_service


def get_bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


def require_bearer_token(token: Optional[str] = Depends(get_bearer_token)) -> str:
    if not token:
        raise InvalidCredential("Missing or malformed Authorization header")
    return token


async def get_federated_identity(
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> FederatedIdentity:
    return await service.identity.verify(token)


async def get_auth_context(
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """Authenticated caller for protected routes, built from a whitelisted access token."""
    context = await service.authenticate(token)
    logger.info(f"Successfully authenticated user ID: {context.account_id}")
    return context
