"""API 公共依赖."""

from typing import Any

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from randomapi.auth import AdminTokenStore, get_token_store
from randomapi.config import get_settings
from randomapi.core.catalog import CatalogService
from randomapi.core.errors import (
    CyclicReferenceError,
    EmptyPoolError,
    FetchError,
    FieldPathError,
    NotFoundError,
    OAuthStateError,
    RandomAPIError,
    SyncInFlightError,
    ValidationError,
)
from randomapi.core.resolver import EndpointResolver
from randomapi.core.sync import SyncService, get_sync_service
from randomapi.models.database import get_session, get_session_factory

_STATUS_CODES: list[tuple[type[RandomAPIError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (SyncInFlightError, 409),
    (CyclicReferenceError, 409),
    (EmptyPoolError, 503),
    (OAuthStateError, 400),
    (FieldPathError, 502),
    (FetchError, 502),
]


def http_error(error: RandomAPIError, cyclic_status: int = 409) -> HTTPException:
    """将领域错误转换为 HTTP 错误."""
    if isinstance(error, CyclicReferenceError):
        return HTTPException(status_code=cyclic_status, detail=str(error))
    for error_type, status_code in _STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


async def require_admin(
    authorization: str | None = Header(default=None),
    token_store: AdminTokenStore = Depends(get_token_store),
) -> dict[str, Any]:
    """校验管理员令牌，返回用户信息."""
    if not get_settings().admin_auth_enabled:
        return {}

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="需要管理员令牌")

    token = token_store.validate(authorization.removeprefix("Bearer ").strip())
    if token is None:
        raise HTTPException(status_code=401, detail="令牌无效或已过期")
    return token.user


def get_catalog(session: AsyncSession = Depends(get_session)) -> CatalogService:
    return CatalogService(session)


def get_resolver(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    sync_service: SyncService = Depends(get_sync_service),
) -> EndpointResolver:
    return EndpointResolver(session_factory, sync_service)
