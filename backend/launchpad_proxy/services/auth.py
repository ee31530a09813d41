"""认证服务 - bearer token 校验与订阅等级解析"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from launchpad_proxy.core.errors import (
    CollaboratorError,
    InternalError,
    ProfileNotFound,
    ProxyError,
    Unauthenticated,
)
from launchpad_proxy.models.user import Identity, SubscriptionTier

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class IdentityProvider(Protocol):
    """外部身份服务"""

    async def validate_token(self, token: str) -> Optional[Identity]:
        ...


class ProfileStore(Protocol):
    """外部用户档案存储（只读）"""

    async def get_subscription_tier(self, identity_id: str) -> Optional[SubscriptionTier]:
        ...


@dataclass(frozen=True)
class AuthResult:
    """认证结果"""
    identity: Identity
    tier: SubscriptionTier


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    从 Authorization header 中解析 bearer token

    Raises:
        Unauthenticated: header 缺失、不是 Bearer 方案或 token 为空
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthenticated()

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthenticated()
    return token


class Authenticator:
    """认证器"""

    def __init__(self, identity_provider: IdentityProvider, profile_store: ProfileStore):
        self.identity_provider = identity_provider
        self.profile_store = profile_store

    async def authenticate(self, authorization: Optional[str]) -> AuthResult:
        """
        校验请求凭证并解析身份与订阅等级

        Args:
            authorization: 原始 Authorization header

        Returns:
            AuthResult: 身份与订阅等级

        Raises:
            Unauthenticated: 凭证缺失、格式错误或被拒绝（401）
            ProfileNotFound: 档案不存在或查询失败（403）
            InternalError: 其他意外错误（500）
        """
        try:
            token = extract_bearer_token(authorization)
            identity = await self._resolve_identity(token)
            tier = await self._resolve_tier(identity)
            return AuthResult(identity=identity, tier=tier)
        except ProxyError:
            raise
        except Exception as e:
            logger.exception(f"Authentication error: {e}")
            raise InternalError("Authentication failed") from e

    async def _resolve_identity(self, token: str) -> Identity:
        try:
            identity = await self.identity_provider.validate_token(token)
        except CollaboratorError as e:
            logger.error(f"Token validation failed: {e}")
            raise Unauthenticated("Invalid token") from e

        if identity is None:
            logger.warning("Rejected request with invalid token")
            raise Unauthenticated("Invalid token")
        return identity

    async def _resolve_tier(self, identity: Identity) -> SubscriptionTier:
        try:
            tier = await self.profile_store.get_subscription_tier(identity.id)
        except CollaboratorError as e:
            logger.error(f"Profile lookup failed for {identity.id}: {e}")
            raise ProfileNotFound() from e

        if tier is None:
            logger.warning(f"No profile found for {identity.id}")
            raise ProfileNotFound()
        return tier
