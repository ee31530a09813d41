"""Supabase 集成 - 身份校验、用户档案查询、调用日志写入"""

import logging
from typing import Any, Dict, Optional

import httpx

from launchpad_proxy.core.errors import CollaboratorError
from launchpad_proxy.models.usage import UsageLogEntry
from launchpad_proxy.models.user import Identity, SubscriptionTier

logger = logging.getLogger(__name__)

# PostgREST 单行响应；0 行或多行时返回 406
SINGLE_OBJECT = "application/vnd.pgrst.object+json"


class SupabaseClient:
    """Supabase REST 客户端（Auth + PostgREST），共享一个连接池"""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 10.0,
        max_retries: int = 0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url.rstrip("/")
        self.service_key = service_key
        # retries 只针对连接失败，不会重放已发出的请求
        self._client = http_client or httpx.AsyncClient(
            base_url=self.url,
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=max_retries),
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Any] = None,
    ) -> httpx.Response:
        """
        发送 API 请求

        Args:
            token: 用户 access token；不提供时使用 service key

        Raises:
            CollaboratorError: 网络错误或超时
        """
        request_headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {token or self.service_key}",
        }
        if headers:
            request_headers.update(headers)

        try:
            return await self._client.request(
                method,
                path,
                headers=request_headers,
                params=params,
                json=json,
            )
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Supabase request {method} {path} failed: {e!r}") from e

    async def close(self) -> None:
        await self._client.aclose()


class SupabaseIdentityProvider:
    """通过 Supabase Auth 校验 access token"""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def validate_token(self, token: str) -> Optional[Identity]:
        """
        校验 token 并解析用户身份

        Returns:
            Identity；token 被拒绝时返回 None

        Raises:
            CollaboratorError: Supabase 不可用或返回异常
        """
        response = await self.client.request("GET", "/auth/v1/user", token=token)

        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            raise CollaboratorError(f"Supabase auth returned HTTP {response.status_code}")

        try:
            user = response.json()
        except ValueError as e:
            raise CollaboratorError("Supabase auth returned invalid JSON") from e

        if not isinstance(user, dict) or not user.get("id"):
            return None
        return Identity(id=str(user["id"]), email=user.get("email"))


class SupabaseProfileStore:
    """从 profiles 表读取订阅等级"""

    def __init__(self, client: SupabaseClient, table: str = "profiles"):
        self.client = client
        self.table = table

    async def get_subscription_tier(self, identity_id: str) -> Optional[SubscriptionTier]:
        """
        查询用户订阅等级

        Returns:
            SubscriptionTier；档案不存在时返回 None

        Raises:
            CollaboratorError: 查询失败
        """
        response = await self.client.request(
            "GET",
            f"/rest/v1/{self.table}",
            headers={"Accept": SINGLE_OBJECT},
            params={"select": "subscription_tier", "id": f"eq.{identity_id}"},
        )

        if response.status_code == 406:
            return None
        if response.status_code != 200:
            raise CollaboratorError(f"Profile lookup returned HTTP {response.status_code}")

        try:
            profile = response.json()
        except ValueError as e:
            raise CollaboratorError("Profile lookup returned invalid JSON") from e

        if not isinstance(profile, dict):
            return None
        return SubscriptionTier.from_profile(profile.get("subscription_tier"))


class SupabaseLogStore:
    """向 api_logs 表追加调用记录"""

    def __init__(self, client: SupabaseClient, table: str = "api_logs"):
        self.client = client
        self.table = table

    async def append(self, entry: UsageLogEntry) -> None:
        """
        写入一条调用日志

        Raises:
            CollaboratorError: 写入失败
        """
        response = await self.client.request(
            "POST",
            f"/rest/v1/{self.table}",
            headers={"Prefer": "return=minimal"},
            json=entry.to_row(),
        )
        if response.is_error:
            raise CollaboratorError(f"Usage log insert returned HTTP {response.status_code}")
