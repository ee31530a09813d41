"""请求准入流水线

每个请求按顺序经过以下阶段，任一阶段抛出 ProxyError 即终止并返回对应错误：

    认证 -> 全局限流 -> 请求体校验 -> 免费配额 -> 调用记录 -> 转发

两个限流器是独立的阶段：全局限流对所有已认证请求生效，
免费配额只对非 pro 用户生效。
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from launchpad_proxy.core.errors import InternalError, InvalidRequest, ProxyError
from launchpad_proxy.core.responses import proxy_error_response
from launchpad_proxy.models.chat import ChatCompletionRequest
from launchpad_proxy.models.user import Identity, SubscriptionTier
from launchpad_proxy.services.auth import Authenticator
from launchpad_proxy.services.completion import Forwarder
from launchpad_proxy.services.quota import QuotaEnforcer, rate_limit_headers
from launchpad_proxy.services.quota_store import QuotaDecision
from launchpad_proxy.services.usage_tracker import UsageRecorder

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """单个请求在流水线中的状态"""
    endpoint: str
    client_ip: str
    authorization: Optional[str]
    body: bytes
    identity: Optional[Identity] = None
    tier: Optional[SubscriptionTier] = None
    chat_request: Optional[ChatCompletionRequest] = None
    quota: Optional[QuotaDecision] = None
    result: Optional[Dict[str, Any]] = None


class Stage(Protocol):
    name: str

    async def __call__(self, ctx: RequestContext) -> None:
        ...


class AuthenticationStage:
    name = "authenticate"

    def __init__(self, authenticator: Authenticator):
        self.authenticator = authenticator

    async def __call__(self, ctx: RequestContext) -> None:
        auth = await self.authenticator.authenticate(ctx.authorization)
        ctx.identity = auth.identity
        ctx.tier = auth.tier


class GeneralQuotaStage:
    name = "general_quota"

    def __init__(self, enforcer: QuotaEnforcer):
        self.enforcer = enforcer

    async def __call__(self, ctx: RequestContext) -> None:
        ctx.quota = await self.enforcer.check_general(ctx.client_ip)


class ParseRequestStage:
    name = "parse_request"

    async def __call__(self, ctx: RequestContext) -> None:
        try:
            payload = json.loads(ctx.body or b"null")
        except ValueError as e:
            raise InvalidRequest() from e

        if not isinstance(payload, dict):
            raise InvalidRequest()

        try:
            ctx.chat_request = ChatCompletionRequest.model_validate(payload)
        except ValidationError as e:
            logger.info(f"Rejected invalid request body from {ctx.identity.id}: {e.error_count()} errors")
            raise InvalidRequest() from e


class FreeTierQuotaStage:
    name = "free_tier_quota"

    def __init__(self, enforcer: QuotaEnforcer):
        self.enforcer = enforcer

    async def __call__(self, ctx: RequestContext) -> None:
        decision = await self.enforcer.check_tier(ctx.identity, ctx.tier)
        if decision is not None:
            ctx.quota = decision


class RecordUsageStage:
    name = "record_usage"

    def __init__(self, recorder: UsageRecorder):
        self.recorder = recorder

    async def __call__(self, ctx: RequestContext) -> None:
        await self.recorder.record(
            ctx.identity,
            ctx.tier,
            ctx.endpoint,
            ctx.chat_request.messages,
        )


class ForwardStage:
    name = "forward"

    def __init__(self, forwarder: Forwarder):
        self.forwarder = forwarder

    async def __call__(self, ctx: RequestContext) -> None:
        ctx.result = await self.forwarder.forward(ctx.chat_request)


class AdmissionPipeline:
    """按顺序执行各阶段的调度器"""

    def __init__(self, stages: List[Stage]):
        self.stages = stages

    async def dispatch(self, ctx: RequestContext) -> JSONResponse:
        """
        执行流水线并生成响应

        Returns:
            JSONResponse: 成功时为上游原始结果（200），否则为 {"error": ...}
        """
        for stage in self.stages:
            try:
                await stage(ctx)
            except ProxyError as e:
                return self._terminal(ctx, e)
            except Exception as e:
                logger.exception(f"Unexpected error in stage '{stage.name}': {e}")
                return self._terminal(ctx, InternalError())

        if ctx.result is None:
            logger.error("Pipeline finished without a result")
            return self._terminal(ctx, InternalError())

        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=ctx.result,
            headers=self._quota_headers(ctx),
        )

    def _terminal(self, ctx: RequestContext, error: ProxyError) -> JSONResponse:
        response = proxy_error_response(error)
        # 限流拒绝时 error.headers 已包含配额信息
        if not error.headers:
            response.headers.update(self._quota_headers(ctx))
        return response

    @staticmethod
    def _quota_headers(ctx: RequestContext) -> Dict[str, str]:
        if ctx.quota is None:
            return {}
        return rate_limit_headers(ctx.quota)


def build_pipeline(
    authenticator: Authenticator,
    enforcer: QuotaEnforcer,
    recorder: UsageRecorder,
    forwarder: Forwarder,
) -> AdmissionPipeline:
    """组装默认流水线"""
    return AdmissionPipeline([
        AuthenticationStage(authenticator),
        GeneralQuotaStage(enforcer),
        ParseRequestStage(),
        FreeTierQuotaStage(enforcer),
        RecordUsageStage(recorder),
        ForwardStage(forwarder),
    ])
