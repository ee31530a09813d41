"""OpenAI 转发服务"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from launchpad_proxy.core.errors import CollaboratorError, UpstreamError
from launchpad_proxy.models.chat import ChatCompletionRequest

logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    """外部补全服务"""

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        ...


def create_openai_client(
    api_key: str,
    base_url: Optional[str] = None,
    timeout: float = 60.0,
    max_retries: int = 0,
) -> AsyncOpenAI:
    """创建 OpenAI 客户端，超时与重试次数显式指定"""
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
        max_retries=max_retries,
    )


class OpenAICompletionProvider:
    """通过 OpenAI Chat Completions API 生成补全"""

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        """
        调用上游补全接口

        未提供的可选参数不会发送给上游

        Returns:
            dict: 上游返回的补全结果

        Raises:
            CollaboratorError: 上游调用失败
        """
        params: Dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            completion = await self.client.chat.completions.create(**params)
        except OpenAIError as e:
            raise CollaboratorError(f"OpenAI request failed: {e}") from e

        return completion.model_dump(mode="json", exclude_unset=True)

    async def close(self) -> None:
        await self.client.close()


class Forwarder:
    """转发器 - 套用默认参数后调用补全服务"""

    def __init__(
        self,
        provider: CompletionProvider,
        default_model: str = "gpt-4",
        default_temperature: float = 0.7,
    ):
        self.provider = provider
        self.default_model = default_model
        self.default_temperature = default_temperature

    async def forward(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        """
        转发聊天补全请求

        Raises:
            UpstreamError: 任何上游错误；原始错误只记录在服务端日志中
        """
        # 显式传入 null 时不发送 temperature，由上游决定
        if "temperature" in request.model_fields_set:
            temperature = request.temperature
        else:
            temperature = self.default_temperature

        try:
            return await self.provider.complete(
                model=request.model or self.default_model,
                messages=request.messages,
                temperature=temperature,
                max_tokens=request.max_tokens,
            )
        except Exception as e:
            logger.error(f"Error calling OpenAI: {e}")
            raise UpstreamError() from e
