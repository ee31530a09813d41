"""聊天补全请求模型"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ChatCompletionRequest(BaseModel):
    """
    聊天补全请求体

    只校验结构，不解释内容；messages 中的每一项原样转发给上游。
    model / temperature 未提供时由转发器套用配置中的默认值（gpt-4 / 0.7）
    """
    messages: List[Dict[str, Any]] = Field(..., min_length=1, description="按顺序排列的对话消息")
    temperature: Optional[float] = Field(None, strict=True, description="采样温度")
    max_tokens: Optional[int] = Field(None, strict=True, gt=0, description="最大生成 token 数")
    model: Optional[str] = Field(None, min_length=1, description="上游模型名称")

    @field_validator("messages")
    @classmethod
    def _messages_have_roles(cls, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, message in enumerate(messages):
            if not isinstance(message.get("role"), str):
                raise ValueError(f"messages[{index}] is missing a role")
        return messages
