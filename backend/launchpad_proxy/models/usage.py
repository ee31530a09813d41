"""API 调用日志模型"""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from launchpad_proxy.models.user import SubscriptionTier


class UsageLogEntry(BaseModel):
    """单次被接受请求的审计记录（只写不读）"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    endpoint: str
    request_size: int  # messages 紧凑 JSON 编码后的字节数
    subscription_tier: SubscriptionTier
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> Dict[str, Any]:
        """转换为 api_logs 表的一行"""
        return {
            "user_id": self.user_id,
            "endpoint": self.endpoint,
            "request_size": self.request_size,
            "subscription_tier": self.subscription_tier.value,
            "created_at": self.created_at.isoformat(),
        }
