"""用户身份与订阅等级"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class SubscriptionTier(str, Enum):
    """订阅等级枚举"""
    FREE = "free"
    PRO = "pro"

    @classmethod
    def from_profile(cls, value: Optional[str]) -> "SubscriptionTier":
        """
        从档案字段解析订阅等级

        只有 "pro" 视为付费用户，其余（包括空值和未知值）都按免费用户处理
        """
        if isinstance(value, str) and value.strip().lower() == cls.PRO.value:
            return cls.PRO
        return cls.FREE


class Identity(BaseModel):
    """由 bearer token 解析出的用户身份（每次请求重新解析，不缓存）"""
    id: str
    email: Optional[str] = None
