"""数据模型"""

from launchpad_proxy.models.chat import ChatCompletionRequest
from launchpad_proxy.models.usage import UsageLogEntry
from launchpad_proxy.models.user import Identity, SubscriptionTier

__all__ = [
    "ChatCompletionRequest",
    "Identity",
    "SubscriptionTier",
    "UsageLogEntry",
]
