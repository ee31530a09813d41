"""错误类型 - 所有对客户端可见的错误都在这里定义"""

from typing import Dict, Optional

from fastapi import status


class ProxyError(Exception):
    """
    代理错误基类

    每个子类对应一个 HTTP 状态码和一条默认的客户端消息。
    消息会原样返回给客户端，因此不得包含内部细节。
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.message
        self.headers = headers or {}
        super().__init__(self.message)


class InvalidRequest(ProxyError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request body"


class Unauthenticated(ProxyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Unauthorized"


class ProfileNotFound(ProxyError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "User profile not found"


class NotFound(ProxyError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class PayloadTooLarge(ProxyError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    message = "Request entity too large"


class QuotaExceeded(ProxyError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests, please try again later."


class UpstreamError(ProxyError):
    message = "Failed to call OpenAI API"


class InternalError(ProxyError):
    pass


class CollaboratorError(Exception):
    """外部服务（Supabase、OpenAI、日志存储）调用失败"""
