"""请求大小限制中间件 - 防止大请求体攻击"""

from typing import Callable

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from launchpad_proxy.core.errors import PayloadTooLarge
from launchpad_proxy.core.responses import error_response, proxy_error_response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """限制请求体大小"""

    def __init__(self, app, max_size: int = 10 * 1024 * 1024):  # 默认 10MB
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 检查 Content-Length
        content_length = request.headers.get("content-length")

        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                return error_response(status.HTTP_400_BAD_REQUEST, "Invalid Content-Length header")

            # 中间件里抛出的 HTTPException 不会经过异常处理器，直接返回响应
            if size > self.max_size:
                return proxy_error_response(PayloadTooLarge())

        return await call_next(request)
