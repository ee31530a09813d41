"""FastAPI 应用入口"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from launchpad_proxy.api.chat import router as chat_router
from launchpad_proxy.core.config import Settings, get_settings
from launchpad_proxy.core.errors import NotFound, ProxyError
from launchpad_proxy.core.redis import close_redis, get_redis
from launchpad_proxy.core.responses import error_response, proxy_error_response
from launchpad_proxy.middleware.request_size import RequestSizeLimitMiddleware
from launchpad_proxy.services.auth import Authenticator, IdentityProvider, ProfileStore
from launchpad_proxy.services.completion import (
    CompletionProvider,
    Forwarder,
    OpenAICompletionProvider,
    create_openai_client,
)
from launchpad_proxy.services.pipeline import build_pipeline
from launchpad_proxy.services.quota import (
    FREE_TIER_LIMIT_MESSAGE,
    GENERAL_LIMIT_MESSAGE,
    QuotaEnforcer,
    QuotaWindow,
)
from launchpad_proxy.services.quota_store import (
    InMemoryQuotaStore,
    QuotaStore,
    RedisQuotaStore,
    cleanup_task,
)
from launchpad_proxy.services.supabase import (
    SupabaseClient,
    SupabaseIdentityProvider,
    SupabaseLogStore,
    SupabaseProfileStore,
)
from launchpad_proxy.services.usage_tracker import LogStore, UsageRecorder

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """配置根日志"""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    identity_provider: Optional[IdentityProvider] = None,
    profile_store: Optional[ProfileStore] = None,
    log_store: Optional[LogStore] = None,
    completion_provider: Optional[CompletionProvider] = None,
    quota_store: Optional[QuotaStore] = None,
) -> FastAPI:
    """
    创建应用

    未注入的外部依赖按配置创建：Supabase（身份、档案、日志）、OpenAI、
    配额存储（内存或 Redis）。由本函数创建的客户端在应用关闭时释放。
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    # 应用关闭时需要释放的资源
    closers: List[Callable[[], Awaitable[None]]] = []

    if identity_provider is None or profile_store is None or log_store is None:
        supabase = SupabaseClient(
            settings.supabase_url,
            settings.supabase_service_key,
            timeout=settings.supabase_timeout_seconds,
            max_retries=settings.supabase_max_retries,
        )
        closers.append(supabase.close)
        identity_provider = identity_provider or SupabaseIdentityProvider(supabase)
        profile_store = profile_store or SupabaseProfileStore(supabase, settings.profiles_table)
        log_store = log_store or SupabaseLogStore(supabase, settings.usage_log_table)

    if completion_provider is None:
        openai_provider = OpenAICompletionProvider(
            create_openai_client(
                settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_timeout_seconds,
                max_retries=settings.openai_max_retries,
            )
        )
        closers.append(openai_provider.close)
        completion_provider = openai_provider

    if quota_store is None:
        if settings.quota_backend == "redis":
            quota_store = RedisQuotaStore(get_redis(settings.redis_url))
            closers.append(close_redis)
        else:
            quota_store = InMemoryQuotaStore()

    enforcer = QuotaEnforcer(
        quota_store,
        general=QuotaWindow(
            "general",
            settings.api_rate_window_seconds,
            settings.api_rate_limit,
            GENERAL_LIMIT_MESSAGE,
        ),
        free_tier=QuotaWindow(
            "free_tier",
            settings.free_tier_window_seconds,
            settings.free_tier_limit,
            FREE_TIER_LIMIT_MESSAGE,
        ),
    )
    pipeline = build_pipeline(
        Authenticator(identity_provider, profile_store),
        enforcer,
        UsageRecorder(log_store),
        Forwarder(completion_provider, settings.default_model, settings.default_temperature),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """应用生命周期管理"""
        # 启动时 - 内存配额存储需要定期清理
        cleanup_task_handle = None
        if isinstance(quota_store, InMemoryQuotaStore):
            cleanup_task_handle = asyncio.create_task(
                cleanup_task(quota_store, settings.quota_cleanup_interval_seconds)
            )
        app.state.cleanup_task = cleanup_task_handle
        logger.info(f"Server running on port {settings.port}")

        yield

        # 关闭时 - 先等清理任务退出，再释放客户端
        if cleanup_task_handle is not None:
            cleanup_task_handle.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task_handle
        for close in closers:
            await close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LaunchPad Notebook 后端代理 API",
        debug=settings.debug,
        lifespan=lifespan,
        # 带尾斜杠的路径按未知路径处理，不做 307 重定向
        redirect_slashes=False,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.quota_store = quota_store

    # 1. 请求大小限制（最先检查，防止大请求体攻击）
    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_size=settings.max_request_size_bytes,
    )

    # 2. CORS 中间件（最外层）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset", "Retry-After"],
    )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        return proxy_error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # 未匹配的路径或方法统一返回 404
        if exc.status_code in (404, 405):
            return proxy_error_response(NotFound())
        return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    # 全局异常处理器 - 不向客户端泄露内部错误
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Server error: {exc}")
        return error_response(500, "Internal server error")

    @app.get("/health")
    async def health_check() -> dict:
        """健康检查端点"""
        return {"status": "ok"}

    app.include_router(chat_router)

    return app


app = create_app()
