"""OpenAI 聊天补全代理 API"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from launchpad_proxy.services.pipeline import RequestContext

router = APIRouter(prefix="/api/openai", tags=["openai"])

CHAT_ENDPOINT = "openai/chat"


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """获取客户端 IP"""
    # X-Forwarded-For 仅在部署于可信代理之后时使用
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/chat")
async def chat_completion(request: Request) -> JSONResponse:
    """
    OpenAI 聊天补全代理

    请求体原样交给流水线解析，认证失败的请求不会解析请求体
    """
    settings = request.app.state.settings
    ctx = RequestContext(
        endpoint=CHAT_ENDPOINT,
        client_ip=get_client_ip(request, settings.trust_forwarded_for),
        authorization=request.headers.get("Authorization"),
        body=await request.body(),
    )
    return await request.app.state.pipeline.dispatch(ctx)
