"""应用配置"""

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


# __file__ is in backend/launchpad_proxy/core/config.py
# We need to go up 3 levels to get to backend/
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"

# 显式加载 .env 文件（不覆盖已有环境变量）
load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """应用配置类"""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # 应用配置
    app_name: str = "LaunchPad Proxy"
    app_version: str = "0.1.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = Field(..., ge=1, le=65535)
    log_level: str = "INFO"

    # CORS，逗号分隔
    cors_origins_raw: str = Field(default="*", alias="CORS_ORIGINS")

    # 仅在部署于可信反向代理之后时开启
    trust_forwarded_for: bool = False

    # Supabase 配置（身份校验、用户档案、调用日志）
    supabase_url: str = Field(..., min_length=1)
    supabase_service_key: str = Field(..., min_length=1)
    supabase_timeout_seconds: float = Field(default=10.0, gt=0)
    supabase_max_retries: int = Field(default=0, ge=0)
    profiles_table: str = "profiles"
    usage_log_table: str = "api_logs"

    # OpenAI 配置
    openai_api_key: str = Field(..., min_length=1)
    openai_base_url: Optional[str] = None
    openai_timeout_seconds: float = Field(default=60.0, gt=0)
    openai_max_retries: int = Field(default=0, ge=0)
    default_model: str = "gpt-4"
    default_temperature: float = 0.7

    # 全局 API 限流（按 IP）
    api_rate_limit: int = Field(default=100, ge=1)
    api_rate_window_seconds: int = Field(default=60 * 60, ge=1)

    # 免费用户配额（按用户）
    free_tier_limit: int = Field(default=30, ge=1)
    free_tier_window_seconds: int = Field(default=30 * 24 * 60 * 60, ge=1)

    # 配额存储
    quota_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    quota_cleanup_interval_seconds: int = Field(default=300, ge=1)

    # 请求体大小限制
    max_request_size_bytes: int = Field(default=10 * 1024 * 1024, ge=1)

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]


def load_settings(**overrides) -> Settings:
    """
    加载并校验配置

    缺少必填项时立即失败，而不是带着空值启动

    Raises:
        RuntimeError: 配置缺失或非法
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in error['loc']).upper()} ({error['msg']})"
            for error in exc.errors()
        )
        raise RuntimeError(f"Invalid configuration: {problems}") from exc


@lru_cache
def get_settings() -> Settings:
    """获取配置单例"""
    return load_settings()


def clear_settings_cache():
    """清除设置缓存"""
    get_settings.cache_clear()
