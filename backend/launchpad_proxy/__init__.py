"""LaunchPad Notebook 后端代理 - 认证、配额与 OpenAI 转发"""

__version__ = "0.1.0"
