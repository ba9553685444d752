"""
核心系统Schema模块
包含身份、认证以及外部服务凭据相关的Pydantic模型
"""

from .auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserIdentity,
)
from .integrations import (
    ApiKeyCreate,
    ApiKeyResponse,
    ApiKeyUpdate,
    SmtpConfigCreate,
    SmtpConfigResponse,
)

__all__ = [
    "ChangePasswordRequest",
    "ForgotPasswordRequest",
    "LoginRequest",
    "ProfileUpdateRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "UserIdentity",
    "ApiKeyCreate",
    "ApiKeyResponse",
    "ApiKeyUpdate",
    "SmtpConfigCreate",
    "SmtpConfigResponse",
]
