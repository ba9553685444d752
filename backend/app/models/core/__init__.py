"""
核心系统模型模块
包含用户、认证、外部服务凭据等基础系统模型
"""

from app.models.core.user import User
from app.models.core.auth import PasswordReset
from app.models.core.integrations import SmtpConfiguration, AIApiKey

__all__ = ["User", "PasswordReset", "SmtpConfiguration", "AIApiKey"]
