"""
数据库模型定义
表名统一使用 sys_ 前缀
"""

from app.db.database import Base

from .core import User, PasswordReset, SmtpConfiguration, AIApiKey

__all__ = [
    "Base",
    "User",
    "PasswordReset",
    "SmtpConfiguration",
    "AIApiKey",
]
