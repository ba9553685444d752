"""
认证相关模型定义 - 使用 sys_ 前缀
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from app.db.database import Base


class PasswordReset(Base):
    """密码重置请求表 - sys_password_resets

    只保存令牌的 SHA-256 摘要，明文令牌仅出现在邮件链接中。
    """
    __tablename__ = "sys_password_resets"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("sys_users.id", ondelete="CASCADE"), index=True, nullable=False, comment="用户ID")
    token_hash = Column(String(64), unique=True, index=True, nullable=False, comment="令牌摘要")
    expires_at = Column(DateTime(timezone=True), nullable=False, comment="过期时间")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    def __repr__(self):
        return f"<PasswordReset(id={self.id}, user_id={self.user_id})>"
