"""
外部服务凭据模型 - SMTP 配置与 AI API 密钥
敏感字段均以 Fernet 密文保存
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.sql import expression
from app.db.database import Base


class SmtpConfiguration(Base):
    """SMTP 配置表 - sys_smtp_configurations"""
    __tablename__ = "sys_smtp_configurations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    host = Column(String(255), nullable=False, comment="SMTP 主机")
    port = Column(Integer, nullable=False, comment="端口")
    secure = Column(Boolean, default=False, server_default=expression.false(), comment="是否使用 SSL")
    user = Column(String(255), nullable=False, comment="登录用户")
    password_encrypted = Column(String(1000), nullable=False, comment="登录密码（加密）")
    status = Column(String(20), default="active", server_default="active", nullable=False, comment="状态: active, inactive")
    failure_count = Column(Integer, default=0, server_default="0", nullable=False, comment="失败次数")
    last_used_at = Column(DateTime(timezone=True), nullable=True, comment="最近使用时间")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    def __repr__(self):
        return f"<SmtpConfiguration(id={self.id}, host='{self.host}')>"


class AIApiKey(Base):
    """AI 服务 API 密钥表 - sys_ai_api_keys"""
    __tablename__ = "sys_ai_api_keys"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    service = Column(String(32), default="gemini", server_default="gemini", nullable=False, comment="服务名称")
    api_key_encrypted = Column(String(1000), nullable=False, comment="API 密钥（加密）")
    status = Column(String(20), default="active", server_default="active", nullable=False, comment="状态: active, inactive, failed")
    failure_count = Column(Integer, default=0, server_default="0", nullable=False, comment="失败次数")
    last_used_at = Column(DateTime(timezone=True), nullable=True, comment="最近使用时间")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    def __repr__(self):
        return f"<AIApiKey(id={self.id}, service='{self.service}', status='{self.status}')>"
