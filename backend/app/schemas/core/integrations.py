"""
外部服务凭据相关的 Pydantic 模型
SMTP 配置与 AI API 密钥；响应中从不包含明文密码或完整密钥
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class SmtpConfigCreate(BaseModel):
    """SMTP 配置创建模型"""
    host: str = Field(..., min_length=1, max_length=255, description="SMTP 主机")
    port: int = Field(..., ge=1, le=65535, description="端口")
    secure: bool = Field(False, description="是否使用 SSL")
    user: str = Field(..., min_length=1, max_length=255, description="登录用户")
    password: str = Field(..., min_length=1, alias="pass", description="登录密码")

    class Config:
        populate_by_name = True


class SmtpConfigResponse(BaseModel):
    """SMTP 配置响应模型（不含密码）"""
    id: int
    host: str
    port: int
    secure: bool
    user: str
    status: str
    failure_count: int
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApiKeyCreate(BaseModel):
    """API 密钥创建模型"""
    key: str = Field(..., min_length=10, description="API 密钥")
    service: str = Field("gemini", max_length=32, description="服务名称")

    @field_validator("key")
    @classmethod
    def strip_key(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 10:
            raise ValueError("API 密钥过短")
        return v


class ApiKeyUpdate(BaseModel):
    """API 密钥更新模型，更新后失败次数清零并重新启用"""
    key: str = Field(..., min_length=10, description="API 密钥")


class ApiKeyResponse(BaseModel):
    """API 密钥列表项（仅显示末 4 位）"""
    id: int
    service: str
    key_preview: Optional[str] = None
    status: str
    failure_count: int
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
