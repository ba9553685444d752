"""
认证相关的 Pydantic 模型
用于令牌载荷以及请求/响应的数据验证
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class UserIdentity(BaseModel):
    """令牌载荷中的用户身份，刷新时总是从数据库重新构建"""
    id: int
    name: str
    email: str
    role: int = Field(..., ge=1, le=3)
    avatar: Optional[str] = None
    phone: Optional[str] = None
    points: Optional[int] = None
    referral_code: Optional[str] = Field(None, alias="referralCode")

    class Config:
        populate_by_name = True

    def to_claims(self) -> dict:
        """转换为 JWT 载荷（驼峰字段名，省略空值）"""
        return self.model_dump(by_alias=True, exclude_none=True)


class RegisterRequest(BaseModel):
    """注册请求模型"""
    name: str = Field(..., min_length=3, max_length=100, description="姓名")
    email: EmailStr = Field(..., description="邮箱")
    password: str = Field(..., min_length=8, max_length=128, description="密码")
    repeat_password: str = Field(..., alias="repeatPassword", description="重复密码")
    fingerprint: Optional[str] = Field(None, max_length=255, description="浏览器指纹")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.repeat_password:
            raise ValueError("两次输入的密码不一致")
        return self


class LoginRequest(BaseModel):
    """登录请求模型"""
    email: EmailStr = Field(..., description="邮箱")
    password: str = Field(..., min_length=1, max_length=128, description="密码")


class ForgotPasswordRequest(BaseModel):
    """忘记密码请求模型"""
    email: EmailStr = Field(..., description="邮箱")


class ResetPasswordRequest(BaseModel):
    """重置密码模型"""
    token: str = Field(..., min_length=1, description="重置令牌")
    password: str = Field(..., min_length=8, max_length=128, description="新密码")


class ChangePasswordRequest(BaseModel):
    """修改密码模型"""
    old_password: str = Field(..., alias="oldPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=128)
    confirm_password: str = Field(..., alias="confirmPassword")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("两次输入的新密码不一致")
        return self


class ProfileUpdateRequest(BaseModel):
    """个人资料更新模型"""
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)
    avatar_url: Optional[str] = Field(None, max_length=500)
    points: Optional[int] = None

