"""
统一用户模型定义 - 使用 sys_ 前缀
支持超级管理员、管理员、普通用户三种角色（role_id 1/2/3）
"""

from sqlalchemy import Column, Integer, String, DateTime, func
from app.db.database import Base


class User(Base):
    """统一用户表模型 - sys_users"""
    __tablename__ = "sys_users"

    # 主键
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # 登录凭证
    email = Column(String(255), unique=True, index=True, nullable=False, comment="邮箱（登录名）")
    hashed_password = Column(String(255), nullable=False, comment="加密密码")

    # 基本信息
    name = Column(String(100), nullable=False, comment="姓名")
    avatar_url = Column(String(500), nullable=True, comment="头像地址")

    # 加密存储字段（Fernet 密文）
    phone_number = Column(String(500), nullable=True, comment="手机号（加密）")
    points = Column(String(500), nullable=True, comment="积分（加密）")

    referral_code = Column(String(16), unique=True, index=True, nullable=True, comment="邀请码")
    browser_fingerprint = Column(String(255), nullable=True, comment="浏览器指纹")

    # 角色标识
    role_id = Column(Integer, nullable=False, default=3, server_default="3", comment="角色: 1 超级管理员, 2 管理员, 3 用户")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    def __repr__(self):
        return f"<User(id={self.id}, role_id={self.role_id}, email='{self.email}')>"
