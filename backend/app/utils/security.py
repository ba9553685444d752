"""
安全工具模块
提供密码哈希、验证以及随机令牌/邀请码生成
直接使用 bcrypt 库
"""

import hashlib
import logging
import secrets

import bcrypt

from app.core.config import settings

logger = logging.getLogger(__name__)

# bcrypt 只处理前 72 字节
BCRYPT_MAX_BYTES = 72


def _to_bcrypt_bytes(password: str) -> bytes:
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        logger.warning("密码超过72字节，超出部分不参与哈希")
        password_bytes = password_bytes[:BCRYPT_MAX_BYTES]
    return password_bytes


def get_password_hash(password: str) -> str:
    """生成 bcrypt 密码哈希"""
    hashed_bytes = bcrypt.hashpw(_to_bcrypt_bytes(password), bcrypt.gensalt())
    return hashed_bytes.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    验证密码
    哈希格式损坏时视为验证失败
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_to_bcrypt_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error(f"密码验证失败: {e}")
        return False


def hash_super_admin_password() -> str:
    """
    专门用于哈希超级管理员密码的函数
    使用环境变量中的密码进行哈希
    """
    admin_password = settings.SUPER_ADMIN_PASSWORD
    if not admin_password:
        raise ValueError("超级管理员密码未配置，请检查 .env 文件中的 SUPER_ADMIN_PASSWORD 设置")
    return get_password_hash(admin_password)


def generate_reset_token() -> str:
    """生成 32 字节随机令牌（64 位十六进制）"""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """令牌的 SHA-256 十六进制摘要，数据库中只保存该值"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_referral_code() -> str:
    """8 位大写十六进制邀请码"""
    return secrets.token_hex(4).upper()
