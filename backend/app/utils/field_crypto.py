"""
字段级加密
手机号、积分等敏感字段以 Fernet 密文存储
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.core.config import settings


def _fernet() -> Fernet:
    key = (settings.FIELD_ENCRYPTION_KEY or "").strip()
    if not key:
        raise RuntimeError("FIELD_ENCRYPTION_KEY 未配置")
    return Fernet(key.encode("utf-8"))


def encrypt_field(value: str) -> str:
    token = _fernet().encrypt(str(value).encode("utf-8"))
    return token.decode("utf-8")


def decrypt_field(token: str) -> str:
    data = _fernet().decrypt(token.encode("utf-8"))
    return data.decode("utf-8")


def try_decrypt_field(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        return decrypt_field(token)
    except (InvalidToken, RuntimeError):
        return None


def last4(secret: Optional[str]) -> Optional[str]:
    if not secret:
        return None
    s = str(secret)
    if len(s) <= 4:
        return s
    return s[-4:]
