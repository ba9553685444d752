"""
令牌编解码
签发与校验 JWT（HS256），载荷为 UserIdentity
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.core.auth import UserIdentity

logger = logging.getLogger(__name__)


def issue_token(
    identity: UserIdentity,
    secret: str,
    ttl: timedelta,
    now: Optional[datetime] = None,
) -> str:
    """签发令牌，exp = now + ttl"""
    issued_at = now or datetime.now(timezone.utc)
    claims = identity.to_claims()
    claims.update(
        {
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
        }
    )
    return jwt.encode(claims, secret, algorithm=settings.ALGORITHM)


def verify_token(token: Optional[str], secret: str) -> Optional[UserIdentity]:
    """
    校验令牌并返回身份
    过期、签名错误、格式错误或载荷不合法时一律返回 None
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    try:
        return UserIdentity.model_validate(payload)
    except ValidationError:
        logger.warning("令牌签名有效但载荷不是合法的用户身份")
        return None


def issue_access_token(identity: UserIdentity, now: Optional[datetime] = None) -> str:
    return issue_token(
        identity,
        settings.ACCESS_TOKEN_SECRET,
        timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS),
        now=now,
    )


def verify_access_token(token: Optional[str]) -> Optional[UserIdentity]:
    return verify_token(token, settings.ACCESS_TOKEN_SECRET)
