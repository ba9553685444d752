"""
邮件发送服务
从数据库加载启用的 SMTP 配置，按最近最少使用顺序依次尝试发送
"""

import smtplib
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Callable, List, Optional

from cachetools import TTLCache
from cryptography.fernet import InvalidToken
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.models import SmtpConfiguration
from app.utils.field_crypto import decrypt_field


class EmailDeliveryError(Exception):
    """所有 SMTP 配置均发送失败，或没有可用配置"""


@dataclass(frozen=True)
class SmtpConfig:
    id: int
    host: str
    port: int
    secure: bool
    user: str
    password: str


class SmtpConfigCache:
    """已解密的启用 SMTP 配置列表缓存，TTL 到期或 invalidate() 后重新加载"""

    _KEY = "active"

    def __init__(self, ttl: Optional[float] = None, timer: Callable[[], float] = time.monotonic):
        self._cache: TTLCache = TTLCache(
            maxsize=1,
            ttl=settings.SMTP_CACHE_TTL_SECONDS if ttl is None else ttl,
            timer=timer,
        )

    def get(self) -> Optional[List[SmtpConfig]]:
        return self._cache.get(self._KEY)

    def put(self, configs: List[SmtpConfig]) -> None:
        self._cache[self._KEY] = configs

    def invalidate(self) -> None:
        self._cache.clear()


Transport = Callable[[SmtpConfig, MIMEMultipart], None]


def smtp_transport(config: SmtpConfig, message: MIMEMultipart) -> None:
    """阻塞式 SMTP 发送，由线程池调用"""
    timeout = settings.SMTP_TIMEOUT_SECONDS
    if config.secure:
        server: smtplib.SMTP = smtplib.SMTP_SSL(config.host, config.port, timeout=timeout)
    else:
        server = smtplib.SMTP(config.host, config.port, timeout=timeout)
    with server:
        if not config.secure and server.has_extn("starttls"):
            server.starttls()
        server.login(config.user, config.password)
        server.send_message(message)


class EmailManager:
    """
    邮件发送管理器

    Args:
        session_factory: 数据库会话工厂，用于读取配置与更新使用统计
        cache: SMTP 配置缓存
        transport: 实际发送函数，默认使用 smtplib
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[SmtpConfigCache] = None,
        transport: Optional[Transport] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache or SmtpConfigCache()
        self.transport = transport or smtp_transport

    async def load_configs(self) -> List[SmtpConfig]:
        cached = self.cache.get()
        if cached is not None:
            return cached

        async with self.session_factory() as db:
            result = await db.execute(
                select(SmtpConfiguration)
                .where(SmtpConfiguration.status == "active")
                .order_by(SmtpConfiguration.last_used_at.asc().nullsfirst(), SmtpConfiguration.id.asc())
            )
            rows = result.scalars().all()

        configs: List[SmtpConfig] = []
        for row in rows:
            try:
                password = decrypt_field(row.password_encrypted)
            except (InvalidToken, RuntimeError):
                logger.error(f"SMTP 配置 {row.id} 密码无法解密，已跳过")
                continue
            configs.append(
                SmtpConfig(
                    id=row.id,
                    host=row.host,
                    port=int(row.port),
                    secure=bool(row.secure),
                    user=row.user,
                    password=password,
                )
            )
        self.cache.put(configs)
        return configs

    def _build_message(self, config: SmtpConfig, to: str, subject: str, html: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((settings.MAIL_FROM_NAME, config.user))
        message["To"] = to
        message.attach(MIMEText(html, "html", "utf-8"))
        return message

    async def _record(self, config_id: int, success: bool) -> None:
        if success:
            values = {"last_used_at": datetime.now(timezone.utc)}
        else:
            values = {"failure_count": SmtpConfiguration.failure_count + 1}
        try:
            async with self.session_factory() as db:
                await db.execute(
                    update(SmtpConfiguration).where(SmtpConfiguration.id == config_id).values(**values)
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"更新 SMTP 配置 {config_id} 使用统计失败: {e}")

    async def send_email(self, to: str, subject: str, html: str) -> int:
        """
        发送邮件，返回实际使用的配置 ID

        Raises:
            EmailDeliveryError: 配置无法读取、没有可用配置或全部配置发送失败
        """
        try:
            configs = await self.load_configs()
        except SQLAlchemyError as e:
            logger.error(f"读取 SMTP 配置失败: {e}")
            raise EmailDeliveryError("邮件服务暂不可用，请稍后重试") from e
        if not configs:
            logger.error("邮件发送失败: 没有启用的 SMTP 配置")
            raise EmailDeliveryError("没有可用的邮件服务器")

        last_error: Optional[Exception] = None
        for config in configs:
            message = self._build_message(config, to, subject, html)
            try:
                logger.info(f"尝试通过 {config.host} 发送邮件 (配置 {config.id})")
                await run_in_threadpool(self.transport, config, message)
            except (smtplib.SMTPException, OSError) as e:
                logger.warning(f"SMTP 配置 {config.id} 发送失败: {e}")
                last_error = e
                await self._record(config.id, success=False)
                continue
            await self._record(config.id, success=True)
            return config.id

        logger.error(f"所有 SMTP 配置均发送失败: {last_error}")
        raise EmailDeliveryError("邮件服务暂不可用，请稍后重试") from last_error


_email_manager: Optional[EmailManager] = None


def get_email_manager() -> EmailManager:
    """应用级单例，可在测试中通过 dependency_overrides 替换"""
    global _email_manager
    if _email_manager is None:
        _email_manager = EmailManager(AsyncSessionLocal)
    return _email_manager
