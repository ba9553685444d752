"""
应用配置管理
从环境变量加载配置，提供类型安全的配置访问
"""

import json
from pathlib import Path
from typing import List, Optional, Union
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]

# 未配置时使用的占位密钥（仅限开发环境）
INSECURE_ACCESS_SECRET = "your_super_secret_access_key"
INSECURE_REFRESH_SECRET_USER = "your_super_secret_refresh_key_user"
INSECURE_REFRESH_SECRET_ADMIN = "your_super_secret_refresh_key_admin"
INSECURE_REFRESH_SECRET_SUPERADMIN = "your_super_secret_refresh_key_superadmin"


class Settings(BaseSettings):
    """应用配置类，从环境变量加载所有配置"""

    # ==================== 项目信息 ====================
    PROJECT_NAME: str = Field(default="Maudigi")
    VERSION: str = Field(default="1.0.0")
    API_PREFIX: str = Field(default="/api")

    # ==================== 部署环境 ====================
    DEPLOYMENT_ENV: str = Field(default="development")  # development, docker, production

    # ==================== 服务器配置 ====================
    BACKEND_HOST: str = Field(default="0.0.0.0")
    BACKEND_PORT: int = Field(default=8000)
    BACKEND_RELOAD: bool = Field(default=True)

    # ==================== 令牌配置 ====================
    ACCESS_TOKEN_SECRET: str = Field(default=INSECURE_ACCESS_SECRET)
    REFRESH_TOKEN_SECRET_USER: str = Field(default=INSECURE_REFRESH_SECRET_USER)
    REFRESH_TOKEN_SECRET_ADMIN: str = Field(default=INSECURE_REFRESH_SECRET_ADMIN)
    REFRESH_TOKEN_SECRET_SUPERADMIN: str = Field(default=INSECURE_REFRESH_SECRET_SUPERADMIN)
    ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_DAYS: int = Field(default=7)
    STAFF_REFRESH_TOKEN_EXPIRE_HOURS: int = Field(default=6)   # 超级管理员 / 管理员
    USER_REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=180)   # 普通用户

    # ==================== Cookie 配置 ====================
    COOKIE_SECURE: Optional[bool] = Field(default=None)  # 未设置时生产环境自动开启
    COOKIE_DOMAIN: Optional[str] = Field(default=None)

    # ==================== 字段加密 ====================
    FIELD_ENCRYPTION_KEY: str = Field(default="")

    # ==================== 密码重置 ====================
    PASSWORD_RESET_EXPIRE_MINUTES: int = Field(default=60)
    FRONTEND_BASE_URL: Optional[str] = Field(default=None)
    FRONTEND_DIST_DIR: Optional[str] = Field(default=None)

    # ==================== 邮件 / SMTP ====================
    SMTP_CACHE_TTL_SECONDS: int = Field(default=300)
    SMTP_TIMEOUT_SECONDS: int = Field(default=20)
    MAIL_FROM_NAME: str = Field(default="Maudigi")

    # ==================== 外部 AI 服务 ====================
    API_KEY_CACHE_TTL_SECONDS: int = Field(default=60)
    GEMINI_API_URL: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    GEMINI_MODEL: str = Field(default="gemini-1.5-flash-latest")
    HTTPX_MAX_CONNECTIONS: int = Field(default=100)
    HTTPX_MAX_KEEPALIVE_CONNECTIONS: int = Field(default=20)
    HTTPX_TIMEOUT: float = Field(default=60.0)
    HTTPX_CONNECT_TIMEOUT: float = Field(default=10.0)

    # ==================== 限流 ====================
    AUTH_RATE_LIMIT_SECONDS: float = Field(default=2.0)
    TRUST_PROXY_HEADERS: bool = Field(default=False)  # 仅在受信任反向代理之后开启

    # ==================== 调试配置 ====================
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")

    # ==================== CORS 配置 ====================
    CORS_ORIGINS: List[str] = Field(default=["http://localhost:3000", "http://127.0.0.1:3000"])

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """解析CORS_ORIGINS，支持JSON字符串或列表"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ==================== 数据库配置 ====================
    POSTGRES_USER: str = Field(default="admin")
    POSTGRES_PASSWORD: str = Field(default="change_me")
    POSTGRES_DB: str = Field(default="maudigi_db")
    POSTGRES_HOST: str = Field(default="127.0.0.1")
    POSTGRES_PORT: str = Field(default="5432")
    POSTGRES_MAX_CONNECTIONS: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=20)
    DB_POOL_TIMEOUT_SECONDS: int = Field(default=30)
    POSTGRES_STATEMENT_TIMEOUT: int = Field(default=30000)
    DATABASE_DRIVER: str = Field(default="asyncpg")

    # 数据库URL - 优先使用环境变量中的值
    DATABASE_URL: Optional[str] = Field(default=None)

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info) -> Optional[str]:
        """构建数据库连接 URL"""
        if v:
            return v

        values = info.data
        driver = values.get("DATABASE_DRIVER", "asyncpg")
        username = values.get("POSTGRES_USER")
        password = values.get("POSTGRES_PASSWORD")
        host = values.get("POSTGRES_HOST")
        port = values.get("POSTGRES_PORT")
        db = values.get("POSTGRES_DB")

        if all([driver, username, password, host, port, db]):
            return f"postgresql+{driver}://{username}:{password}@{host}:{port}/{db}"
        return None

    # ==================== Redis 配置 ====================
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB_CACHE: int = Field(default=0)
    REDIS_CONNECT_TIMEOUT: int = Field(default=5)

    # ==================== 数据库调试配置 ====================
    SQLALCHEMY_ECHO: bool = Field(default=False)
    AUTO_CREATE_TABLES: bool = Field(default=False)

    # ==================== 超级管理员配置 ====================
    SUPER_ADMIN_EMAIL: str = Field(default="admin@maudigi.com")
    SUPER_ADMIN_PASSWORD: str = Field(default="change_me")
    SUPER_ADMIN_NAME: str = Field(default="Super Admin")

    @property
    def is_production(self) -> bool:
        return (self.DEPLOYMENT_ENV or "").lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is None:
            return self.is_production
        return bool(self.COOKIE_SECURE)

    @model_validator(mode="after")
    def validate_security_settings(self):
        if "POSTGRES_MAX_CONNECTIONS" not in self.model_fields_set:
            self.POSTGRES_MAX_CONNECTIONS = 20 if self.DEBUG else 50
        if "DB_MAX_OVERFLOW" not in self.model_fields_set:
            self.DB_MAX_OVERFLOW = 10 if self.DEBUG else 20

        if self.DEBUG:
            return self

        def must_set(name: str, value: str, insecure: str = "change_me"):
            if not value or str(value).strip() in {"", "change_me", insecure}:
                raise ValueError(f"{name} 未配置或仍为默认值，请在 .env 中设置为安全值")

        must_set("ACCESS_TOKEN_SECRET", self.ACCESS_TOKEN_SECRET, INSECURE_ACCESS_SECRET)
        must_set("REFRESH_TOKEN_SECRET_USER", self.REFRESH_TOKEN_SECRET_USER, INSECURE_REFRESH_SECRET_USER)
        must_set("REFRESH_TOKEN_SECRET_ADMIN", self.REFRESH_TOKEN_SECRET_ADMIN, INSECURE_REFRESH_SECRET_ADMIN)
        must_set(
            "REFRESH_TOKEN_SECRET_SUPERADMIN",
            self.REFRESH_TOKEN_SECRET_SUPERADMIN,
            INSECURE_REFRESH_SECRET_SUPERADMIN,
        )
        must_set("FIELD_ENCRYPTION_KEY", self.FIELD_ENCRYPTION_KEY)
        must_set("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)

        secrets = {
            self.ACCESS_TOKEN_SECRET,
            self.REFRESH_TOKEN_SECRET_USER,
            self.REFRESH_TOKEN_SECRET_ADMIN,
            self.REFRESH_TOKEN_SECRET_SUPERADMIN,
        }
        if len(secrets) < 4:
            raise ValueError("访问令牌与各角色刷新令牌必须使用互不相同的密钥")
        if any(len(s) < 32 for s in secrets):
            raise ValueError("令牌密钥长度过短，建议至少 32 字符")

        return self

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 创建全局配置实例
settings = Settings()
