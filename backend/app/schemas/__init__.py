"""
项目所有Pydantic Schema定义
按功能模块组织在子目录中

导入结构示例：
    from app.schemas.core import UserIdentity, LoginRequest
"""

from .core import *  # noqa: F401,F403
from .core import __all__  # noqa: F401
