# apps/common/base/base_service.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from django.db import IntegrityError, transaction

from apps.common.exceptions import BizError, ConflictError
from apps.common.infra.logger import get_logger

logger = get_logger(__name__)

ServiceReturn = TypeVar("ServiceReturn")


class BaseService(ABC, Generic[ServiceReturn]):
    """
    Service 层业务逻辑基类

    约束：
        - 负责编排业务逻辑，不直接处理 HTTP
        - 使用普通 Python 参数，避免依赖 request
        - 通过 Repo 访问持久化层
        - 默认在事务中执行 `perform`
        - 预期内的业务失败使用 BizError；系统异常向上抛出交由全局 500 处理

    标准流程：validate(...) -> perform(...) -> handle_error(...)
    """

    atomic_enabled: bool = True

    def validate(self, *args, **kwargs) -> None:
        """可选的业务预检查钩子（阶段、权限等），默认空实现"""
        return None

    @abstractmethod
    def perform(self, *args, **kwargs) -> ServiceReturn:
        """子类必须实现的业务核心逻辑"""

    def execute(self, *args, **kwargs) -> ServiceReturn:
        """Service 对外的统一入口"""
        try:
            self.validate(*args, **kwargs)
            if self.atomic_enabled:
                with transaction.atomic():
                    return self.perform(*args, **kwargs)
            return self.perform(*args, **kwargs)
        except Exception as exc:
            return self.handle_error(exc)

    __call__ = execute

    def handle_error(self, exc: Exception) -> ServiceReturn:
        """
        - BizError 原样抛出
        - 漏网的唯一约束冲突转换为 ConflictError，已存在的记录即权威状态
        - 其他异常记录堆栈后继续抛出
        """
        if isinstance(exc, BizError):
            raise exc
        if isinstance(exc, IntegrityError):
            logger.warning("唯一约束冲突，按资源已存在处理: %s", exc)
            raise ConflictError() from exc
        logger.exception("Service 层出现未捕获的系统异常，向上抛出以按 500 处理", exc_info=exc)
        raise exc
