# apps/common/base/base_repo.py

from __future__ import annotations

from abc import ABC
from typing import Any, Generic, Optional, TypeVar

from django.db import IntegrityError, transaction
from django.db.models import Model, QuerySet

from apps.common.exceptions import ConflictError, NotFoundError

T = TypeVar("T", bound=Model)


class BaseRepo(ABC, Generic[T]):
    """
    Repository（数据访问层）基类：
    - 统一封装 Django ORM 读写细节，给 Service 提供稳定接口
    - 唯一约束冲突在这里转换为 ConflictError，上层不感知 IntegrityError
    - 用法示例：class VoteRepo(BaseRepo[Vote]): model = Vote
    """

    #: 子类必须指定对应的模型
    model: type[T]

    #: 未找到记录时的提示语
    not_found_message: str = "资源不存在"

    # ------------------------
    # 查询
    # ------------------------

    def get_queryset(self) -> QuerySet[T]:
        """默认 QuerySet，子类可覆盖以附加 select_related"""
        if not getattr(self, "model", None):
            raise NotImplementedError("BaseRepo 子类必须声明 model 属性")
        return self.model._default_manager.all()

    def filter(self, *, queryset: Optional[QuerySet[T]] = None, **filters) -> QuerySet[T]:
        """通用过滤入口，允许注入自定义 QuerySet"""
        qs = queryset if queryset is not None else self.get_queryset()
        return qs.filter(**filters)

    def get_by_id(self, pk: Any, *, queryset: Optional[QuerySet[T]] = None) -> T:
        """根据主键获取对象，不存在时抛业务级 404"""
        qs = queryset if queryset is not None else self.get_queryset()
        try:
            return qs.get(pk=pk)
        except self.model.DoesNotExist as exc:  # type: ignore[attr-defined]
            raise NotFoundError(message=self.not_found_message) from exc

    def get_or_none(self, **filters) -> Optional[T]:
        """返回符合条件的单个对象，未命中则为 None"""
        return self.filter(**filters).first()

    def exists(self, **filters) -> bool:
        return self.filter(**filters).exists()

    def lock(self, **filters) -> QuerySet[T]:
        """
        行级锁查询（SELECT ... FOR UPDATE），必须在事务内使用
        """
        return self.model._default_manager.select_for_update().filter(**filters)

    # ------------------------
    # 写操作
    # ------------------------

    def create(self, data: dict, *, conflict_error: ConflictError | None = None) -> T:
        """
        创建记录；命中唯一约束时抛 ConflictError（默认提示“资源已存在”）

        写入放在保存点内，冲突回滚不影响外层事务
        """
        try:
            with transaction.atomic():
                return self.model._default_manager.create(**data)
        except IntegrityError as exc:
            raise (conflict_error or ConflictError()) from exc

    def update(self, instance: T, data: dict) -> T:
        """按字段更新并保存，返回最新实例"""
        for field, value in data.items():
            setattr(instance, field, value)
        if data:
            instance.save(update_fields=list(data.keys()))
        else:
            instance.save()
        return instance

    def delete(self, instance: T) -> None:
        instance.delete()
