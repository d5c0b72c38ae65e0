# apps/common/base/base_schema.py

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Dict, Iterable, Mapping, Optional, TypeVar

from apps.common.exceptions import ValidationError

SchemaType = TypeVar("SchemaType", bound="BaseSchema")


@dataclass
class BaseSchema(ABC):
    """
    业务 Schema / DTO 基类

    - Service 层的结构化入参，聚合字段校验逻辑
    - from_dict 忽略未声明的字段，缺少必填字段时抛 ValidationError

    子类示例：
        @dataclass
        class VoteCastSchema(BaseSchema):
            value: bool

            def validate(self):
                ...
    """

    #: 是否在 __post_init__ 中自动执行 validate
    auto_validate: ClassVar[bool] = False

    def __post_init__(self):
        if self.auto_validate:
            self.validate()

    @abstractmethod
    def validate(self) -> None:
        """子类实现字段约束校验，出错时抛 BizError"""

    def to_dict(self, *, exclude_none: bool = False, exclude: Iterable[str] | None = None) -> Dict[str, Any]:
        """转为 dict，支持过滤 None 或移除指定字段"""
        data = asdict(self)
        if exclude_none:
            data = {key: value for key, value in data.items() if value is not None}
        for key in exclude or ():
            data.pop(key, None)
        return data

    @classmethod
    def from_dict(cls: type[SchemaType], data: Mapping[str, Any], *, extra: Optional[Dict[str, Any]] = None) -> SchemaType:
        """
        将外部 payload（dict / QueryDict）转为 Schema

        extra 用于注入路由参数等非请求体字段，优先级高于 payload
        """
        declared = {f.name for f in fields(cls)}
        payload = {key: data[key] for key in data.keys() if key in declared}
        if extra:
            payload.update(extra)
        try:
            return cls(**payload)  # type: ignore[arg-type]
        except TypeError as exc:
            raise ValidationError(message="缺少必填字段", extra={"fields": sorted(declared)}) from exc
