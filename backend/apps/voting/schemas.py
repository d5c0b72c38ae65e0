from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError
from apps.common.utils.validators import limit_text

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


@dataclass
class VoteCastSchema(BaseSchema):
    """
    投票入参：value 为 true（愿意使用）或 false（不会使用），comment 可选
    表单提交的字符串 "true"/"false" 也会被接受
    """

    auto_validate: ClassVar[bool] = True

    value: Any
    comment: str = ""

    def validate(self) -> None:
        if isinstance(self.value, str):
            lowered = self.value.strip().lower()
            if lowered in _TRUE_VALUES:
                self.value = True
            elif lowered in _FALSE_VALUES:
                self.value = False
        if not isinstance(self.value, bool):
            raise ValidationError(message="value 必须为 true 或 false")
        self.comment = limit_text(self.comment, field_name="留言", max_length=500)
