# apps/accounts/schemas.py

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError
from apps.common.utils.validators import limit_text, validate_url_optional


@dataclass
class ProfileUpdateSchema(BaseSchema):
    """
    个人资料更新入参：头像与 GitHub 用户名的部分更新，至少提供一项
    """

    auto_validate: ClassVar[bool] = True

    avatar_url: Optional[str] = None
    github_username: Optional[str] = None

    def validate(self) -> None:
        if self.avatar_url is None and self.github_username is None:
            raise ValidationError(message="没有需要更新的字段")
        if self.avatar_url is not None:
            self.avatar_url = limit_text(self.avatar_url, field_name="头像", max_length=None)
            validate_url_optional(self.avatar_url, field_name="头像")
        if self.github_username is not None:
            self.github_username = limit_text(self.github_username, field_name="GitHub 用户名", max_length=100)
