from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import InvalidRepositoryUrlError, ValidationError
from apps.common.infra.github_client import parse_github_url
from apps.common.utils.validators import limit_text, require_text, validate_url_optional

# Schema 层：作品提交与仓库校验入参


@dataclass
class SubmissionUpsertSchema(BaseSchema):
    """
    提交 / 更新作品：
    - 标题必填（≤100），简介可选（≤500）
    - 仓库地址必须是 https://github.com/owner/repo
    - 演示地址可选，需为 http(s) 链接
    """

    auto_validate: ClassVar[bool] = True

    title: str
    repo_url: str
    description: str = ""
    demo_url: str = ""

    def validate(self) -> None:
        self.title = require_text(self.title, field_name="作品标题", max_length=100)
        self.description = limit_text(self.description, field_name="作品简介", max_length=500)
        self.repo_url = limit_text(self.repo_url, field_name="仓库地址", max_length=None)
        if parse_github_url(self.repo_url) is None:
            raise InvalidRepositoryUrlError(extra={"repo_url": self.repo_url})
        self.demo_url = limit_text(self.demo_url, field_name="演示地址", max_length=None)
        validate_url_optional(self.demo_url, field_name="演示地址")


@dataclass
class RepoVerifySchema(BaseSchema):
    """仓库校验：只要求提供 url"""

    auto_validate: ClassVar[bool] = True

    url: str = ""

    def validate(self) -> None:
        self.url = limit_text(self.url, field_name="URL", max_length=None)
        if not self.url:
            raise ValidationError(message="URL is required")
