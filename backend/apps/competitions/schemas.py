# apps/competitions/schemas.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError
from apps.common.utils.validators import ensure_aware_datetime, limit_text, require_text

# Schema 层：负责请求入参的结构化与校验，禁止写业务逻辑


@dataclass
class CompetitionCreateSchema(BaseSchema):
    """
    创建比赛入参：
    - 标题必填，简介与题目可选
    - 三个时间点必须严格递增：starts_at < ends_at < voting_ends_at
    """

    auto_validate: ClassVar[bool] = True

    title: str
    starts_at: datetime
    ends_at: datetime
    voting_ends_at: datetime
    description: str = ""
    prompt: str = ""

    def validate(self) -> None:
        self.title = require_text(self.title, field_name="比赛标题", max_length=200)
        self.description = limit_text(self.description, field_name="比赛简介", max_length=5000)
        self.prompt = limit_text(self.prompt, field_name="比赛题目", max_length=20000)
        self.starts_at = ensure_aware_datetime(self.starts_at, field_name="开始时间")
        self.ends_at = ensure_aware_datetime(self.ends_at, field_name="提交截止时间")
        self.voting_ends_at = ensure_aware_datetime(self.voting_ends_at, field_name="投票截止时间")
        if not self.starts_at < self.ends_at:
            raise ValidationError(message="提交截止时间必须晚于开始时间")
        if not self.ends_at < self.voting_ends_at:
            raise ValidationError(message="投票截止时间必须晚于提交截止时间")
