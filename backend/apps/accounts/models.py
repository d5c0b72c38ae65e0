"""
账户模型：参赛者资料

- 登录流程由外部身份服务（GitHub OAuth）完成，这里只保存展示所需的资料
- 作品、报名、投票都通过外键关联到 User
"""

from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    自定义用户模型：
    - username 作为公开主页的标识
    - github_username / avatar_url 来自 OAuth 资料，用于展示
    """

    avatar_url = models.URLField("头像", max_length=500, blank=True, default="")
    github_username = models.CharField("GitHub 用户名", max_length=100, blank=True, default="", db_index=True)
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta(AbstractUser.Meta):
        swappable = "AUTH_USER_MODEL"
        verbose_name = "用户"
        verbose_name_plural = "用户"

    def __str__(self) -> str:
        return self.username
