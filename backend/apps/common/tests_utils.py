from __future__ import annotations

from datetime import timedelta

from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.competitions.models import Competition


def make_user(username: str, **extra) -> User:
    """创建普通用户，密码固定，邮箱按用户名生成"""
    extra.setdefault("email", f"{username}@example.com")
    return User.objects.create_user(username=username, password="Pass1234", **extra)


def make_competition(
        *,
        starts_in: timedelta = timedelta(hours=1),
        live_for: timedelta = timedelta(hours=2),
        voting_for: timedelta = timedelta(hours=1),
        now=None,
        **extra,
) -> Competition:
    """
    以 now 为基准构造比赛：starts_at = now + starts_in，其后依次是提交截止与投票截止
    starts_in 为负数时比赛已经开始
    """
    reference = now or timezone.now()
    starts_at = reference + starts_in
    extra.setdefault("title", "Weekend Build")
    extra.setdefault("prompt", "Build a tool you would use every day")
    return Competition.objects.create(
        starts_at=starts_at,
        ends_at=starts_at + live_for,
        voting_ends_at=starts_at + live_for + voting_for,
        **extra,
    )


class AuthenticatedAPIMixin:
    """
    提供统一的认证客户端构造工具，减少各测试用例的重复代码
    """

    client: APIClient  # 由 APITestCase 提供

    def auth_client(self, user: User) -> APIClient:
        """
        构造附带 Authorization 头的 APIClient，直接为用户签发访问令牌
        """
        token = RefreshToken.for_user(user).access_token
        client = APIClient()
        client.raise_request_exception = False
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        return client
