"""账户模块的数据访问层"""

from __future__ import annotations

from django.contrib.auth import get_user_model

from apps.common.base.base_repo import BaseRepo
from apps.common.exceptions import NotFoundError

User = get_user_model()


class UserRepo(BaseRepo[User]):
    """用户仓储：公开主页按用户名查询"""

    model = User
    not_found_message = "用户不存在"

    def get_by_username(self, username: str) -> User:
        """按用户名获取用户，未找到抛业务级 404"""
        try:
            return self.filter(username=username).get()
        except User.DoesNotExist as exc:  # type: ignore[attr-defined]
            raise NotFoundError(message=self.not_found_message) from exc
