"""
通用权限封装（apps.common.permissions）

- 登录 / 管理员 / 只读 等常见场景的权限类
- 出错时统一抛出 PermissionDeniedError / AuthError，由全局异常处理器统一包装响应
- 比赛阶段相关的“能否报名/提交/投票”不在这里判断，由 Service 层结合阶段快照处理
"""

from __future__ import annotations

from typing import Any

from rest_framework.permissions import SAFE_METHODS, BasePermission
from rest_framework.request import Request

from .exceptions import AuthError, PermissionDeniedError


def _ensure_authenticated(request: Request):
    """确保用户已登录并返回 user，否则抛 AuthError"""
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        raise AuthError(message="请先登录后再执行此操作")
    return user


class AllowAny(BasePermission):
    """公开接口"""

    def has_permission(self, request: Request, view: Any) -> bool:
        return True


class IsAuthenticated(BasePermission):
    """
    需要已登录用户

    与 DRF 自带的 IsAuthenticated 等价，但出错时抛 BizError，便于统一格式
    """

    def has_permission(self, request: Request, view: Any) -> bool:
        _ensure_authenticated(request)
        return True


class IsAdmin(BasePermission):
    """需要管理员（is_staff）"""

    message = "仅管理员可以执行此操作"

    def has_permission(self, request: Request, view: Any) -> bool:
        user = _ensure_authenticated(request)
        if user.is_staff:
            return True
        raise PermissionDeniedError(message=self.message)


class IsAdminOrReadOnly(BasePermission):
    """
    只读放行，写操作需管理员

    典型场景：比赛列表公开浏览，创建比赛仅管理员
    """

    message = "仅管理员可以执行此操作"

    def has_permission(self, request: Request, view: Any) -> bool:
        if request.method in SAFE_METHODS:
            return True
        user = _ensure_authenticated(request)
        if user.is_staff:
            return True
        raise PermissionDeniedError(message=self.message)
