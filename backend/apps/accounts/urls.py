from __future__ import annotations

from django.urls import path

from .views import MeView, PublicProfileView

app_name = "accounts"

urlpatterns = [
    # 个人资料：查看 / 更新当前用户信息
    path("me/", MeView.as_view(), name="me"),
    # 公开主页：按用户名查看资料与作品
    path("profiles/<str:username>/", PublicProfileView.as_view(), name="profile"),
]
