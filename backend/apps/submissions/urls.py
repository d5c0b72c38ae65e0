from __future__ import annotations

from django.urls import path

from .views import CompetitionSubmissionsView, MySubmissionView, RepoVerifyView

app_name = "submissions"

# 路由：作品列表 / 提交、我的作品、仓库校验
urlpatterns = [
    path("competitions/<int:competition_id>/", CompetitionSubmissionsView.as_view(), name="competition"),
    path("competitions/<int:competition_id>/mine/", MySubmissionView.as_view(), name="mine"),
    path("verify-repo/", RepoVerifyView.as_view(), name="verify-repo"),
]
