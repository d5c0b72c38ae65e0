from __future__ import annotations

from django.urls import path

from .views import (
    CompetitionDetailView,
    CompetitionJoinView,
    CompetitionListView,
    CompetitionPhaseView,
    CompetitionReconcileView,
)

# 路由配置：比赛列表/详情、阶段查询、报名与阶段对账

app_name = "competitions"

urlpatterns = [
    # 比赛列表 / 创建
    path("", CompetitionListView.as_view(), name="list"),
    # 定时对账触发（需 CRON_SECRET）
    path("reconcile/", CompetitionReconcileView.as_view(), name="reconcile"),
    # 比赛详情
    path("<int:competition_id>/", CompetitionDetailView.as_view(), name="detail"),
    # 当前阶段与下一次切换
    path("<int:competition_id>/phase/", CompetitionPhaseView.as_view(), name="phase"),
    # 报名 / 退出
    path("<int:competition_id>/join/", CompetitionJoinView.as_view(), name="join"),
]
