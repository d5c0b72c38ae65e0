from __future__ import annotations

from django.urls import path

from .views import LeaderboardView, VoteTallyAuditView, VoteView

app_name = "voting"

urlpatterns = [
    path("submissions/<int:submission_id>/vote/", VoteView.as_view(), name="vote"),
    path("competitions/<int:competition_id>/leaderboard/", LeaderboardView.as_view(), name="leaderboard"),
    # 票数缓存核对（管理员）
    path("audit/", VoteTallyAuditView.as_view(), name="audit"),
]
