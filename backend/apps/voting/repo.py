from __future__ import annotations

from typing import Iterable, Optional

from django.db.models import Count, Q

from apps.common.base.base_repo import BaseRepo

from .models import Vote


class VoteRepo(BaseRepo[Vote]):
    """投票仓储"""

    model = Vote

    def lock_for_user(self, submission_id: int, user_id: int) -> Optional[Vote]:
        return self.lock(submission_id=submission_id, user_id=user_id).first()

    def values_for_user(self, user_id: int, submission_ids: Iterable[int]) -> dict[int, bool]:
        """用户在一批作品上的投票 {submission_id: value}"""
        rows = self.filter(user_id=user_id, submission_id__in=list(submission_ids)).values_list("submission_id", "value")
        return dict(rows)

    def counted_tallies(self, submission_ids: Iterable[int]) -> dict[int, tuple[int, int]]:
        """按 Vote 表重新统计 {submission_id: (yes, no)}，无投票的作品不出现在结果中"""
        rows = (
            self.filter(submission_id__in=list(submission_ids))
            .values("submission_id")
            .annotate(
                yes=Count("id", filter=Q(value=True)),
                no=Count("id", filter=Q(value=False)),
            )
        )
        return {row["submission_id"]: (row["yes"], row["no"]) for row in rows}
