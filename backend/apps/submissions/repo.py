from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from django.db.models import F, QuerySet

from apps.common.base.base_repo import BaseRepo

from .models import Submission


@dataclass(frozen=True)
class UserProfile:
    id: int
    username: str
    avatar_url: str
    github_username: str


@dataclass(frozen=True)
class SubmissionWithProfile:
    """作品 + 提交人资料的联表结果"""

    id: int
    competition_id: int
    title: str
    description: str
    repo_url: str
    demo_url: str
    repo_created_at: Optional[datetime]
    yes_votes: int
    no_votes: int
    submitted_at: datetime
    updated_at: datetime
    user: UserProfile

    @classmethod
    def from_model(cls, submission: Submission) -> "SubmissionWithProfile":
        user = submission.user
        return cls(
            id=submission.pk,
            competition_id=submission.competition_id,
            title=submission.title,
            description=submission.description,
            repo_url=submission.repo_url,
            demo_url=submission.demo_url,
            repo_created_at=submission.repo_created_at,
            yes_votes=submission.yes_votes,
            no_votes=submission.no_votes,
            submitted_at=submission.submitted_at,
            updated_at=submission.updated_at,
            user=UserProfile(
                id=user.pk,
                username=user.username,
                avatar_url=user.avatar_url,
                github_username=user.github_username,
            ),
        )

    def to_dict(self) -> dict:
        return asdict(self)


class SubmissionRepo(BaseRepo[Submission]):
    """作品仓储：排行顺序固定为 yes_votes 降序、id 升序"""

    model = Submission
    not_found_message = "作品不存在"

    RANK_ORDER = ("-yes_votes", "id")

    def get_for_user(self, competition_id: int, user_id: int) -> Optional[Submission]:
        return self.get_or_none(competition_id=competition_id, user_id=user_id)

    def lock_for_user(self, competition_id: int, user_id: int) -> Optional[Submission]:
        return self.lock(competition_id=competition_id, user_id=user_id).first()

    def ranked(self, competition_id: int) -> QuerySet[Submission]:
        return self.filter(competition_id=competition_id).select_related("user").order_by(*self.RANK_ORDER)

    def list_with_profiles(self, competition_id: int) -> list[SubmissionWithProfile]:
        return [SubmissionWithProfile.from_model(item) for item in self.ranked(competition_id)]

    def list_for_user(self, user_id: int) -> QuerySet[Submission]:
        return self.filter(user_id=user_id).select_related("competition").order_by("-submitted_at", "-id")

    def rank_of(self, submission: Submission) -> int:
        """作品在所属比赛中的名次（从 1 开始），与 ranked 顺序一致"""
        ahead = self.filter(competition_id=submission.competition_id, yes_votes__gt=submission.yes_votes).count()
        ties_before = self.filter(
            competition_id=submission.competition_id,
            yes_votes=submission.yes_votes,
            id__lt=submission.pk,
        ).count()
        return ahead + ties_before + 1

    def adjust_tallies(self, submission_id: int, *, yes_delta: int = 0, no_delta: int = 0) -> None:
        """
        原子增减票数：单条 UPDATE 同时修改两个计数，不会出现只减未加的中间状态
        """
        changes = {}
        if yes_delta:
            changes["yes_votes"] = F("yes_votes") + yes_delta
        if no_delta:
            changes["no_votes"] = F("no_votes") + no_delta
        if changes:
            self.model._default_manager.filter(pk=submission_id).update(**changes)

    def set_tallies(self, submission_id: int, yes_votes: int, no_votes: int) -> None:
        """直接改写票数缓存，仅供核对修复使用"""
        self.model._default_manager.filter(pk=submission_id).update(yes_votes=yes_votes, no_votes=no_votes)

    def tallies(self, submission_id: int) -> tuple[int, int]:
        return self.filter(pk=submission_id).values_list("yes_votes", "no_votes").get()
