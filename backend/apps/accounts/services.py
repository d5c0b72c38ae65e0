"""账户模块的业务服务层

职责：
- 当前用户资料的查看与部分更新（头像、GitHub 用户名）
- 公开主页：用户资料、参赛作品与战绩统计
"""

from __future__ import annotations

from django.db.models import Sum

from apps.common.base.base_service import BaseService
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.utils.time import now as current_time
from apps.competitions.repo import ParticipantRepo
from apps.submissions.repo import SubmissionRepo
from apps.submissions.serializers import serialize_submission

from .models import User
from .repo import UserRepo
from .schemas import ProfileUpdateSchema

logger = get_logger(__name__)


def serialize_user(user: User, *, private: bool = False) -> dict[str, object]:
    """
    用户序列化：公开主页只返回展示字段，private=True 时附带账号信息
    """
    data: dict[str, object] = {
        "id": user.pk,
        "username": user.username,
        "avatar_url": user.avatar_url,
        "github_username": user.github_username,
        "date_joined": user.date_joined,
    }
    if private:
        data.update({
            "email": user.email,
            "is_staff": user.is_staff,
            "updated_at": user.updated_at,
        })
    return data


class UpdateProfileService(BaseService[User]):
    """更新当前用户资料：只写入入参中出现的字段"""

    def __init__(self, repo: UserRepo | None = None):
        self.repo = repo or UserRepo()

    def perform(self, user: User, schema: ProfileUpdateSchema) -> User:
        changes = schema.to_dict(exclude_none=True)
        user = self.repo.update(user, {**changes, "updated_at": current_time()})
        logger.info(
            "用户资料已更新",
            extra=logger_extra({"user_id": user.pk, "fields": sorted(changes)}),
        )
        return user


class ProfileService(BaseService[dict]):
    """
    公开主页：
    - 用户资料
    - 参赛作品（含所属比赛与当前名次）
    - 统计：参赛场次、作品数、累计 yes 票、最好名次
    """

    atomic_enabled = False

    def __init__(self, repo: UserRepo | None = None):
        self.repo = repo or UserRepo()
        self.submission_repo = SubmissionRepo()
        self.participant_repo = ParticipantRepo()

    def perform(self, username: str) -> dict:
        user = self.repo.get_by_username(username)
        submissions = list(self.submission_repo.list_for_user(user.pk))

        items = []
        best_placement = None
        for submission in submissions:
            rank = self.submission_repo.rank_of(submission)
            if best_placement is None or rank < best_placement:
                best_placement = rank
            item = serialize_submission(submission)
            item["rank"] = rank
            item["competition"] = {
                "id": submission.competition.pk,
                "title": submission.competition.title,
                "starts_at": submission.competition.starts_at,
                "voting_ends_at": submission.competition.voting_ends_at,
            }
            items.append(item)

        total_yes = self.submission_repo.filter(user_id=user.pk).aggregate(total=Sum("yes_votes"))["total"] or 0
        return {
            "user": serialize_user(user),
            "submissions": items,
            "stats": {
                "competitions_entered": self.participant_repo.list_for_user(user.pk).count(),
                "submissions_made": len(submissions),
                "total_yes_votes": total_yes,
                "best_placement": best_placement,
            },
        }
