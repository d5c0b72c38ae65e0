from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Callable, Optional

from django.db import transaction
from django.utils.dateparse import parse_datetime

from apps.common.base.base_service import BaseService
from apps.common.exceptions import NotParticipantError, SubmissionClosedError, SubmissionExistsError, require
from apps.common.infra import github_client
from apps.common.infra.github_client import RepoVerification
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.utils.time import now as current_time
from apps.competitions.lifecycle import Phase
from apps.competitions.repo import ParticipantRepo
from apps.competitions.services import CompetitionContextService
from apps.voting.repo import VoteRepo

from .models import Submission
from .repo import SubmissionRepo
from .schemas import RepoVerifySchema, SubmissionUpsertSchema
from .serializers import serialize_submission_with_profile

# 服务层：作品提交（按比赛+用户唯一，重复提交即更新）、作品列表与仓库校验

logger = get_logger(__name__)


@dataclass
class SubmissionResult:
    submission: Submission
    created: bool
    verification: Optional[RepoVerification]


class SubmissionUpsertService(BaseService[SubmissionResult]):
    """
    提交 / 更新作品：
    - 仅 live 阶段、仅已报名用户
    - 仓库校验结果只作为提示返回，不阻塞写入；校验通过时记录仓库创建时间
    - 外部 HTTP 调用放在事务之外，事务内锁定比赛行复核阶段后再写入
    - 同一用户在同一比赛只有一个作品：已存在则更新，并发插入命中唯一约束时转为更新
    """

    atomic_enabled = False

    def __init__(
            self,
            context_service: CompetitionContextService | None = None,
            submission_repo: SubmissionRepo | None = None,
            verifier: Callable[[str], RepoVerification] | None = None,
    ):
        self.context_service = context_service or CompetitionContextService()
        self.submission_repo = submission_repo or SubmissionRepo()
        self.participant_repo = ParticipantRepo()
        self.verifier = verifier or github_client.validate_repository_url

    def perform(
            self,
            user,
            competition_id: int,
            schema: SubmissionUpsertSchema,
            *,
            now: Optional[datetime.datetime] = None,
            verify: bool = True,
    ) -> SubmissionResult:
        reference = now or current_time()
        competition = self.context_service.get_competition(competition_id)
        snapshot = self.context_service.snapshot(competition, reference)
        require(snapshot.can_submit, SubmissionClosedError(extra={"phase": snapshot.phase.value}))
        require(
            self.participant_repo.is_participant(competition.pk, user.pk),
            NotParticipantError(),
        )

        verification = self.verifier(schema.repo_url) if verify else None
        fields = schema.to_dict()
        if verification is not None and verification.valid and verification.repo:
            created_at = verification.repo.get("created_at")
            fields["repo_created_at"] = parse_datetime(created_at) if created_at else None

        with transaction.atomic():
            self.context_service.repo.lock_in_phase(
                competition.pk,
                Phase.LIVE,
                reference,
                error=SubmissionClosedError(extra={"phase": snapshot.phase.value}),
            )
            submission, created = self._upsert(competition, user, fields, reference)

        logger.info(
            "作品已提交" if created else "作品已更新",
            extra=logger_extra({
                "competition_id": competition.pk,
                "submission_id": submission.pk,
                "user_id": user.pk,
                "repo_verified": getattr(verification, "valid", None),
            }),
        )
        return SubmissionResult(submission=submission, created=created, verification=verification)

    def _upsert(self, competition, user, fields: dict, reference: datetime.datetime) -> tuple[Submission, bool]:
        existing = self.submission_repo.lock_for_user(competition.pk, user.pk)
        if existing is None:
            try:
                submission = self.submission_repo.create(
                    {"competition": competition, "user": user, **fields},
                    conflict_error=SubmissionExistsError(),
                )
                return submission, True
            except SubmissionExistsError:
                existing = self.submission_repo.lock_for_user(competition.pk, user.pk)
                if existing is None:
                    raise
        return self.submission_repo.update(existing, {**fields, "updated_at": reference}), False


class SubmissionListService(BaseService[list]):
    """
    比赛作品列表（含提交人资料），按排行顺序
    登录用户附带自己对每个作品的投票 my_vote
    """

    atomic_enabled = False

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()
        self.submission_repo = SubmissionRepo()
        self.vote_repo = VoteRepo()

    def perform(self, competition_id: int, *, user=None) -> list:
        competition = self.context_service.get_competition(competition_id)
        items = self.submission_repo.list_with_profiles(competition.pk)
        my_votes: dict[int, bool] = {}
        if user is not None and user.is_authenticated and items:
            my_votes = self.vote_repo.values_for_user(user.pk, [item.id for item in items])
        return [serialize_submission_with_profile(item, my_vote=my_votes.get(item.id)) for item in items]


class MySubmissionService(BaseService[Optional[Submission]]):
    """当前用户在某比赛中的作品，没有则为 None"""

    atomic_enabled = False

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()
        self.submission_repo = SubmissionRepo()

    def perform(self, user, competition_id: int) -> Optional[Submission]:
        competition = self.context_service.get_competition(competition_id)
        return self.submission_repo.get_for_user(competition.pk, user.pk)


class RepoVerifyService(BaseService[RepoVerification]):
    """仓库校验：存在、公开、提交元数据"""

    atomic_enabled = False

    def __init__(self, verifier: Callable[[str], RepoVerification] | None = None):
        self.verifier = verifier or github_client.validate_repository_url

    def perform(self, schema: RepoVerifySchema) -> RepoVerification:
        return self.verifier(schema.url)
