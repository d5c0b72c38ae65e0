from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from apps.common.base.base_service import BaseService
from apps.common.exceptions import ConflictError, SelfVoteError, VotingClosedError, require
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.utils.time import now as current_time
from apps.competitions.lifecycle import Phase, PhaseSnapshot
from apps.competitions.repo import CompetitionRepo
from apps.competitions.services import CompetitionContextService, serialize_competition
from apps.submissions.repo import SubmissionRepo
from apps.submissions.serializers import serialize_user_profile

from .models import Vote
from .repo import VoteRepo
from .schemas import VoteCastSchema

# 服务层：投票（含改票）、排行榜与票数缓存核对

logger = get_logger(__name__)


def _bucket_deltas(value: bool, sign: int) -> dict:
    return {"yes_delta": sign} if value else {"no_delta": sign}


@dataclass
class VoteOutcome:
    vote: Vote
    created: bool
    changed: bool
    yes_votes: int
    no_votes: int

    def to_dict(self) -> dict:
        return {
            "submission_id": self.vote.submission_id,
            "value": self.vote.value,
            "created": self.created,
            "changed": self.changed,
            "yes_votes": self.yes_votes,
            "no_votes": self.no_votes,
        }


class CastVoteService(BaseService[VoteOutcome]):
    """
    投票 / 改票：
    - 仅 voting 阶段开放，不能给自己的作品投票
    - 首次投票：写入投票并对应计数 +1
    - 改票：更新取值，同一条 UPDATE 内旧计数 -1、新计数 +1
    - 重复投相同取值：不做任何修改
    - 并发首投命中唯一约束时，按已有投票继续处理
    """

    def __init__(
            self,
            submission_repo: SubmissionRepo | None = None,
            vote_repo: VoteRepo | None = None,
            competition_repo: CompetitionRepo | None = None,
    ):
        self.submission_repo = submission_repo or SubmissionRepo()
        self.vote_repo = vote_repo or VoteRepo()
        self.competition_repo = competition_repo or CompetitionRepo()

    def perform(
            self,
            user,
            submission_id: int,
            schema: VoteCastSchema,
            *,
            now: Optional[datetime.datetime] = None,
    ) -> VoteOutcome:
        reference = now or current_time()
        submission = self.submission_repo.get_by_id(
            submission_id,
            queryset=self.submission_repo.get_queryset().select_related("competition"),
        )
        snapshot = PhaseSnapshot.capture(submission.competition, reference)
        require(snapshot.can_vote, VotingClosedError(extra={"phase": snapshot.phase.value}))
        require(submission.user_id != user.pk, SelfVoteError())

        self.competition_repo.lock_in_phase(
            submission.competition_id,
            Phase.VOTING,
            reference,
            error=VotingClosedError(extra={"phase": snapshot.phase.value}),
        )

        value: bool = schema.value
        created = changed = False
        vote = self.vote_repo.lock_for_user(submission.pk, user.pk)
        if vote is None:
            try:
                vote = self.vote_repo.create(
                    {"submission": submission, "user": user, "value": value, "comment": schema.comment},
                    conflict_error=ConflictError(message="你已对该作品投过票"),
                )
                self.submission_repo.adjust_tallies(submission.pk, **_bucket_deltas(value, 1))
                created = changed = True
            except ConflictError:
                vote = self.vote_repo.lock_for_user(submission.pk, user.pk)
                if vote is None:
                    raise

        if not created and vote.value != value:
            previous = vote.value
            self.vote_repo.update(vote, {"value": value, "comment": schema.comment, "updated_at": reference})
            self.submission_repo.adjust_tallies(
                submission.pk,
                **_bucket_deltas(previous, -1),
                **_bucket_deltas(value, 1),
            )
            changed = True

        yes_votes, no_votes = self.submission_repo.tallies(submission.pk)
        if changed:
            logger.info(
                "投票已记录" if created else "投票已修改",
                extra=logger_extra({
                    "submission_id": submission.pk,
                    "competition_id": submission.competition_id,
                    "user_id": user.pk,
                    "value": value,
                }),
            )
        return VoteOutcome(vote=vote, created=created, changed=changed, yes_votes=yes_votes, no_votes=no_votes)


class LeaderboardService(BaseService[dict]):
    """
    排行榜：yes_votes 降序，同票按提交先后（id 升序），名次从 1 开始
    completed 阶段标记 is_final，此后票数不再变化
    """

    atomic_enabled = False

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()
        self.submission_repo = SubmissionRepo()

    def perform(self, competition_id: int, *, now: Optional[datetime.datetime] = None) -> dict:
        competition = self.context_service.get_competition(competition_id)
        snapshot = self.context_service.snapshot(competition, now)
        entries = []
        for rank, submission in enumerate(self.submission_repo.ranked(competition.pk), start=1):
            entries.append({
                "rank": rank,
                "submission_id": submission.pk,
                "title": submission.title,
                "description": submission.description,
                "repo_url": submission.repo_url,
                "demo_url": submission.demo_url,
                "yes_votes": submission.yes_votes,
                "no_votes": submission.no_votes,
                "user": serialize_user_profile(submission.user),
            })
        return {
            "competition": serialize_competition(competition, snapshot),
            "phase": snapshot.phase.value,
            "is_final": snapshot.is_final,
            "entries": entries,
        }


@dataclass
class TallyAuditReport:
    checked: int = 0
    drifted: list[dict] = field(default_factory=list)
    repaired: bool = False

    def to_dict(self) -> dict:
        return {"checked": self.checked, "drifted": self.drifted, "repaired": self.repaired}


class VoteTallyAuditService(BaseService[TallyAuditReport]):
    """
    票数缓存核对：按 Vote 表重新统计，与作品上的 yes_votes / no_votes 比较
    repair=True 时把偏差的作品改写为统计值
    """

    def __init__(self, submission_repo: SubmissionRepo | None = None, vote_repo: VoteRepo | None = None):
        self.submission_repo = submission_repo or SubmissionRepo()
        self.vote_repo = vote_repo or VoteRepo()

    def perform(self, competition_id: Optional[int] = None, *, repair: bool = False) -> TallyAuditReport:
        filters = {"competition_id": competition_id} if competition_id is not None else {}
        submissions = list(self.submission_repo.lock(**filters).order_by("id"))
        counted = self.vote_repo.counted_tallies(s.pk for s in submissions)

        report = TallyAuditReport(checked=len(submissions), repaired=repair)
        for submission in submissions:
            yes, no = counted.get(submission.pk, (0, 0))
            if (submission.yes_votes, submission.no_votes) == (yes, no):
                continue
            report.drifted.append({
                "submission_id": submission.pk,
                "competition_id": submission.competition_id,
                "stored": {"yes_votes": submission.yes_votes, "no_votes": submission.no_votes},
                "counted": {"yes_votes": yes, "no_votes": no},
            })
            if repair:
                self.submission_repo.set_tallies(submission.pk, yes, no)

        if report.drifted:
            logger.warning(
                "发现票数缓存偏差",
                extra=logger_extra({
                    "count": len(report.drifted),
                    "repair": repair,
                    "submission_ids": [item["submission_id"] for item in report.drifted],
                }),
            )
        return report
