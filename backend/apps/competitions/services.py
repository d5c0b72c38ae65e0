from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from django.db import DatabaseError

from apps.common.base.base_service import BaseService
from apps.common.exceptions import JoinClosedError, NotFoundError, require
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.utils.time import now as current_time
from apps.common.utils.time import to_timestamp
from apps.submissions.repo import SubmissionRepo
from apps.submissions.serializers import serialize_submission

from .lifecycle import PHASE_ORDER, Phase, PhaseSnapshot, format_duration, status_label
from .models import Competition, Participant
from .repo import PHASE_BOUNDARY_FIELDS, CompetitionRepo, ParticipantRepo
from .schemas import CompetitionCreateSchema

# 服务层：比赛查询、报名/退出、创建与阶段对账

logger = get_logger(__name__)


def serialize_snapshot(snapshot: PhaseSnapshot) -> dict:
    """阶段快照序列化：供客户端轮询判断阶段是否切换"""
    transition = snapshot.transition
    next_payload = None
    if transition is not None:
        next_payload = {
            "phase": transition.phase.value,
            "at": transition.at,
            "at_ts": to_timestamp(transition.at),
            "remaining_seconds": snapshot.remaining_seconds,
            "remaining_display": format_duration(snapshot.remaining_seconds or 0),
        }
    return {
        "phase": snapshot.phase.value,
        "status_label": status_label(snapshot.phase),
        "next_transition": next_payload,
        "server_time": snapshot.now,
        "server_ts": to_timestamp(snapshot.now),
        "actions": snapshot.actions(),
    }


def serialize_competition(
        competition: Competition,
        snapshot: PhaseSnapshot,
        *,
        include_prompt: bool = False,
) -> dict:
    """
    比赛序列化：status 一律按快照计算，不读取缓存字段
    题目仅在 include_prompt 且阶段允许时返回
    """
    data = {
        "id": competition.pk,
        "title": competition.title,
        "description": competition.description,
        "starts_at": competition.starts_at,
        "ends_at": competition.ends_at,
        "voting_ends_at": competition.voting_ends_at,
        "status": snapshot.phase.value,
        "status_label": status_label(snapshot.phase),
    }
    participant_count = getattr(competition, "participant_count", None)
    if participant_count is not None:
        data["participant_count"] = participant_count
    if include_prompt:
        data["prompt"] = competition.prompt if snapshot.prompt_visible else None
    return data


class CompetitionContextService:
    """比赛上下文：统一获取比赛与阶段快照，供其他服务复用"""

    def __init__(self, repo: CompetitionRepo | None = None):
        self.repo = repo or CompetitionRepo()

    def get_competition(self, competition_id: int) -> Competition:
        return self.repo.get_by_id(competition_id)

    @staticmethod
    def snapshot(competition: Competition, now: Optional[datetime.datetime] = None) -> PhaseSnapshot:
        return PhaseSnapshot.capture(competition, now or current_time())


class CompetitionListService(BaseService[list]):
    """比赛列表：附带报名人数与按当前时间计算的阶段"""

    atomic_enabled = False

    def __init__(self, repo: CompetitionRepo | None = None):
        self.repo = repo or CompetitionRepo()

    def perform(self, *, now: Optional[datetime.datetime] = None, phase: Optional[str] = None) -> list:
        reference = now or current_time()
        items = []
        for competition in self.repo.list_with_participant_count():
            snapshot = PhaseSnapshot.capture(competition, reference)
            if phase and snapshot.phase != phase:
                continue
            items.append(serialize_competition(competition, snapshot))
        return items


class CompetitionDetailService(BaseService[dict]):
    """
    比赛详情：
    - 开赛前隐藏题目
    - 登录用户附带是否已报名、自己的作品
    """

    atomic_enabled = False

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()
        self.participant_repo = ParticipantRepo()
        self.submission_repo = SubmissionRepo()

    def perform(self, competition_id: int, *, user=None, now: Optional[datetime.datetime] = None) -> dict:
        competition = self.context_service.get_competition(competition_id)
        snapshot = self.context_service.snapshot(competition, now)
        data = serialize_competition(competition, snapshot, include_prompt=True)
        data["participant_count"] = self.participant_repo.count_for(competition.pk)
        data["phase"] = serialize_snapshot(snapshot)

        if user is not None and user.is_authenticated:
            data["is_participant"] = self.participant_repo.is_participant(competition.pk, user.pk)
            mine = self.submission_repo.get_for_user(competition.pk, user.pk)
            data["my_submission"] = serialize_submission(mine) if mine else None
        return data


class PhaseQueryService(BaseService[dict]):
    """阶段查询：只返回阶段快照，客户端轮询用"""

    atomic_enabled = False

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()

    def perform(self, competition_id: int, *, now: Optional[datetime.datetime] = None) -> dict:
        competition = self.context_service.get_competition(competition_id)
        return serialize_snapshot(self.context_service.snapshot(competition, now))


class CreateCompetitionService(BaseService[Competition]):
    """管理员创建比赛：status 初始值按创建时刻的阶段写入"""

    def __init__(self, repo: CompetitionRepo | None = None):
        self.repo = repo or CompetitionRepo()

    def perform(self, schema: CompetitionCreateSchema, *, user=None, now: Optional[datetime.datetime] = None) -> Competition:
        reference = now or current_time()
        data = schema.to_dict()
        competition = Competition(**data)
        data["status"] = PhaseSnapshot.capture(competition, reference).phase
        data["created_by"] = user
        competition = self.repo.create(data)
        logger.info(
            "创建比赛",
            extra=logger_extra({"competition_id": competition.pk, "title": competition.title}),
        )
        return competition


class JoinCompetitionService(BaseService[Participant]):
    """
    报名：仅 upcoming 阶段开放
    - 先用快照做快速判断，再在事务内按时间窗口锁定比赛行复核
    - 重复报名由唯一约束兜底，返回 AlreadyJoinedError
    """

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()
        self.participant_repo = ParticipantRepo()

    def perform(self, user, competition_id: int, *, now: Optional[datetime.datetime] = None) -> Participant:
        reference = now or current_time()
        competition = self.context_service.get_competition(competition_id)
        snapshot = self.context_service.snapshot(competition, reference)
        require(snapshot.can_join, JoinClosedError(extra={"phase": snapshot.phase.value}))

        competition = self.context_service.repo.lock_in_phase(
            competition.pk,
            Phase.UPCOMING,
            reference,
            error=JoinClosedError(extra={"phase": snapshot.phase.value}),
        )
        participant = self.participant_repo.join(competition, user)
        logger.info(
            "用户报名比赛",
            extra=logger_extra({"competition_id": competition.pk, "user_id": user.pk}),
        )
        return participant


class LeaveCompetitionService(BaseService[None]):
    """退出报名：与报名相同，只在 upcoming 阶段开放"""

    def __init__(self, context_service: CompetitionContextService | None = None):
        self.context_service = context_service or CompetitionContextService()
        self.participant_repo = ParticipantRepo()

    def perform(self, user, competition_id: int, *, now: Optional[datetime.datetime] = None) -> None:
        reference = now or current_time()
        competition = self.context_service.get_competition(competition_id)
        snapshot = self.context_service.snapshot(competition, reference)
        require(snapshot.can_join, JoinClosedError(extra={"phase": snapshot.phase.value}))

        self.context_service.repo.lock_in_phase(
            competition.pk,
            Phase.UPCOMING,
            reference,
            error=JoinClosedError(extra={"phase": snapshot.phase.value}),
        )
        deleted = self.participant_repo.leave(competition.pk, user.pk)
        require(deleted > 0, NotFoundError(message="你尚未报名该比赛"))
        logger.info(
            "用户退出比赛",
            extra=logger_extra({"competition_id": competition.pk, "user_id": user.pk}),
        )


# ======================
# 阶段对账
# ======================

@dataclass
class ReconcileSummary:
    timestamp: datetime.datetime
    to_live: list[dict] = field(default_factory=list)
    to_voting: list[dict] = field(default_factory=list)
    to_completed: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_live) + len(self.to_voting) + len(self.to_completed)

    def record(self, target: Phase, competition: Competition) -> None:
        bucket = {
            Phase.LIVE: self.to_live,
            Phase.VOTING: self.to_voting,
            Phase.COMPLETED: self.to_completed,
        }[target]
        bucket.append({"id": competition.pk, "title": competition.title})

    def to_dict(self) -> dict:
        return {
            "to_live": self.to_live,
            "to_voting": self.to_voting,
            "to_completed": self.to_completed,
            "failed": self.failed,
            "total": self.total,
            "timestamp": self.timestamp.isoformat(),
        }


class ReconcileStatusService(BaseService[ReconcileSummary]):
    """
    把 status 缓存推进到按时间计算的阶段

    - 每轮只取一次 now
    - 每次写入都是条件更新：WHERE status=前一阶段 AND 边界<=now，不会回退，重复执行无副作用
    - 错过多轮时一次推进多步（upcoming → live → voting → completed）
    - 单行失败记录日志后继续处理其余比赛，下一轮自动重试
    """

    atomic_enabled = False

    def __init__(self, repo: CompetitionRepo | None = None):
        self.repo = repo or CompetitionRepo()

    def perform(self, now: Optional[datetime.datetime] = None) -> ReconcileSummary:
        reference = now or current_time()
        summary = ReconcileSummary(timestamp=reference)
        for competition in self.repo.pending_reconcile(reference):
            try:
                self._advance(competition, reference, summary)
            except DatabaseError as exc:
                logger.exception(
                    "比赛状态回写失败，下一轮重试",
                    extra=logger_extra({"competition_id": competition.pk, "status": competition.status}),
                )
                summary.failed.append({"id": competition.pk, "title": competition.title, "error": str(exc)})

        logger.info(
            "比赛状态对账完成",
            extra=logger_extra({
                "to_live": len(summary.to_live),
                "to_voting": len(summary.to_voting),
                "to_completed": len(summary.to_completed),
                "failed": len(summary.failed),
            }),
        )
        return summary

    def _advance(self, competition: Competition, now: datetime.datetime, summary: ReconcileSummary) -> None:
        status = competition.status
        for index in range(1, len(PHASE_ORDER)):
            prior, target = PHASE_ORDER[index - 1], PHASE_ORDER[index]
            if status != prior:
                continue
            if getattr(competition, PHASE_BOUNDARY_FIELDS[target]) > now:
                break
            if self.repo.advance_status(competition.pk, prior=prior, target=target, now=now):
                summary.record(target, competition)
                status = target
                continue
            # 并发执行的另一轮已经写入，读取最新缓存后继续
            status = self.repo.filter(pk=competition.pk).values_list("status", flat=True).first()
            if status is None:
                break
