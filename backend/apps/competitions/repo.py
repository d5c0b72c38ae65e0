from __future__ import annotations

import datetime

from django.db.models import Count, QuerySet

from apps.common.base.base_repo import BaseRepo
from apps.common.exceptions import AlreadyJoinedError, NotFoundError, PhaseClosedError

from .lifecycle import Phase
from .models import Competition, Participant

# 仓储层：封装比赛与报名的 ORM 访问，阶段窗口与状态回写都以条件查询表达

# 各阶段进入时对应的时间字段：status 从前一阶段推进到该阶段需满足 字段 <= now
PHASE_BOUNDARY_FIELDS = {
    Phase.LIVE: "starts_at",
    Phase.VOTING: "ends_at",
    Phase.COMPLETED: "voting_ends_at",
}


def phase_window(phase: Phase, now: datetime.datetime) -> dict:
    """阶段对应的时间窗口过滤条件（左闭右开，与阶段推导规则一致）"""
    if phase == Phase.UPCOMING:
        return {"starts_at__gt": now}
    if phase == Phase.LIVE:
        return {"starts_at__lte": now, "ends_at__gt": now}
    if phase == Phase.VOTING:
        return {"ends_at__lte": now, "voting_ends_at__gt": now}
    return {"voting_ends_at__lte": now}


class CompetitionRepo(BaseRepo[Competition]):
    """比赛仓储"""

    model = Competition
    not_found_message = "比赛不存在"

    def list_with_participant_count(self) -> QuerySet[Competition]:
        """比赛列表，附带 participant_count，按开始时间升序"""
        return (
            self.get_queryset()
            .annotate(participant_count=Count("participants", distinct=True))
            .order_by("starts_at", "id")
        )

    def lock_in_phase(
        self,
        competition_id: int,
        phase: Phase,
        now: datetime.datetime,
        *,
        error: PhaseClosedError | None = None,
    ) -> Competition:
        """
        在事务内锁定比赛行，并以存储层条件再次确认比赛仍处于 phase

        与内存中的阶段判断互为补充：页面渲染与提交之间可能跨过边界，以这里为准
        """
        competition = self.lock(pk=competition_id, **phase_window(phase, now)).first()
        if competition is not None:
            return competition
        if not self.exists(pk=competition_id):
            raise NotFoundError(message=self.not_found_message)
        raise error or PhaseClosedError()

    def pending_reconcile(self, now: datetime.datetime) -> QuerySet[Competition]:
        """状态缓存可能落后的比赛：未结束且已到开始时间"""
        return (
            self.get_queryset()
            .exclude(status=Phase.COMPLETED)
            .filter(starts_at__lte=now)
            .order_by("id")
        )

    def advance_status(self, competition_id: int, *, prior: Phase, target: Phase, now: datetime.datetime) -> bool:
        """
        条件回写：仅当当前缓存仍为 prior 且 target 的边界已到达时才写入

        返回是否真正写入，重复执行或并发执行都不会回退状态
        """
        boundary = PHASE_BOUNDARY_FIELDS[target]
        updated = (
            self.model._default_manager
            .filter(pk=competition_id, status=prior, **{f"{boundary}__lte": now})
            .update(status=target, updated_at=now)
        )
        return updated > 0


class ParticipantRepo(BaseRepo[Participant]):
    """报名仓储"""

    model = Participant

    def is_participant(self, competition_id: int, user_id: int) -> bool:
        return self.exists(competition_id=competition_id, user_id=user_id)

    def join(self, competition: Competition, user) -> Participant:
        """写入报名记录；唯一约束冲突视为已报名"""
        return self.create(
            {"competition": competition, "user": user},
            conflict_error=AlreadyJoinedError(),
        )

    def leave(self, competition_id: int, user_id: int) -> int:
        deleted, _ = self.filter(competition_id=competition_id, user_id=user_id).delete()
        return deleted

    def count_for(self, competition_id: int) -> int:
        return self.filter(competition_id=competition_id).count()

    def list_for_user(self, user_id: int) -> QuerySet[Participant]:
        return self.filter(user_id=user_id).select_related("competition").order_by("-joined_at")
