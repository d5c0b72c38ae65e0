"""
比赛生命周期：按当前时间推导阶段、预测下一次切换、判定各操作是否开放

阶段完全由三个时间点决定：
    now <  starts_at        → upcoming（报名中）
    now <  ends_at          → live（进行中，可提交）
    now <  voting_ends_at   → voting（投票中）
    其余                    → completed（已结束）

边界时刻归属后一个阶段，例如 now == starts_at 时已是 live。
本模块只做纯计算，now 始终由调用方传入，同一次业务操作只取一次 now。
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Optional

from django.db import models


class Phase(models.TextChoices):
    UPCOMING = "upcoming", "Upcoming"
    LIVE = "live", "Live"
    VOTING = "voting", "Voting"
    COMPLETED = "completed", "Completed"


# 阶段推进顺序，对账任务只允许沿此顺序前进
PHASE_ORDER = (Phase.UPCOMING, Phase.LIVE, Phase.VOTING, Phase.COMPLETED)


@dataclass(frozen=True)
class Transition:
    """下一次阶段切换：进入 phase 的时间点 at"""

    phase: Phase
    at: datetime.datetime


def resolve_phase(
    now: datetime.datetime,
    starts_at: datetime.datetime,
    ends_at: datetime.datetime,
    voting_ends_at: datetime.datetime,
) -> Phase:
    if now < starts_at:
        return Phase.UPCOMING
    if now < ends_at:
        return Phase.LIVE
    if now < voting_ends_at:
        return Phase.VOTING
    return Phase.COMPLETED


def next_transition(
    now: datetime.datetime,
    starts_at: datetime.datetime,
    ends_at: datetime.datetime,
    voting_ends_at: datetime.datetime,
) -> Optional[Transition]:
    """已结束的比赛没有下一次切换，返回 None"""
    if now < starts_at:
        return Transition(Phase.LIVE, starts_at)
    if now < ends_at:
        return Transition(Phase.VOTING, ends_at)
    if now < voting_ends_at:
        return Transition(Phase.COMPLETED, voting_ends_at)
    return None


def phase_of(competition, now: datetime.datetime) -> Phase:
    """读取比赛对象上的三个时间点计算阶段"""
    return resolve_phase(now, competition.starts_at, competition.ends_at, competition.voting_ends_at)


def transition_of(competition, now: datetime.datetime) -> Optional[Transition]:
    return next_transition(now, competition.starts_at, competition.ends_at, competition.voting_ends_at)


# ======================
# 倒计时
# ======================

def format_duration(seconds: float) -> str:
    """
    倒计时展示，各分量向下取整：
        ≥ 1 天 → "2d 3h"；≥ 1 小时 → "3h 15m"；≥ 1 分钟 → "15m 30s"；否则 "30s"
    非正数一律为 "0s"
    """
    total = int(seconds)
    if total <= 0:
        return "0s"
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_time_remaining(target: datetime.datetime, now: datetime.datetime) -> str:
    return format_duration((target - now).total_seconds())


def status_label(phase: str) -> str:
    """阶段展示文案，未知值返回 Unknown"""
    try:
        return Phase(phase).label
    except ValueError:
        return "Unknown"


# ======================
# 操作闸门
# ======================

def can_join(phase: Phase) -> bool:
    return phase == Phase.UPCOMING


def can_submit(phase: Phase) -> bool:
    return phase == Phase.LIVE


def can_vote(phase: Phase) -> bool:
    return phase == Phase.VOTING


def is_prompt_visible(phase: Phase) -> bool:
    """题目在开赛前隐藏，开赛后（含投票、结束）可见"""
    return phase != Phase.UPCOMING


def is_final(phase: Phase) -> bool:
    """排行榜是否已锁定"""
    return phase == Phase.COMPLETED


@dataclass(frozen=True)
class PhaseSnapshot:
    """
    同一个 now 下的阶段视图：阶段、下一次切换与各操作开关

    视图和服务层只通过 capture 构造，保证一次请求内所有判断基于同一时刻
    """

    now: datetime.datetime
    phase: Phase
    transition: Optional[Transition]

    @classmethod
    def capture(cls, competition, now: datetime.datetime) -> "PhaseSnapshot":
        return cls(
            now=now,
            phase=phase_of(competition, now),
            transition=transition_of(competition, now),
        )

    @property
    def can_join(self) -> bool:
        return can_join(self.phase)

    @property
    def can_submit(self) -> bool:
        return can_submit(self.phase)

    @property
    def can_vote(self) -> bool:
        return can_vote(self.phase)

    @property
    def prompt_visible(self) -> bool:
        return is_prompt_visible(self.phase)

    @property
    def is_final(self) -> bool:
        return is_final(self.phase)

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.transition is None:
            return None
        return max(0, int((self.transition.at - self.now).total_seconds()))

    def actions(self) -> dict[str, bool]:
        return {
            "can_join": self.can_join,
            "can_submit": self.can_submit,
            "can_vote": self.can_vote,
            "prompt_visible": self.prompt_visible,
        }
